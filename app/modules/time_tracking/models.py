from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Integer, Numeric, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin


class TimeEntry(Base, TenantMixin, TimestampMixin):
    __tablename__ = "time_entries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=False, index=True)
    task_id = Column(UUID(as_uuid=True), ForeignKey("tasks.id"), nullable=True)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=True, index=True)

    description = Column(String(500), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    duration = Column(Integer, nullable=True)  # seconds
    is_running = Column(Boolean, nullable=False, default=False, index=True)
    is_billable = Column(Boolean, nullable=False, default=True)
    hourly_rate = Column(Numeric(12, 2), nullable=True)

    project = relationship("Project", back_populates="time_entries")
    task = relationship("Task")
    user = relationship("User")

    @property
    def project_name(self):
        return self.project.name if self.project else None

    @property
    def is_billed(self) -> bool:
        return self.invoice_id is not None

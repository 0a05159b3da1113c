from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Numeric, Date, Text
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from datetime import date
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin


class Expense(Base, TenantMixin, TimestampMixin):
    __tablename__ = "expenses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=True, index=True)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=True, index=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    category = Column(String(100), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    expense_date = Column(Date, nullable=False, default=date.today)
    description = Column(Text, nullable=True)
    receipt_url = Column(String(500), nullable=True)
    is_billable = Column(Boolean, nullable=False, default=False)
    is_invoiced = Column(Boolean, nullable=False, default=False)

    project = relationship("Project")

    @property
    def project_name(self):
        return self.project.name if self.project else None

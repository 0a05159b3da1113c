from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Text, Numeric, Enum, Date
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin, SoftDeleteMixin
import enum


class ProjectType(str, enum.Enum):
    HOURLY = "hourly"
    FIXED = "fixed"


class ProjectStatus(str, enum.Enum):
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskStatus(str, enum.Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class Project(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "projects"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    project_type = Column(Enum(ProjectType), nullable=False, default=ProjectType.HOURLY)
    hourly_rate = Column(Numeric(12, 2), nullable=False, default=0)
    fixed_price = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(Enum(ProjectStatus), nullable=False, default=ProjectStatus.ACTIVE)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    budget_hours = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    client = relationship("Client", back_populates="projects")
    tasks = relationship("Task", back_populates="project", cascade="all, delete-orphan")
    time_entries = relationship("TimeEntry", back_populates="project")

    @property
    def client_name(self):
        return self.client.name if self.client else None

    @property
    def is_fixed_price(self) -> bool:
        return self.project_type == ProjectType.FIXED


class Task(Base, TenantMixin, TimestampMixin):
    __tablename__ = "tasks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    estimated_hours = Column(Numeric(10, 2), nullable=True)
    status = Column(Enum(TaskStatus), nullable=False, default=TaskStatus.TODO)

    project = relationship("Project", back_populates="tasks")

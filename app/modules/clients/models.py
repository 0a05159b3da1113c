from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin, SoftDeleteMixin


class Client(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "clients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    name = Column(String(200), nullable=False, index=True)
    email = Column(String(200), nullable=True, index=True)
    phone = Column(String(30), nullable=True)
    company_name = Column(String(200), nullable=True)
    address = Column(JSON, nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    projects = relationship("Project", back_populates="client")
    portal_users = relationship("ClientUser", back_populates="client", cascade="all, delete-orphan")

from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Text, Enum
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class TemplateType(str, enum.Enum):
    INVOICE = "invoice"
    QUOTATION = "quotation"
    REMINDER = "reminder"
    RECEIPT = "receipt"
    CLIENT_INVITE = "client_invite"


class EmailTemplate(Base, TenantMixin, TimestampMixin):
    """Company-defined subject/body overriding the built-in email of a type."""
    __tablename__ = "email_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    type = Column(Enum(TemplateType), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    subject = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)

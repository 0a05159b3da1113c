from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Text, JSON, Enum
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class NotificationType(str, enum.Enum):
    PAYMENT_RECEIVED = "payment_received"
    QUOTATION_ACCEPTED = "quotation_accepted"
    QUOTATION_REJECTED = "quotation_rejected"
    INVOICE_OVERDUE = "invoice_overdue"
    CLIENT_PORTAL = "client_portal"
    SYSTEM = "system"


class Notification(Base, TenantMixin, TimestampMixin):
    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    # NULL user_id means the notification is for everyone in the company
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)
    type = Column(Enum(NotificationType), nullable=False, default=NotificationType.SYSTEM)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    meta = Column("metadata", JSON, nullable=True)

from app.database.database import Base
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime, timezone
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
from app.common.validators import ensure_utc


class ClientUser(Base, TenantMixin, TimestampMixin):
    """Portal login for a client contact. Email is unique per company."""
    __tablename__ = "client_users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    invited_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    email = Column(String(200), nullable=False, index=True)
    password = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    invite_token = Column(String(100), nullable=True, unique=True, index=True)
    invite_expires_at = Column(DateTime(timezone=True), nullable=True)
    invited_at = Column(DateTime(timezone=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    last_login = Column(DateTime(timezone=True), nullable=True)

    client = relationship("Client", back_populates="portal_users")

    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_client_user_tenant_email"),
    )

    @property
    def client_name(self):
        return self.client.name if self.client else None

    @property
    def has_accepted(self) -> bool:
        return self.accepted_at is not None

    def invite_expired(self, now: datetime = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.invite_expires_at is None or ensure_utc(self.invite_expires_at) < now

from app.database.database import Base
from sqlalchemy import Column, String, Integer, Numeric, Text, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin

DEFAULT_NOTIFICATION_PREFERENCES = {
    "payment_received": True,
    "quotation_accepted": True,
    "quotation_rejected": True,
    "invoice_overdue": True,
}

DEFAULT_EMAIL_SETTINGS = {
    "provider": "system",
    "api_key": None,
    "from_email": None,
    "from_name": None,
}


class CompanySettings(Base, TenantMixin, TimestampMixin):
    """One row per company, created during onboarding."""
    __tablename__ = "settings"
    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_settings_tenant"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)

    invoice_terms = Column(Text, nullable=True)
    invoice_footer = Column(Text, nullable=True)
    email_signature = Column(Text, nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    timezone = Column(String(64), nullable=False, default="UTC")
    date_format = Column(String(20), nullable=False, default="YYYY-MM-DD")
    default_tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    default_due_days = Column(Integer, nullable=False, default=30)

    notification_preferences = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_NOTIFICATION_PREFERENCES))
    email_settings = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_EMAIL_SETTINGS))

from app.database.database import Base
from sqlalchemy import Column, String, Boolean, Text, Enum, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class PdfTemplate(str, enum.Enum):
    INVOMA_CLASSIC = "invoma_classic"
    INVOMA_MODERN = "invoma_modern"


class PdfSettings(Base, TenantMixin, TimestampMixin):
    __tablename__ = "pdf_settings"
    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_pdf_settings_tenant"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    template = Column(Enum(PdfTemplate), nullable=False, default=PdfTemplate.INVOMA_CLASSIC)
    primary_color = Column(String(7), nullable=False, default="#3B82F6")
    secondary_color = Column(String(7), nullable=False, default="#64748B")
    text_color = Column(String(7), nullable=False, default="#1F2937")
    border_color = Column(String(7), nullable=False, default="#E5E7EB")
    show_logo = Column(Boolean, nullable=False, default=True)
    show_signature = Column(Boolean, nullable=False, default=False)
    signature_url = Column(String(500), nullable=True)
    footer_text = Column(Text, nullable=True, default="Thank you for your business!")
    payment_terms = Column(Text, nullable=True, default="Payment is due within 30 days")

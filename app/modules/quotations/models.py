from app.database.database import Base
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, UniqueConstraint, Numeric, Enum, Date, Text
)
from sqlalchemy.orm import relationship
from datetime import date
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
from app.modules.invoices.models import DiscountType
import enum


class QuotationStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


# Quotations still open to changes
EDITABLE_STATUSES = (QuotationStatus.DRAFT, QuotationStatus.SENT)


class Quotation(Base, TenantMixin, TimestampMixin):
    __tablename__ = "quotations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)

    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=True, index=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    # No FK: invoices already reference quotations
    converted_invoice_id = Column(UUID(as_uuid=True), nullable=True)

    quote_number = Column(String(50), nullable=False)
    status = Column(Enum(QuotationStatus), nullable=False, default=QuotationStatus.DRAFT)
    currency = Column(String(3), nullable=False, default="USD")

    issue_date = Column(Date, nullable=False, default=date.today)
    expiry_date = Column(Date, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_type = Column(Enum(DiscountType), nullable=True)
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)

    client = relationship("Client")
    project = relationship("Project")
    items = relationship(
        "InvoiceItem",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "quote_number", name="uq_quotation_tenant_number"),
    )

    @property
    def client_name(self):
        return self.client.name if self.client else None

    @property
    def client_email(self):
        return self.client.email if self.client else None

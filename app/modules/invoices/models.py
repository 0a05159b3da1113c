from app.database.database import Base
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint,
    Numeric, Enum, Date, Text
)
from sqlalchemy.orm import relationship
from datetime import date
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
from app.core.config import settings
import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"          # Not yet sent to the client
    SENT = "sent"            # Sent, awaiting payment
    PARTIAL = "partial"      # Partially paid
    PAID = "paid"            # Fully paid
    OVERDUE = "overdue"      # Past due date with balance
    CANCELLED = "cancelled"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DocumentType(str, enum.Enum):
    INVOICE = "invoice"
    QUOTATION = "quotation"


# Statuses that still expect money from the client
OPEN_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.PARTIAL, InvoiceStatus.OVERDUE)
UNPAID_STATUSES = (InvoiceStatus.DRAFT,) + OPEN_STATUSES


class Invoice(Base, TenantMixin, TimestampMixin):
    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)

    # References
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    project_id = Column(UUID(as_uuid=True), ForeignKey("projects.id"), nullable=True, index=True)
    quotation_id = Column(UUID(as_uuid=True), ForeignKey("quotations.id"), nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    recurring_invoice_id = Column(UUID(as_uuid=True), nullable=True, index=True)

    # Invoice data
    invoice_number = Column(String(50), nullable=False)
    status = Column(Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT)
    currency = Column(String(3), nullable=False, default="USD")
    is_recurring = Column(Boolean, nullable=False, default=False)

    # Dates
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Content
    notes = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)

    # Totals (calculated)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_type = Column(Enum(DiscountType), nullable=True)
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(12, 2), nullable=False, default=0)
    amount_due = Column(Numeric(12, 2), nullable=False, default=0)

    # Public link used by the payment page
    payment_token = Column(String(64), unique=True, nullable=False, index=True)

    # Relationships
    client = relationship("Client")
    project = relationship("Project")
    created_by_user = relationship("User")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position"
    )
    payments = relationship("Payment", back_populates="invoice", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoice_tenant_number"),
    )

    @property
    def client_name(self):
        return self.client.name if self.client else None

    @property
    def client_email(self):
        return self.client.email if self.client else None

    @property
    def payment_link(self):
        return f"{settings.FRONTEND_URL}/invoice/pay/{self.payment_token}"

    @property
    def public_link(self):
        return f"{settings.FRONTEND_URL}/invoice/public/{self.payment_token}"

    def is_overdue(self, today: date) -> bool:
        return (
            self.status in OPEN_STATUSES
            and self.due_date is not None
            and self.due_date < today
            and self.amount_due > 0
        )


class InvoiceItem(Base, TimestampMixin):
    """Line item shared by invoices and quotations."""
    __tablename__ = "invoice_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=True, index=True)
    quotation_id = Column(UUID(as_uuid=True), ForeignKey("quotations.id", ondelete="CASCADE"), nullable=True, index=True)

    description = Column(String(500), nullable=False)
    quantity = Column(Numeric(12, 2), nullable=False, default=1)
    rate = Column(Numeric(12, 2), nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    # Relationships
    invoice = relationship("Invoice", back_populates="items")
    quotation = relationship("Quotation", back_populates="items")


class DocumentSequence(Base, TenantMixin, TimestampMixin):
    """Per-company numbering sequence for invoices and quotations"""
    __tablename__ = "document_sequences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    document_type = Column(Enum(DocumentType), nullable=False)
    prefix = Column(String(20), nullable=False)
    current_number = Column(Integer, nullable=False, default=0)
    padding = Column(Integer, nullable=False, default=4)

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_type", name="uq_sequence_tenant_type"),
    )

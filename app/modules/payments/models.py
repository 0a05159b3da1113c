from app.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Numeric, Enum, Date, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from datetime import date
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class GatewayType(str, enum.Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"


class PaymentMethod(str, enum.Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CHECK = "check"
    OTHER = "other"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentGateway(Base, TenantMixin, TimestampMixin):
    """Per-company gateway credentials. Secrets never leave the API unmasked."""
    __tablename__ = "payment_gateways"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    gateway = Column(Enum(GatewayType), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)
    config = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("tenant_id", "gateway", name="uq_gateway_tenant_type"),
    )


class Payment(Base, TenantMixin, TimestampMixin):
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False, default=date.today)
    method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.OTHER)
    gateway = Column(Enum(GatewayType), nullable=True)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.COMPLETED)
    transaction_id = Column(String(255), nullable=True, index=True)
    notes = Column(Text, nullable=True)

    invoice = relationship("Invoice", back_populates="payments")
    transactions = relationship("Transaction", back_populates="payment", cascade="all, delete-orphan")


class Transaction(Base, TenantMixin, TimestampMixin):
    """Raw record of a gateway operation (intent, order, capture)."""
    __tablename__ = "transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    payment_id = Column(UUID(as_uuid=True), ForeignKey("payments.id", ondelete="CASCADE"), nullable=True, index=True)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=True, index=True)

    transaction_id = Column(String(255), nullable=False, index=True)
    gateway = Column(Enum(GatewayType), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(50), nullable=False)
    # "metadata" is reserved on declarative classes
    meta = Column("metadata", JSON, nullable=True)

    payment = relationship("Payment", back_populates="transactions")

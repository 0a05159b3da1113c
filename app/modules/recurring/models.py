from app.database.database import Base
from sqlalchemy import Column, Boolean, ForeignKey, Enum, Date
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class RecurringFrequency(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class RecurringInvoice(Base, TenantMixin, TimestampMixin):
    """Schedule that copies a template invoice every period."""
    __tablename__ = "recurring_invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    template_invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    frequency = Column(Enum(RecurringFrequency), nullable=False, default=RecurringFrequency.MONTHLY)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    next_invoice_date = Column(Date, nullable=False, index=True)
    last_generated_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    auto_send = Column(Boolean, nullable=False, default=False)

    client = relationship("Client")
    template_invoice = relationship("Invoice", foreign_keys=[template_invoice_id])

    @property
    def client_name(self):
        return self.client.name if self.client else None

    @property
    def template_invoice_number(self):
        return self.template_invoice.invoice_number if self.template_invoice else None

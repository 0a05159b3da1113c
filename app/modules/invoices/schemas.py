from pydantic import BaseModel, EmailStr, Field, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.invoices.models import InvoiceStatus, DiscountType
from app.modules.payments.schemas import PaymentOut


class DocumentTotals(BaseModel):
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal


# Line items (shared with quotations)
class InvoiceItemCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    quantity: Decimal = Field(Decimal("1"), gt=0)
    rate: Decimal = Field(Decimal("0"), ge=0)
    amount: Optional[Decimal] = Field(None, ge=0, description="Overrides quantity x rate when given")


class InvoiceItemOut(BaseModel):
    id: UUID
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal
    position: int

    class Config:
        from_attributes = True


class PricingFields(BaseModel):
    """Tax and discount inputs shared by invoices and quotations."""
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_type: Optional[DiscountType] = None
    discount_value: Decimal = Field(Decimal("0"), ge=0)

    @model_validator(mode='after')
    def validate_discount(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError('Percentage discount cannot exceed 100')
        return self


class InvoiceCreate(PricingFields):
    client_id: UUID
    project_id: Optional[UUID] = None
    issue_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[InvoiceItemCreate] = Field(default_factory=list)
    include_expenses: bool = Field(False, description="Bill uninvoiced billable project expenses")

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('Due date cannot be before the issue date')
        return self


class InvoiceUpdate(BaseModel):
    client_id: Optional[UUID] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: Optional[List[InvoiceItemCreate]] = Field(None, min_length=1)

    @model_validator(mode='after')
    def validate_due_date(self):
        if self.due_date and self.issue_date and self.due_date < self.issue_date:
            raise ValueError('Due date cannot be before the issue date')
        return self


class InvoiceOut(BaseModel):
    id: UUID
    invoice_number: str
    client_id: UUID
    client_name: Optional[str] = None
    project_id: Optional[UUID] = None
    quotation_id: Optional[UUID] = None
    status: InvoiceStatus
    issue_date: date
    due_date: Optional[date]
    currency: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Decimal
    discount_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    is_recurring: bool
    sent_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    payment_link: str

    class Config:
        from_attributes = True


class InvoiceDetail(InvoiceOut):
    notes: Optional[str] = None
    terms: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    items: List[InvoiceItemOut] = []
    payments: List[PaymentOut] = []


class StatusCount(BaseModel):
    status: InvoiceStatus
    count: int


class InvoiceFilters(BaseModel):
    status: Optional[InvoiceStatus] = None
    client_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search: Optional[str] = None


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int
    limit: int
    offset: int
    counts_by_status: List[StatusCount] = []


class InvoiceSendRequest(BaseModel):
    to_email: Optional[EmailStr] = Field(None, description="Defaults to the client's email")
    subject: Optional[str] = Field(None, max_length=200)
    message: Optional[str] = Field(None, max_length=5000)


class DocumentSendResponse(BaseModel):
    status: str
    task_id: Optional[str] = None
    message: str
    recipient: str


class InvoiceCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ProjectBillingPreview(BaseModel):
    project_id: UUID
    project_type: str
    total_hours: Decimal = Decimal("0")
    items: List[InvoiceItemCreate]
    time_entry_ids: List[UUID] = []
    expense_ids: List[UUID] = []
    estimated_totals: Optional[DocumentTotals] = None


class NextNumberResponse(BaseModel):
    next_number: str


class PublicInvoiceOut(BaseModel):
    """Invoice as seen on the public invoice/payment page."""
    invoice_number: str
    status: InvoiceStatus
    issue_date: date
    due_date: Optional[date]
    currency: str
    company_name: str
    company_email: Optional[str] = None
    client_name: Optional[str] = None
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[InvoiceItemOut] = []
    available_gateways: List[str] = []

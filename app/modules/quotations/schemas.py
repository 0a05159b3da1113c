from pydantic import BaseModel, Field, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.invoices.models import DiscountType
from app.modules.invoices.schemas import InvoiceItemCreate, InvoiceItemOut, PricingFields
from app.modules.quotations.models import QuotationStatus


class QuotationCreate(PricingFields):
    client_id: UUID
    project_id: Optional[UUID] = None
    issue_date: date = Field(default_factory=date.today)
    expiry_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[InvoiceItemCreate] = Field(..., min_length=1)

    @model_validator(mode='after')
    def validate_expiry_date(self):
        if self.expiry_date and self.issue_date and self.expiry_date < self.issue_date:
            raise ValueError('Expiry date cannot be before the issue date')
        return self


class QuotationUpdate(BaseModel):
    client_id: Optional[UUID] = None
    project_id: Optional[UUID] = None
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: Optional[List[InvoiceItemCreate]] = Field(None, min_length=1)


class QuotationOut(BaseModel):
    id: UUID
    quote_number: str
    client_id: UUID
    client_name: Optional[str] = None
    project_id: Optional[UUID] = None
    status: QuotationStatus
    issue_date: date
    expiry_date: Optional[date] = None
    currency: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_type: Optional[DiscountType] = None
    discount_value: Decimal
    discount_amount: Decimal
    total: Decimal
    converted_invoice_id: Optional[UUID] = None
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class QuotationDetail(QuotationOut):
    notes: Optional[str] = None
    terms: Optional[str] = None
    items: List[InvoiceItemOut] = []


class QuotationStatusCount(BaseModel):
    status: QuotationStatus
    count: int


class QuotationList(BaseModel):
    quotations: List[QuotationOut]
    total: int
    limit: int
    offset: int
    counts_by_status: List[QuotationStatusCount] = []


class BulkDeleteRequest(BaseModel):
    ids: List[UUID] = Field(..., min_length=1, max_length=100)


class BulkDeleteResult(BaseModel):
    deleted: int
    not_found: List[UUID] = []


class ConvertToInvoiceRequest(BaseModel):
    issue_date: Optional[date] = None
    due_date: Optional[date] = None

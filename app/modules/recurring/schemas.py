from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.modules.recurring.models import RecurringFrequency


class RecurringInvoiceCreate(BaseModel):
    template_invoice_id: UUID
    frequency: RecurringFrequency = RecurringFrequency.MONTHLY
    start_date: date
    end_date: Optional[date] = None
    auto_send: bool = False

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError('End date cannot be before the start date')
        return self


class RecurringInvoiceUpdate(BaseModel):
    frequency: Optional[RecurringFrequency] = None
    end_date: Optional[date] = None
    next_invoice_date: Optional[date] = None
    auto_send: Optional[bool] = None
    is_active: Optional[bool] = None


class RecurringInvoiceOut(BaseModel):
    id: UUID
    client_id: UUID
    client_name: Optional[str] = None
    template_invoice_id: UUID
    template_invoice_number: Optional[str] = None
    frequency: RecurringFrequency
    start_date: date
    end_date: Optional[date] = None
    next_invoice_date: date
    last_generated_date: Optional[date] = None
    is_active: bool
    auto_send: bool
    created_at: datetime

    class Config:
        from_attributes = True


class RecurringInvoiceList(BaseModel):
    items: List[RecurringInvoiceOut]
    total: int
    limit: int
    offset: int


class GenerationResult(BaseModel):
    generated: int
    invoice_ids: List[UUID] = []
    deactivated: int = 0
    failed: int = 0

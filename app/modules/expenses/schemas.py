from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date

from app.common.validators import validate_currency_code


class ExpenseBase(BaseModel):
    project_id: Optional[UUID] = None
    category: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    currency: str = Field("USD", min_length=3, max_length=3)
    expense_date: date
    description: Optional[str] = None
    receipt_url: Optional[str] = Field(None, max_length=500)
    is_billable: bool = False

    @field_validator('currency')
    @classmethod
    def check_currency(cls, v):
        if not validate_currency_code(v):
            raise ValueError('Currency must be a three letter ISO code')
        return v.upper()


class ExpenseCreate(ExpenseBase):
    pass


class ExpenseUpdate(BaseModel):
    project_id: Optional[UUID] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    expense_date: Optional[date] = None
    description: Optional[str] = None
    receipt_url: Optional[str] = Field(None, max_length=500)
    is_billable: Optional[bool] = None

    @field_validator('currency')
    @classmethod
    def check_currency(cls, v):
        if v is not None and not validate_currency_code(v):
            raise ValueError('Currency must be a three letter ISO code')
        return v.upper() if v else v


class ExpenseOut(ExpenseBase):
    id: UUID
    project_name: Optional[str] = None
    is_invoiced: bool
    invoice_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class ExpenseList(BaseModel):
    items: List[ExpenseOut]
    total: int
    total_amount: Decimal
    limit: int
    offset: int


class CategoryTotal(BaseModel):
    category: str
    count: int
    total: Decimal

from pydantic import BaseModel, EmailStr, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from app.common.validators import validate_phone, format_phone, validate_currency_code
from app.modules.company.schemas import Address


class ClientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    company_name: Optional[str] = Field(None, max_length=200)
    address: Optional[Address] = None
    currency: str = Field("USD", min_length=3, max_length=3)
    notes: Optional[str] = None

    @field_validator('phone')
    @classmethod
    def validate_phone_number(cls, v):
        if v is None or v.strip() == "":
            return None
        if not validate_phone(v):
            raise ValueError('Invalid phone number')
        return format_phone(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        if not validate_currency_code(v):
            raise ValueError('Currency must be a three letter ISO code')
        return v.upper()


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=30)
    company_name: Optional[str] = Field(None, max_length=200)
    address: Optional[Address] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator('phone')
    @classmethod
    def validate_phone_number(cls, v):
        if v is None or v.strip() == "":
            return None
        if not validate_phone(v):
            raise ValueError('Invalid phone number')
        return format_phone(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        if v is not None and not validate_currency_code(v):
            raise ValueError('Currency must be a three letter ISO code')
        return v.upper() if v else v


class ClientOut(ClientBase):
    id: UUID
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ClientList(BaseModel):
    items: List[ClientOut]
    total: int
    limit: int
    offset: int


class ClientSummary(BaseModel):
    client_id: UUID
    total_invoiced: Decimal
    total_paid: Decimal
    outstanding: Decimal
    invoice_count: int
    project_count: int
    active_project_count: int
    hours_tracked: Decimal

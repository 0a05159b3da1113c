from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, Literal
from uuid import UUID
from datetime import datetime
from app.common.validators import validate_phone, format_phone, validate_currency_code


class Address(BaseModel):
    street: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)


class CompanyBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[Address] = None
    logo_url: Optional[str] = Field(None, max_length=500)
    vat_tin: Optional[str] = Field(None, max_length=50)
    currency: str = Field("USD", min_length=3, max_length=3)
    timezone: str = Field("UTC", max_length=64)

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


class CompanyCreate(CompanyBase):
    invoice_prefix: str = Field("INV-", max_length=20)
    quote_prefix: str = Field("Q-", max_length=20)


class CompanyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    address: Optional[Address] = None
    logo_url: Optional[str] = Field(None, max_length=500)
    vat_tin: Optional[str] = Field(None, max_length=50)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    timezone: Optional[str] = Field(None, max_length=64)

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


class CompanyOut(CompanyBase):
    id: UUID
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class CompanyOutWithRole(CompanyOut):
    role: str


class MemberCreate(BaseModel):
    email: EmailStr
    role: Literal["admin", "member", "accountant", "viewer"] = "member"


class CompanyMemberOut(BaseModel):
    user_id: UUID
    email: str
    full_name: Optional[str] = None
    role: str
    is_active: bool
    joined_at: datetime

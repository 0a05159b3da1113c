from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any
from uuid import UUID
from decimal import Decimal
from datetime import datetime
import enum

from app.common.validators import validate_currency_code


class EmailProvider(str, enum.Enum):
    SYSTEM = "system"
    RESEND = "resend"
    BREVO = "brevo"


class EmailSettings(BaseModel):
    provider: EmailProvider = EmailProvider.SYSTEM
    api_key: Optional[str] = None
    from_email: Optional[str] = Field(None, max_length=200)
    from_name: Optional[str] = Field(None, max_length=100)


class SettingsUpdate(BaseModel):
    invoice_terms: Optional[str] = None
    invoice_footer: Optional[str] = None
    email_signature: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    timezone: Optional[str] = Field(None, max_length=64)
    date_format: Optional[str] = Field(None, max_length=20)
    default_tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    default_due_days: Optional[int] = Field(None, ge=0, le=365)
    notification_preferences: Optional[Dict[str, bool]] = None
    email_settings: Optional[EmailSettings] = None

    invoice_prefix: Optional[str] = Field(None, max_length=20)
    invoice_next_number: Optional[int] = Field(None, ge=1)
    quote_prefix: Optional[str] = Field(None, max_length=20)
    quote_next_number: Optional[int] = Field(None, ge=1)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        if v is None:
            return v
        if not validate_currency_code(v):
            raise ValueError("Currency must be a 3-letter ISO code")
        return v.upper()


class SettingsOut(BaseModel):
    id: UUID
    invoice_terms: Optional[str] = None
    invoice_footer: Optional[str] = None
    email_signature: Optional[str] = None
    currency: str
    timezone: str
    date_format: str
    default_tax_rate: Decimal
    default_due_days: int
    notification_preferences: Dict[str, Any]
    email_settings: Dict[str, Any]
    invoice_prefix: str
    invoice_next_number: int
    quote_prefix: str
    quote_next_number: int
    updated_at: Optional[datetime] = None

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from uuid import UUID

from app.common.validators import validate_hex_color
from app.modules.pdf.models import PdfTemplate


def check_color(value):
    if value is not None and not validate_hex_color(value):
        raise ValueError('Colors must use the #RRGGBB format')
    return value.upper() if value else value


class PdfSettingsUpdate(BaseModel):
    template: Optional[PdfTemplate] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    text_color: Optional[str] = None
    border_color: Optional[str] = None
    show_logo: Optional[bool] = None
    show_signature: Optional[bool] = None
    signature_url: Optional[str] = Field(None, max_length=500)
    footer_text: Optional[str] = Field(None, max_length=500)
    payment_terms: Optional[str] = Field(None, max_length=1000)

    @field_validator('primary_color', 'secondary_color', 'text_color', 'border_color')
    @classmethod
    def validate_colors(cls, v):
        return check_color(v)


class PdfSettingsOut(BaseModel):
    id: UUID
    template: PdfTemplate
    primary_color: str
    secondary_color: str
    text_color: str
    border_color: str
    show_logo: bool
    show_signature: bool
    signature_url: Optional[str] = None
    footer_text: Optional[str] = None
    payment_terms: Optional[str] = None

    class Config:
        from_attributes = True

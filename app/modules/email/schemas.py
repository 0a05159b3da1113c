from pydantic import BaseModel, EmailStr, Field
from typing import Optional, Dict, Any
from uuid import UUID
from datetime import datetime

from app.modules.email.models import TemplateType


class EmailTemplateCreate(BaseModel):
    type: TemplateType
    name: str = Field(..., min_length=1, max_length=100)
    subject: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1)
    is_default: bool = False


class EmailTemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    subject: Optional[str] = Field(None, min_length=1, max_length=200)
    body: Optional[str] = Field(None, min_length=1)
    is_default: Optional[bool] = None


class EmailTemplateOut(BaseModel):
    id: UUID
    type: TemplateType
    name: str
    subject: str
    body: str
    is_default: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TemplatePreviewRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1)
    context: Optional[Dict[str, Any]] = None


class TemplatePreviewOut(BaseModel):
    subject: str
    body: str


class TestEmailRequest(BaseModel):
    to_email: EmailStr
    subject: str = "Test Email from BillSense"
    message: str = "This is a test email to verify your email configuration."

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from app.common.validators import validate_phone, format_phone


# Profile schemas
class ProfileCreate(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=120)
    phone_number: Optional[str] = Field(None, max_length=20)

    @field_validator('phone_number')
    @classmethod
    def validate_phone_number(cls, v):
        if v is None or v.strip() == "":
            return v
        if not validate_phone(v):
            raise ValueError('Invalid phone number. Use 7 to 15 digits with an optional leading +')
        return format_phone(v)


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=120)
    phone_number: Optional[str] = Field(None, max_length=20)
    avatar_url: Optional[str] = Field(None, max_length=500)

    @field_validator('phone_number')
    @classmethod
    def validate_phone_number(cls, v):
        if v is None or v.strip() == "":
            return v
        if not validate_phone(v):
            raise ValueError('Invalid phone number. Use 7 to 15 digits with an optional leading +')
        return format_phone(v)


class ProfileOut(BaseModel):
    id: UUID
    full_name: str
    phone_number: Optional[str]
    avatar_url: Optional[str]

    class Config:
        from_attributes = True


# User schemas
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    profile: ProfileCreate


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    is_active: bool
    last_login: Optional[datetime] = None
    profile: ProfileOut

    class Config:
        from_attributes = True


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=72)


class UserCompanyOut(BaseModel):
    id: UUID
    company_id: UUID
    role: str
    is_active: bool
    joined_at: datetime
    company_name: str

    class Config:
        from_attributes = True


# Token schemas
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut
    companies: List[UserCompanyOut] = []
    refresh_token: Optional[str] = None


class ContextTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    tenant_id: UUID
    company_name: str
    user_role: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class CompanySelectionRequest(BaseModel):
    company_id: UUID


class AuthContext(BaseModel):
    user_id: UUID
    tenant_id: Optional[UUID] = None
    user_role: Optional[str] = None
    companies: List[UserCompanyOut] = []

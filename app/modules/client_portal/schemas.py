from pydantic import BaseModel, EmailStr, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from app.modules.projects.schemas import ProjectOut


class ClientInviteRequest(BaseModel):
    client_id: UUID
    email: EmailStr
    is_resend: bool = False


class ClientUserOut(BaseModel):
    id: UUID
    client_id: UUID
    client_name: Optional[str] = None
    email: str
    is_active: bool
    invited_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    last_login: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ClientInviteOut(BaseModel):
    client_user: ClientUserOut
    invite_link: str
    invite_expires_at: datetime
    task_id: Optional[str] = None


class AcceptInviteRequest(BaseModel):
    token: str = Field(..., min_length=10)
    password: str = Field(..., min_length=8, max_length=128)


class ClientLoginRequest(BaseModel):
    email: EmailStr
    password: str
    company_id: Optional[UUID] = Field(None, description="Needed when the email has portal access at several companies")


class ClientTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    client_user: ClientUserOut


class PortalMe(BaseModel):
    client_user: ClientUserOut
    client_name: str
    company_id: UUID
    company_name: str


class PortalDashboard(BaseModel):
    currency: str
    outstanding_amount: Decimal
    paid_amount: Decimal
    total_billed: Decimal
    invoice_count: int
    open_invoice_count: int
    overdue_invoice_count: int
    active_projects: int
    hours_this_month: Decimal


class PortalTimeLog(BaseModel):
    id: UUID
    project_id: UUID
    project_name: Optional[str] = None
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    is_billable: bool

    class Config:
        from_attributes = True


class PortalTimeLogList(BaseModel):
    items: List[PortalTimeLog]
    total: int
    total_seconds: int
    limit: int
    offset: int


class PortalProjectDetail(ProjectOut):
    total_hours: Decimal
    time_logs: List[PortalTimeLog] = []

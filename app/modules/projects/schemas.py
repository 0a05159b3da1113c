from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from app.common.validators import validate_currency_code
from app.modules.projects.models import ProjectType, ProjectStatus, TaskStatus


class ProjectCreate(BaseModel):
    client_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    project_type: ProjectType = ProjectType.HOURLY
    hourly_rate: Decimal = Field(Decimal("0"), ge=0)
    fixed_price: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    status: ProjectStatus = ProjectStatus.ACTIVE
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget_hours: Optional[Decimal] = Field(None, ge=0)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v):
        if v is not None and not validate_currency_code(v):
            raise ValueError('Currency must be a three letter ISO code')
        return v.upper() if v else v

    @model_validator(mode='after')
    def validate_pricing(self):
        if self.project_type == ProjectType.HOURLY and self.hourly_rate <= 0:
            raise ValueError('Hourly projects need an hourly rate greater than 0')
        if self.project_type == ProjectType.FIXED and (self.fixed_price is None or self.fixed_price <= 0):
            raise ValueError('Fixed price projects need a fixed price greater than 0')
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError('End date cannot be before the start date')
        return self


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    project_type: Optional[ProjectType] = None
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    fixed_price: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    status: Optional[ProjectStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget_hours: Optional[Decimal] = Field(None, ge=0)


class ProjectStatusUpdate(BaseModel):
    status: ProjectStatus


class ProjectOut(BaseModel):
    id: UUID
    client_id: UUID
    client_name: Optional[str] = None
    name: str
    description: Optional[str] = None
    project_type: ProjectType
    hourly_rate: Decimal
    fixed_price: Optional[Decimal] = None
    currency: str
    status: ProjectStatus
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget_hours: Optional[Decimal] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProjectList(BaseModel):
    items: List[ProjectOut]
    total: int
    limit: int
    offset: int


class ProjectSummary(BaseModel):
    project_id: UUID
    project_type: ProjectType
    status: ProjectStatus
    tracked_seconds: int
    tracked_hours: Decimal
    billable_hours: Decimal
    unbilled_hours: Decimal
    unbilled_amount: Decimal
    invoiced_total: Decimal
    budget_used_percent: Optional[Decimal] = None


class TaskCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    estimated_hours: Optional[Decimal] = Field(None, ge=0)
    status: TaskStatus = TaskStatus.TODO


class TaskUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    estimated_hours: Optional[Decimal] = Field(None, ge=0)
    status: Optional[TaskStatus] = None


class TaskOut(BaseModel):
    id: UUID
    project_id: UUID
    name: str
    description: Optional[str] = None
    estimated_hours: Optional[Decimal] = None
    status: TaskStatus
    created_at: datetime

    class Config:
        from_attributes = True

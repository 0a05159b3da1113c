from pydantic import BaseModel, Field, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime


class TimerStart(BaseModel):
    project_id: UUID
    task_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=500)
    is_billable: bool = True


class TimerStop(BaseModel):
    entry_id: Optional[UUID] = Field(None, description="Defaults to the user's running entry")


class TimeEntryCreate(BaseModel):
    project_id: UUID
    task_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=500)
    start_time: datetime
    end_time: datetime
    is_billable: bool = True
    hourly_rate: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode='after')
    def validate_range(self):
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time')
        return self


class TimeEntryUpdate(BaseModel):
    project_id: Optional[UUID] = None
    task_id: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=500)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_billable: Optional[bool] = None
    hourly_rate: Optional[Decimal] = Field(None, ge=0)


class TimeEntryOut(BaseModel):
    id: UUID
    user_id: UUID
    project_id: UUID
    project_name: Optional[str] = None
    task_id: Optional[UUID] = None
    invoice_id: Optional[UUID] = None
    description: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    is_running: bool
    is_billable: bool
    hourly_rate: Optional[Decimal] = None

    class Config:
        from_attributes = True


class TimeEntryList(BaseModel):
    items: List[TimeEntryOut]
    total: int
    total_seconds: int
    limit: int
    offset: int


class ProjectTime(BaseModel):
    project_id: UUID
    project_name: str
    seconds: int
    hours: Decimal


class TimeSummary(BaseModel):
    today_seconds: int
    week_seconds: int
    month_seconds: int
    week_hours: Decimal
    month_hours: Decimal
    running_entry: Optional[TimeEntryOut] = None
    by_project: List[ProjectTime] = []

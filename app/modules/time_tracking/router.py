from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, WRITER_ROLES
from app.modules.time_tracking.service import TimeTrackingService
from app.modules.time_tracking.schemas import (
    TimerStart, TimerStop, TimeEntryCreate, TimeEntryUpdate, TimeEntryOut, TimeEntryList, TimeSummary
)

router = APIRouter(prefix="/time-entries", tags=["Time Tracking"])


@router.post("/start", response_model=TimeEntryOut, status_code=status.HTTP_201_CREATED)
def start_timer(
    data: TimerStart,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    """
    Start a timer on a project. Returns 409 if the user already has one running.
    """
    return TimeTrackingService(db).start_timer(data, auth_context.tenant_id, auth_context.user_id)


@router.post("/stop", response_model=TimeEntryOut)
def stop_timer(
    data: Optional[TimerStop] = None,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    entry_id = data.entry_id if data else None
    return TimeTrackingService(db).stop_timer(auth_context.tenant_id, auth_context.user_id, entry_id)


@router.get("/running", response_model=Optional[TimeEntryOut])
def get_running_timer(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    entry = TimeTrackingService(db).get_running_entry(auth_context.user_id)
    if entry and entry.tenant_id == auth_context.tenant_id:
        return entry
    return None


@router.get("/summary", response_model=TimeSummary)
def get_time_summary(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return TimeTrackingService(db).get_summary(auth_context.tenant_id, auth_context.user_id)


@router.post("/", response_model=TimeEntryOut, status_code=status.HTTP_201_CREATED)
def create_time_entry(
    data: TimeEntryCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    return TimeTrackingService(db).create_manual_entry(data, auth_context.tenant_id, auth_context.user_id)


@router.get("/", response_model=TimeEntryList)
def list_time_entries(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    project_id: Optional[UUID] = Query(None),
    user_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    is_billable: Optional[bool] = Query(None),
    is_running: Optional[bool] = Query(None),
    unbilled_only: bool = Query(False),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return TimeTrackingService(db).get_entries(
        auth_context.tenant_id, limit, offset, project_id, user_id,
        date_from, date_to, is_billable, is_running, unbilled_only
    )


@router.get("/{entry_id}", response_model=TimeEntryOut)
def get_time_entry(
    entry_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return TimeTrackingService(db).get_entry_by_id(entry_id, auth_context.tenant_id)


@router.patch("/{entry_id}", response_model=TimeEntryOut)
def update_time_entry(
    entry_id: UUID,
    data: TimeEntryUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    """
    Edit an entry. Invoiced entries are read-only.
    """
    return TimeTrackingService(db).update_entry(entry_id, data, auth_context.tenant_id)


@router.delete("/{entry_id}")
def delete_time_entry(
    entry_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    return TimeTrackingService(db).delete_entry(entry_id, auth_context.tenant_id)

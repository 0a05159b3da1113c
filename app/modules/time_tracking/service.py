import logging
import math
from datetime import datetime, timedelta, timezone, date
from typing import Dict, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.common.validators import ensure_utc
from app.modules.projects.models import Task
from app.modules.projects.service import ProjectService, seconds_to_hours
from app.modules.time_tracking.models import TimeEntry
from app.modules.time_tracking.schemas import (
    TimerStart, TimeEntryCreate, TimeEntryUpdate, TimeEntryList, TimeSummary, ProjectTime, TimeEntryOut
)

logger = logging.getLogger(__name__)

# Columns an update may change but never clear
REQUIRED_ENTRY_FIELDS = ("project_id", "start_time", "is_billable")


def compute_duration(start_time: datetime, end_time: datetime) -> int:
    """Whole seconds between start and end."""
    return int(math.floor((ensure_utc(end_time) - ensure_utc(start_time)).total_seconds()))


def start_of_day(value: date) -> datetime:
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


class TimeTrackingService:

    def __init__(self, db: Session):
        self.db = db

    def _validate_task(self, task_id: Optional[UUID], project_id: UUID, tenant_id: UUID):
        if task_id is None:
            return
        task = self.db.query(Task).filter(
            Task.id == task_id,
            Task.project_id == project_id,
            Task.tenant_id == tenant_id
        ).first()
        if not task:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Task not found in this project"
            )

    def get_running_entry(self, user_id: UUID) -> Optional[TimeEntry]:
        return self.db.query(TimeEntry).options(selectinload(TimeEntry.project)).filter(
            TimeEntry.user_id == user_id,
            TimeEntry.is_running == True
        ).first()

    def start_timer(self, data: TimerStart, tenant_id: UUID, user_id: UUID) -> TimeEntry:
        """Start a timer. A user can only have one running entry."""
        running = self.get_running_entry(user_id)
        if running:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A timer is already running. Stop it before starting a new one."
            )

        ProjectService(self.db).get_project_by_id(data.project_id, tenant_id)
        self._validate_task(data.task_id, data.project_id, tenant_id)

        try:
            entry = TimeEntry(
                tenant_id=tenant_id,
                user_id=user_id,
                project_id=data.project_id,
                task_id=data.task_id,
                description=data.description,
                start_time=datetime.now(timezone.utc),
                is_running=True,
                is_billable=data.is_billable
            )
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
            logger.info(f"Timer started: entry {entry.id} for user {user_id} on project {data.project_id}")
            return entry
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error starting timer: {str(e)}"
            )

    def stop_timer(self, tenant_id: UUID, user_id: UUID, entry_id: Optional[UUID] = None) -> TimeEntry:
        query = self.db.query(TimeEntry).filter(
            TimeEntry.tenant_id == tenant_id,
            TimeEntry.user_id == user_id,
            TimeEntry.is_running == True
        )
        if entry_id:
            query = query.filter(TimeEntry.id == entry_id)

        entry = query.first()
        if not entry:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No running timer found"
            )

        end_time = datetime.now(timezone.utc)
        entry.end_time = end_time
        entry.duration = max(0, compute_duration(entry.start_time, end_time))
        entry.is_running = False

        self.db.commit()
        self.db.refresh(entry)
        logger.info(f"Timer stopped: entry {entry.id} ({entry.duration}s)")
        return entry

    def create_manual_entry(self, data: TimeEntryCreate, tenant_id: UUID, user_id: UUID) -> TimeEntry:
        ProjectService(self.db).get_project_by_id(data.project_id, tenant_id)
        self._validate_task(data.task_id, data.project_id, tenant_id)

        start_time = ensure_utc(data.start_time)
        end_time = ensure_utc(data.end_time)

        entry = TimeEntry(
            tenant_id=tenant_id,
            user_id=user_id,
            project_id=data.project_id,
            task_id=data.task_id,
            description=data.description,
            start_time=start_time,
            end_time=end_time,
            duration=compute_duration(start_time, end_time),
            is_running=False,
            is_billable=data.is_billable,
            hourly_rate=data.hourly_rate
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def get_entry_by_id(self, entry_id: UUID, tenant_id: UUID) -> TimeEntry:
        entry = self.db.query(TimeEntry).options(selectinload(TimeEntry.project)).filter(
            TimeEntry.id == entry_id,
            TimeEntry.tenant_id == tenant_id
        ).first()
        if not entry:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Time entry not found"
            )
        return entry

    def update_entry(self, entry_id: UUID, data: TimeEntryUpdate, tenant_id: UUID) -> TimeEntry:
        entry = self.get_entry_by_id(entry_id, tenant_id)
        if entry.is_billed:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Time entry has been invoiced and cannot be modified"
            )

        update_data = {
            field: value for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field not in REQUIRED_ENTRY_FIELDS
        }
        if update_data.get("project_id"):
            ProjectService(self.db).get_project_by_id(update_data["project_id"], tenant_id)
        if update_data.get("task_id"):
            self._validate_task(update_data["task_id"], update_data.get("project_id") or entry.project_id, tenant_id)

        if entry.is_running and "end_time" in update_data:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Stop the timer instead of setting an end time"
            )

        for field, value in update_data.items():
            if field in ("start_time", "end_time") and value is not None:
                value = ensure_utc(value)
            setattr(entry, field, value)

        if not entry.is_running:
            if entry.end_time is None or ensure_utc(entry.end_time) <= ensure_utc(entry.start_time):
                self.db.rollback()
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="End time must be after start time"
                )
            entry.duration = compute_duration(entry.start_time, entry.end_time)

        self.db.commit()
        self.db.refresh(entry)
        return entry

    def delete_entry(self, entry_id: UUID, tenant_id: UUID) -> Dict[str, str]:
        entry = self.get_entry_by_id(entry_id, tenant_id)
        if entry.is_billed:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Time entry has been invoiced and cannot be deleted"
            )
        self.db.delete(entry)
        self.db.commit()
        return {"message": "Time entry deleted successfully"}

    def get_entries(
        self,
        tenant_id: UUID,
        limit: int = 100,
        offset: int = 0,
        project_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        is_billable: Optional[bool] = None,
        is_running: Optional[bool] = None,
        unbilled_only: bool = False
    ) -> TimeEntryList:
        query = self.db.query(TimeEntry).filter(
            TimeEntry.tenant_id == tenant_id
        )
        if project_id:
            query = query.filter(TimeEntry.project_id == project_id)
        if user_id:
            query = query.filter(TimeEntry.user_id == user_id)
        if date_from:
            query = query.filter(TimeEntry.start_time >= start_of_day(date_from))
        if date_to:
            query = query.filter(TimeEntry.start_time < start_of_day(date_to + timedelta(days=1)))
        if is_billable is not None:
            query = query.filter(TimeEntry.is_billable == is_billable)
        if is_running is not None:
            query = query.filter(TimeEntry.is_running == is_running)
        if unbilled_only:
            query = query.filter(TimeEntry.invoice_id.is_(None))

        total = query.count()
        total_seconds = int(query.with_entities(func.coalesce(func.sum(TimeEntry.duration), 0)).scalar() or 0)
        entries = query.options(selectinload(TimeEntry.project)).order_by(
            TimeEntry.start_time.desc()
        ).offset(offset).limit(limit).all()
        return TimeEntryList(
            items=entries,
            total=total,
            total_seconds=total_seconds,
            limit=limit,
            offset=offset
        )

    def get_summary(self, tenant_id: UUID, user_id: UUID, now: Optional[datetime] = None) -> TimeSummary:
        """Tracked time today, this week (from Monday) and this month."""
        now = ensure_utc(now) if now else datetime.now(timezone.utc)
        today = now.date()
        day_start = start_of_day(today)
        week_start = start_of_day(today - timedelta(days=today.weekday()))
        month_start = start_of_day(today.replace(day=1))
        window_start = min(week_start, month_start)

        entries = self.db.query(TimeEntry).options(selectinload(TimeEntry.project)).filter(
            TimeEntry.tenant_id == tenant_id,
            TimeEntry.user_id == user_id,
            TimeEntry.is_running == False,
            TimeEntry.start_time >= window_start
        ).all()

        today_seconds = week_seconds = month_seconds = 0
        by_project: Dict[UUID, ProjectTime] = {}
        for entry in entries:
            started = ensure_utc(entry.start_time)
            seconds = entry.duration or 0
            if started >= day_start:
                today_seconds += seconds
            if started >= week_start:
                week_seconds += seconds
            if started >= month_start:
                month_seconds += seconds
                bucket = by_project.setdefault(entry.project_id, ProjectTime(
                    project_id=entry.project_id,
                    project_name=entry.project_name or "",
                    seconds=0,
                    hours=0
                ))
                bucket.seconds += seconds
                bucket.hours = seconds_to_hours(bucket.seconds)

        running = self.get_running_entry(user_id)
        return TimeSummary(
            today_seconds=today_seconds,
            week_seconds=week_seconds,
            month_seconds=month_seconds,
            week_hours=seconds_to_hours(week_seconds),
            month_hours=seconds_to_hours(month_seconds),
            running_entry=TimeEntryOut.model_validate(running) if running and running.tenant_id == tenant_id else None,
            by_project=sorted(by_project.values(), key=lambda p: p.seconds, reverse=True)
        )

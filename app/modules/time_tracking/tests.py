"""
Tests for timers and manual time entries.
"""
import pytest
from datetime import date, datetime, timedelta, timezone
from fastapi import HTTPException
from pydantic import ValidationError

from app.modules.time_tracking.models import TimeEntry
from app.modules.time_tracking.schemas import TimerStart, TimeEntryCreate, TimeEntryUpdate
from app.modules.time_tracking.service import TimeTrackingService, compute_duration, start_of_day


def manual_entry(project, start, minutes, **kwargs):
    return TimeEntryCreate(
        project_id=project.id,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        **kwargs
    )


class TestHelpers:

    def test_compute_duration_naive_and_aware(self):
        start = datetime(2026, 1, 1, 8, 0)
        end = datetime(2026, 1, 1, 9, 30, 45, tzinfo=timezone.utc)
        assert compute_duration(start, end) == 5445

    def test_start_of_day(self):
        assert start_of_day(date(2026, 2, 3)) == datetime(2026, 2, 3, tzinfo=timezone.utc)

    def test_end_before_start_rejected(self, sample_project):
        start = datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)
        with pytest.raises(ValidationError):
            TimeEntryCreate(project_id=sample_project.id, start_time=start, end_time=start)


class TestTimer:

    def test_start_and_stop(self, db_session, sample_company, sample_user, sample_project):
        service = TimeTrackingService(db_session)
        entry = service.start_timer(TimerStart(project_id=sample_project.id), sample_company.id, sample_user.id)
        assert entry.is_running
        assert entry.duration is None

        # Pretend the timer has been running for 90 minutes
        entry.start_time = datetime.now(timezone.utc) - timedelta(minutes=90)
        db_session.commit()

        stopped = service.stop_timer(sample_company.id, sample_user.id)
        assert not stopped.is_running
        assert stopped.end_time is not None
        assert 90 * 60 <= stopped.duration <= 90 * 60 + 5

    def test_one_running_timer(self, db_session, sample_company, sample_user, sample_project):
        service = TimeTrackingService(db_session)
        service.start_timer(TimerStart(project_id=sample_project.id), sample_company.id, sample_user.id)
        with pytest.raises(HTTPException) as exc_info:
            service.start_timer(TimerStart(project_id=sample_project.id), sample_company.id, sample_user.id)
        assert exc_info.value.status_code == 409
        assert db_session.query(TimeEntry).filter(TimeEntry.is_running == True).count() == 1

    def test_stop_without_timer(self, db_session, sample_company, sample_user):
        with pytest.raises(HTTPException) as exc_info:
            TimeTrackingService(db_session).stop_timer(sample_company.id, sample_user.id)
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "No running timer found"

    def test_start_on_foreign_project(self, db_session, sample_user, sample_project, other_company):
        with pytest.raises(HTTPException) as exc_info:
            TimeTrackingService(db_session).start_timer(
                TimerStart(project_id=sample_project.id), other_company.company.id, sample_user.id
            )
        assert exc_info.value.status_code == 404


class TestManualEntries:

    def test_create_computes_duration(self, db_session, sample_company, sample_user, sample_project):
        start = datetime(2026, 4, 6, 13, 0, tzinfo=timezone.utc)
        entry = TimeTrackingService(db_session).create_manual_entry(
            manual_entry(sample_project, start, 45), sample_company.id, sample_user.id
        )
        assert entry.duration == 45 * 60
        assert not entry.is_running

    def test_update_recomputes_duration(self, db_session, sample_company, sample_user, sample_project):
        service = TimeTrackingService(db_session)
        start = datetime(2026, 4, 6, 13, 0, tzinfo=timezone.utc)
        entry = service.create_manual_entry(manual_entry(sample_project, start, 45), sample_company.id, sample_user.id)

        updated = service.update_entry(
            entry.id, TimeEntryUpdate(end_time=start + timedelta(hours=2)), sample_company.id
        )
        assert updated.duration == 2 * 3600

    def test_update_end_before_start(self, db_session, sample_company, sample_user, sample_project):
        service = TimeTrackingService(db_session)
        start = datetime(2026, 4, 6, 13, 0, tzinfo=timezone.utc)
        entry = service.create_manual_entry(manual_entry(sample_project, start, 45), sample_company.id, sample_user.id)

        with pytest.raises(HTTPException) as exc_info:
            service.update_entry(entry.id, TimeEntryUpdate(end_time=start - timedelta(hours=1)), sample_company.id)
        assert exc_info.value.status_code == 400

    def test_update_ignores_null_required_fields(self, db_session, sample_company, sample_user, sample_project):
        service = TimeTrackingService(db_session)
        start = datetime(2026, 4, 6, 13, 0, tzinfo=timezone.utc)
        entry = service.create_manual_entry(manual_entry(sample_project, start, 45), sample_company.id, sample_user.id)

        updated = service.update_entry(
            entry.id,
            TimeEntryUpdate(start_time=None, project_id=None, is_billable=None, description="Kickoff"),
            sample_company.id
        )
        assert updated.project_id == sample_project.id
        assert updated.is_billable is True
        assert updated.duration == 45 * 60
        assert updated.description == "Kickoff"

    def test_billed_entry_locked(self, db_session, sample_company, sample_user, sample_client, sample_project):
        from app.modules.invoices.schemas import InvoiceCreate
        from app.modules.invoices.service import InvoiceService

        service = TimeTrackingService(db_session)
        start = datetime(2026, 4, 6, 13, 0, tzinfo=timezone.utc)
        entry = service.create_manual_entry(manual_entry(sample_project, start, 60), sample_company.id, sample_user.id)
        InvoiceService(db_session).create_invoice(
            InvoiceCreate(client_id=sample_client.id, project_id=sample_project.id),
            sample_company.id,
            sample_user.id
        )

        with pytest.raises(HTTPException) as exc_info:
            service.update_entry(entry.id, TimeEntryUpdate(description="Edited"), sample_company.id)
        assert exc_info.value.status_code == 400
        with pytest.raises(HTTPException) as exc_info:
            service.delete_entry(entry.id, sample_company.id)
        assert exc_info.value.status_code == 400

    def test_filters(self, db_session, sample_company, sample_user, sample_project):
        service = TimeTrackingService(db_session)
        service.create_manual_entry(
            manual_entry(sample_project, datetime(2026, 4, 1, 9, tzinfo=timezone.utc), 30),
            sample_company.id, sample_user.id
        )
        service.create_manual_entry(
            manual_entry(sample_project, datetime(2026, 4, 10, 9, tzinfo=timezone.utc), 60, is_billable=False),
            sample_company.id, sample_user.id
        )

        april_first_week = service.get_entries(sample_company.id, date_from=date(2026, 4, 1), date_to=date(2026, 4, 7))
        assert april_first_week.total == 1
        assert april_first_week.total_seconds == 1800

        non_billable = service.get_entries(sample_company.id, is_billable=False)
        assert non_billable.total == 1

    def test_summary(self, db_session, sample_company, sample_user, sample_project):
        service = TimeTrackingService(db_session)
        # Wednesday 15 April 2026
        now = datetime(2026, 4, 15, 18, 0, tzinfo=timezone.utc)
        for day, minutes in ((15, 60), (13, 30), (2, 120), (1, 15)):
            service.create_manual_entry(
                manual_entry(sample_project, datetime(2026, 4, day, 9, tzinfo=timezone.utc), minutes),
                sample_company.id, sample_user.id
            )
        service.create_manual_entry(
            manual_entry(sample_project, datetime(2026, 3, 30, 9, tzinfo=timezone.utc), 45),
            sample_company.id, sample_user.id
        )

        summary = service.get_summary(sample_company.id, sample_user.id, now=now)
        assert summary.today_seconds == 3600
        assert summary.week_seconds == 3600 + 1800
        assert summary.month_seconds == 3600 + 1800 + 7200 + 900
        assert summary.by_project[0].project_id == sample_project.id


class TestTimeEndpoints:

    def test_timer_flow(self, client, auth_headers, sample_project):
        response = client.post("/time-entries/start", json={"project_id": str(sample_project.id)}, headers=auth_headers)
        assert response.status_code == 201

        again = client.post("/time-entries/start", json={"project_id": str(sample_project.id)}, headers=auth_headers)
        assert again.status_code == 409

        running = client.get("/time-entries/running", headers=auth_headers).json()
        assert running["id"] == response.json()["id"]

        stopped = client.post("/time-entries/stop", headers=auth_headers)
        assert stopped.status_code == 200
        assert stopped.json()["is_running"] is False

    def test_manual_entry(self, client, auth_headers, sample_project):
        response = client.post("/time-entries/", json={
            "project_id": str(sample_project.id),
            "start_time": "2026-04-06T09:00:00Z",
            "end_time": "2026-04-06T11:15:00Z",
            "description": "Design review"
        }, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["duration"] == 8100

    def test_patch_with_null_start_time(self, client, auth_headers, sample_project):
        created = client.post("/time-entries/", json={
            "project_id": str(sample_project.id),
            "start_time": "2026-04-06T09:00:00Z",
            "end_time": "2026-04-06T10:00:00Z"
        }, headers=auth_headers).json()

        response = client.patch(f"/time-entries/{created['id']}", json={"start_time": None}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["duration"] == 3600

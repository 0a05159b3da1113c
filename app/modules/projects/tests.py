"""
Tests for projects and their tasks.
"""
import pytest
from datetime import datetime, timezone
from decimal import Decimal
from fastapi import HTTPException
from pydantic import ValidationError

from app.modules.projects.models import ProjectType, ProjectStatus
from app.modules.projects.schemas import ProjectCreate, ProjectUpdate, TaskCreate
from app.modules.projects.service import ProjectService, seconds_to_hours
from app.modules.time_tracking.schemas import TimeEntryCreate
from app.modules.time_tracking.service import TimeTrackingService


def log_time(db_session, project, company, user, hours, is_billable=True, day=1, hourly_rate=None):
    start = datetime(2026, 3, day, 9, 0, tzinfo=timezone.utc)
    end = start.replace(hour=9 + int(hours), minute=int((hours % 1) * 60))
    return TimeTrackingService(db_session).create_manual_entry(
        TimeEntryCreate(
            project_id=project.id, start_time=start, end_time=end, is_billable=is_billable, hourly_rate=hourly_rate
        ),
        company.id,
        user.id
    )


class TestProjectPricing:

    def test_hourly_requires_rate(self, sample_client):
        with pytest.raises(ValidationError):
            ProjectCreate(client_id=sample_client.id, name="No Rate", project_type=ProjectType.HOURLY)

    def test_fixed_requires_price(self, sample_client):
        with pytest.raises(ValidationError):
            ProjectCreate(client_id=sample_client.id, name="No Price", project_type=ProjectType.FIXED)

    def test_end_before_start(self, sample_client):
        with pytest.raises(ValidationError):
            ProjectCreate(
                client_id=sample_client.id, name="Backwards", hourly_rate=Decimal("50"),
                start_date="2026-05-01", end_date="2026-04-01"
            )

    def test_update_to_fixed_without_price(self, db_session, sample_company, sample_project):
        with pytest.raises(HTTPException) as exc_info:
            ProjectService(db_session).update_project(
                sample_project.id, ProjectUpdate(project_type=ProjectType.FIXED), sample_company.id
            )
        assert exc_info.value.status_code == 400

    def test_seconds_to_hours(self):
        assert seconds_to_hours(5400) == Decimal("1.50")
        assert seconds_to_hours(None) == Decimal("0.00")


class TestProjectService:

    def test_currency_defaults_to_client(self, db_session, sample_company, sample_user, sample_client):
        project = ProjectService(db_session).create_project(
            ProjectCreate(client_id=sample_client.id, name="Logo", project_type=ProjectType.FIXED, fixed_price=Decimal("900")),
            sample_company.id,
            sample_user.id
        )
        assert project.currency == sample_client.currency

    def test_client_from_other_company(self, db_session, sample_company, sample_user, other_company):
        with pytest.raises(HTTPException) as exc_info:
            ProjectService(db_session).create_project(
                ProjectCreate(client_id=other_company.client.id, name="Sneaky", hourly_rate=Decimal("10")),
                sample_company.id,
                sample_user.id
            )
        assert exc_info.value.status_code == 404

    def test_change_status(self, db_session, sample_company, sample_project):
        project = ProjectService(db_session).change_status(sample_project.id, ProjectStatus.ON_HOLD, sample_company.id)
        assert project.status == ProjectStatus.ON_HOLD

    def test_summary(self, db_session, sample_company, sample_user, sample_project):
        log_time(db_session, sample_project, sample_company, sample_user, 2)
        log_time(db_session, sample_project, sample_company, sample_user, 1.5, is_billable=False, day=2)

        summary = ProjectService(db_session).get_project_summary(sample_project.id, sample_company.id)
        assert summary.tracked_hours == Decimal("3.50")
        assert summary.billable_hours == Decimal("2.00")
        assert summary.unbilled_amount == Decimal("200.00")

    def test_summary_uses_entry_rates(self, db_session, sample_company, sample_user, sample_project):
        log_time(db_session, sample_project, sample_company, sample_user, 2, hourly_rate=Decimal("250.00"))
        log_time(db_session, sample_project, sample_company, sample_user, 1, day=2)

        summary = ProjectService(db_session).get_project_summary(sample_project.id, sample_company.id)
        assert summary.unbilled_hours == Decimal("3.00")
        assert summary.unbilled_amount == Decimal("600.00")

    def test_delete_blocked_when_invoiced(self, db_session, sample_company, sample_user, sample_client, sample_project):
        from app.modules.invoices.schemas import InvoiceCreate
        from app.modules.invoices.service import InvoiceService

        log_time(db_session, sample_project, sample_company, sample_user, 1)
        InvoiceService(db_session).create_invoice(
            InvoiceCreate(client_id=sample_client.id, project_id=sample_project.id),
            sample_company.id,
            sample_user.id
        )
        with pytest.raises(HTTPException) as exc_info:
            ProjectService(db_session).delete_project(sample_project.id, sample_company.id)
        assert exc_info.value.status_code == 400

    def test_soft_delete(self, db_session, sample_company, sample_project):
        service = ProjectService(db_session)
        service.delete_project(sample_project.id, sample_company.id)
        with pytest.raises(HTTPException) as exc_info:
            service.get_project_by_id(sample_project.id, sample_company.id)
        assert exc_info.value.status_code == 404

    def test_tasks(self, db_session, sample_company, sample_project):
        service = ProjectService(db_session)
        task = service.create_task(sample_project.id, TaskCreate(name="Wireframes"), sample_company.id)
        assert [t.id for t in service.get_tasks(sample_project.id, sample_company.id)] == [task.id]

        service.delete_task(task.id, sample_company.id)
        assert service.get_tasks(sample_project.id, sample_company.id) == []


class TestProjectEndpoints:

    def test_create_and_list(self, client, auth_headers, sample_client):
        response = client.post("/projects/", json={
            "client_id": str(sample_client.id),
            "name": "Mobile App",
            "project_type": "hourly",
            "hourly_rate": "85.00"
        }, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["client_name"] == sample_client.name

        listing = client.get("/projects/", headers=auth_headers).json()
        assert listing["total"] == 1

    def test_invalid_pricing(self, client, auth_headers, sample_client):
        response = client.post("/projects/", json={
            "client_id": str(sample_client.id),
            "name": "Free Work",
            "project_type": "hourly",
            "hourly_rate": "0"
        }, headers=auth_headers)
        assert response.status_code == 422

    def test_status_endpoint(self, client, auth_headers, sample_project):
        response = client.post(
            f"/projects/{sample_project.id}/status", json={"status": "completed"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "completed"

"""
Tests for recurring invoices.
"""
import pytest
from datetime import date
from decimal import Decimal
from fastapi import HTTPException
from pydantic import ValidationError

from app.modules.invoices.models import Invoice, InvoiceStatus
from app.modules.recurring.models import RecurringFrequency
from app.modules.recurring.schemas import RecurringInvoiceCreate, RecurringInvoiceUpdate
from app.modules.recurring.service import RecurringInvoiceService, add_months, next_occurrence


@pytest.fixture
def template_invoice(make_invoice):
    return make_invoice("1500.00", issue_date=date(2026, 1, 31), due_date=date(2026, 2, 14), notes="Monthly retainer")


@pytest.fixture
def make_schedule(db_session, sample_company, sample_user, template_invoice):
    def _make_schedule(**kwargs):
        kwargs.setdefault("start_date", date(2026, 1, 31))
        return RecurringInvoiceService(db_session).create_schedule(
            RecurringInvoiceCreate(template_invoice_id=template_invoice.id, **kwargs),
            sample_company.id,
            sample_user.id
        )
    return _make_schedule


class TestDates:

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
        assert add_months(date(2028, 1, 31), 1) == date(2028, 2, 29)
        assert add_months(date(2026, 11, 15), 3) == date(2027, 2, 15)

    def test_anchor_day_restores_month_end(self):
        assert add_months(date(2026, 2, 28), 1, anchor_day=31) == date(2026, 3, 31)
        assert add_months(date(2026, 3, 31), 1, anchor_day=31) == date(2026, 4, 30)

    def test_next_occurrence(self):
        assert next_occurrence(date(2026, 1, 5), RecurringFrequency.WEEKLY) == date(2026, 1, 12)
        assert next_occurrence(date(2026, 1, 5), RecurringFrequency.QUARTERLY) == date(2026, 4, 5)
        assert next_occurrence(date(2024, 2, 29), RecurringFrequency.YEARLY) == date(2025, 2, 28)

    def test_end_before_start(self, template_invoice):
        with pytest.raises(ValidationError):
            RecurringInvoiceCreate(
                template_invoice_id=template_invoice.id, start_date=date(2026, 5, 1), end_date=date(2026, 4, 1)
            )


class TestSchedules:

    def test_create(self, db_session, make_schedule, template_invoice):
        schedule = make_schedule()
        assert schedule.next_invoice_date == date(2026, 1, 31)
        assert schedule.client_id == template_invoice.client_id
        db_session.refresh(template_invoice)
        assert template_invoice.is_recurring

    def test_cancelled_template_rejected(self, db_session, sample_company, sample_user, template_invoice):
        from app.modules.invoices.service import InvoiceService

        InvoiceService(db_session).cancel_invoice(template_invoice.id, sample_company.id)
        with pytest.raises(HTTPException) as exc_info:
            RecurringInvoiceService(db_session).create_schedule(
                RecurringInvoiceCreate(template_invoice_id=template_invoice.id, start_date=date(2026, 2, 1)),
                sample_company.id,
                sample_user.id
            )
        assert exc_info.value.status_code == 400

    def test_update_deactivate_delete(self, db_session, sample_company, make_schedule):
        service = RecurringInvoiceService(db_session)
        schedule = make_schedule()

        updated = service.update_schedule(
            schedule.id, RecurringInvoiceUpdate(frequency=RecurringFrequency.QUARTERLY, auto_send=True), sample_company.id
        )
        assert updated.frequency == RecurringFrequency.QUARTERLY
        assert updated.auto_send

        with pytest.raises(HTTPException):
            service.update_schedule(schedule.id, RecurringInvoiceUpdate(end_date=date(2025, 1, 1)), sample_company.id)

        assert service.deactivate_schedule(schedule.id, sample_company.id).is_active is False
        assert service.get_schedules(sample_company.id, is_active=True).total == 0

        service.delete_schedule(schedule.id, sample_company.id)
        with pytest.raises(HTTPException) as exc_info:
            service.get_schedule(schedule.id, sample_company.id)
        assert exc_info.value.detail == "Recurring invoice not found"

    def test_template_cannot_be_deleted(self, db_session, sample_company, make_schedule, template_invoice):
        from app.modules.invoices.service import InvoiceService

        schedule = make_schedule()
        service = RecurringInvoiceService(db_session)
        service.deactivate_schedule(schedule.id, sample_company.id)

        with pytest.raises(HTTPException) as exc_info:
            InvoiceService(db_session).delete_invoice(template_invoice.id, sample_company.id)
        assert exc_info.value.status_code == 400

        result = service.generate_due_invoices(today=date(2026, 2, 1))
        assert result.failed == 0

        service.delete_schedule(schedule.id, sample_company.id)
        InvoiceService(db_session).delete_invoice(template_invoice.id, sample_company.id)
        assert db_session.get(Invoice, template_invoice.id) is None


class TestGeneration:

    def test_generates_one_invoice_per_run(self, db_session, sample_company, make_schedule, template_invoice):
        schedule = make_schedule()
        service = RecurringInvoiceService(db_session)

        result = service.generate_due_invoices(today=date(2026, 4, 10), tenant_id=sample_company.id)
        assert result.generated == 1

        invoice = db_session.get(Invoice, result.invoice_ids[0])
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.recurring_invoice_id == schedule.id
        assert invoice.issue_date == date(2026, 1, 31)
        assert invoice.due_date == date(2026, 2, 14)
        assert invoice.total == template_invoice.total
        assert invoice.notes == "Monthly retainer"
        assert invoice.invoice_number != template_invoice.invoice_number

        db_session.refresh(schedule)
        assert schedule.last_generated_date == date(2026, 1, 31)
        assert schedule.next_invoice_date == date(2026, 2, 28)

        service.generate_due_invoices(today=date(2026, 4, 10))
        db_session.refresh(schedule)
        assert schedule.next_invoice_date == date(2026, 3, 31)

    def test_nothing_due(self, db_session, make_schedule):
        make_schedule(start_date=date(2026, 6, 1))
        result = RecurringInvoiceService(db_session).generate_due_invoices(today=date(2026, 5, 31))
        assert result.generated == 0
        assert result.invoice_ids == []

    def test_end_date_deactivates(self, db_session, make_schedule):
        schedule = make_schedule(start_date=date(2026, 1, 31), end_date=date(2026, 2, 15))
        service = RecurringInvoiceService(db_session)

        result = service.generate_due_invoices(today=date(2026, 3, 1))
        assert result.generated == 1
        db_session.refresh(schedule)
        assert schedule.is_active is False

        assert service.generate_due_invoices(today=date(2026, 3, 1)).generated == 0

    def test_auto_send(self, db_session, make_schedule, queued_email):
        make_schedule(auto_send=True)
        result = RecurringInvoiceService(db_session).generate_due_invoices(today=date(2026, 1, 31))

        invoice = db_session.get(Invoice, result.invoice_ids[0])
        assert invoice.status == InvoiceStatus.SENT
        queued_email["send_invoice_email_task"].assert_called_once()

    def test_failed_auto_send_keeps_draft(self, db_session, sample_client, make_schedule, queued_email):
        make_schedule(auto_send=True)
        sample_client.email = None
        db_session.commit()

        result = RecurringInvoiceService(db_session).generate_due_invoices(today=date(2026, 1, 31))
        assert result.generated == 1
        assert db_session.get(Invoice, result.invoice_ids[0]).status == InvoiceStatus.DRAFT


class TestRecurringEndpoints:

    def test_create_and_generate(self, client, auth_headers, template_invoice):
        response = client.post("/recurring-invoices/", json={
            "template_invoice_id": str(template_invoice.id),
            "frequency": "weekly",
            "start_date": "2026-01-31"
        }, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["template_invoice_number"] == template_invoice.invoice_number

        listing = client.get("/recurring-invoices/", headers=auth_headers).json()
        assert listing["total"] == 1

"""
Tests for invoices: totals, numbering, project billing, payments applied
to the balance, status changes and delivery.
"""
import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from fastapi import HTTPException
from uuid import uuid4

from app.modules.invoices.calculator import calculate_totals, calculate_item_amount, round_money
from app.modules.invoices.models import InvoiceStatus, DiscountType, DocumentType
from app.modules.invoices.numbering import DocumentNumberGenerator, format_document_number
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceFilters, InvoiceItemCreate, InvoiceSendRequest
)
from app.modules.invoices.service import InvoiceService, apply_payment_to_invoice, format_hours
from app.modules.notifications.models import Notification, NotificationType
from app.modules.projects.models import ProjectStatus, ProjectType
from app.modules.projects.schemas import ProjectCreate
from app.modules.projects.service import ProjectService
from app.modules.time_tracking.models import TimeEntry
from app.modules.time_tracking.schemas import TimeEntryCreate
from app.modules.time_tracking.service import TimeTrackingService


def track(db_session, project, company, user, minutes, day=6, hourly_rate=None):
    start = datetime(2026, 4, day, 9, 0, tzinfo=timezone.utc)
    return TimeTrackingService(db_session).create_manual_entry(
        TimeEntryCreate(
            project_id=project.id, start_time=start, end_time=start + timedelta(minutes=minutes), hourly_rate=hourly_rate
        ),
        company.id,
        user.id
    )


# ===== CALCULATOR =====

class TestCalculator:

    def test_basic_totals(self):
        totals = calculate_totals([Decimal("100.00"), Decimal("50.00")], Decimal("10"))
        assert totals.subtotal == Decimal("150.00")
        assert totals.tax_amount == Decimal("15.00")
        assert totals.discount_amount == Decimal("0.00")
        assert totals.total == Decimal("165.00")

    def test_percentage_discount(self):
        totals = calculate_totals([Decimal("200")], Decimal("10"), DiscountType.PERCENTAGE, Decimal("15"))
        assert totals.tax_amount == Decimal("20.00")
        assert totals.discount_amount == Decimal("30.00")
        assert totals.total == Decimal("190.00")

    def test_fixed_discount(self):
        totals = calculate_totals([Decimal("80")], 0, DiscountType.FIXED, Decimal("25.5"))
        assert totals.total == Decimal("54.50")

    def test_half_up_rounding(self):
        assert round_money(Decimal("0.125")) == Decimal("0.13")
        totals = calculate_totals([Decimal("10.05")], Decimal("5"))
        # 0.5025 rounds to 0.50
        assert totals.tax_amount == Decimal("0.50")

    def test_item_amount(self):
        assert calculate_item_amount(Decimal("2.5"), Decimal("40")) == Decimal("100.00")
        assert calculate_item_amount(Decimal("3"), Decimal("40"), Decimal("99.999")) == Decimal("100.00")

    @pytest.mark.parametrize("kwargs", [
        {"tax_rate": Decimal("101")},
        {"tax_rate": Decimal("-1")},
        {"discount_type": DiscountType.PERCENTAGE, "discount_value": Decimal("120")},
        {"discount_type": DiscountType.FIXED, "discount_value": Decimal("500")},
    ])
    def test_invalid_inputs(self, kwargs):
        with pytest.raises(ValueError):
            calculate_totals([Decimal("100")], **kwargs)

    def test_format_hours(self):
        assert format_hours(Decimal("2.50")) == "2.5"
        assert format_hours(Decimal("3.00")) == "3"
        assert format_hours(Decimal("1.25")) == "1.25"


# ===== NUMBERING =====

class TestNumbering:

    def test_format(self):
        assert format_document_number("INV-", 7) == "INV-0007"
        assert format_document_number("INV-", 12345) == "INV-12345"

    def test_sequential_per_company(self, db_session, sample_company, other_company):
        numbering = DocumentNumberGenerator(db_session)
        assert numbering.next_number(sample_company.id, DocumentType.INVOICE) == "INV-0001"
        assert numbering.next_number(sample_company.id, DocumentType.INVOICE) == "INV-0002"
        assert numbering.next_number(other_company.company.id, DocumentType.INVOICE) == "INV-0001"
        assert numbering.next_number(sample_company.id, DocumentType.QUOTATION) == "Q-0001"

    def test_configure_moves_forward_only(self, db_session, sample_company):
        numbering = DocumentNumberGenerator(db_session)
        numbering.configure(sample_company.id, DocumentType.INVOICE, prefix="2026-", next_number=100)
        assert numbering.next_number(sample_company.id, DocumentType.INVOICE) == "2026-0100"

        with pytest.raises(HTTPException) as exc_info:
            numbering.configure(sample_company.id, DocumentType.INVOICE, next_number=50)
        assert exc_info.value.status_code == 400

    def test_numbers_not_reused_after_delete(self, db_session, sample_company, make_invoice):
        first = make_invoice()
        InvoiceService(db_session).delete_invoice(first.id, sample_company.id)
        second = make_invoice()
        assert first.invoice_number == "INV-0001"
        assert second.invoice_number == "INV-0002"


# ===== SERVICE =====

class TestInvoiceCreation:

    def test_explicit_items(self, db_session, sample_company, sample_user, sample_client):
        invoice = InvoiceService(db_session).create_invoice(
            InvoiceCreate(
                client_id=sample_client.id,
                tax_rate=Decimal("8.5"),
                items=[
                    InvoiceItemCreate(description="Consulting", quantity=Decimal("3"), rate=Decimal("120")),
                    InvoiceItemCreate(description="License", rate=Decimal("0"), amount=Decimal("49.99")),
                ]
            ),
            sample_company.id,
            sample_user.id
        )
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.invoice_number == "INV-0001"
        assert invoice.subtotal == Decimal("409.99")
        assert invoice.tax_amount == Decimal("34.85")
        assert invoice.total == Decimal("444.84")
        assert invoice.amount_due == invoice.total
        assert invoice.payment_token

    def test_company_defaults(self, db_session, sample_company, sample_user, sample_client):
        from app.modules.settings.models import CompanySettings

        company_settings = db_session.query(CompanySettings).filter_by(tenant_id=sample_company.id).one()
        company_settings.default_tax_rate = Decimal("20")
        company_settings.default_due_days = 14
        company_settings.invoice_terms = "Net 14"
        db_session.commit()

        invoice = InvoiceService(db_session).create_invoice(
            InvoiceCreate(
                client_id=sample_client.id,
                issue_date=date(2026, 2, 1),
                items=[InvoiceItemCreate(description="Retainer", rate=Decimal("1000"))]
            ),
            sample_company.id,
            sample_user.id
        )
        assert invoice.tax_amount == Decimal("200.00")
        assert invoice.due_date == date(2026, 2, 15)
        assert invoice.terms == "Net 14"

    def test_needs_items(self, db_session, sample_company, sample_user, sample_client):
        with pytest.raises(HTTPException) as exc_info:
            InvoiceService(db_session).create_invoice(
                InvoiceCreate(client_id=sample_client.id), sample_company.id, sample_user.id
            )
        assert exc_info.value.status_code == 400

    def test_foreign_client(self, db_session, sample_company, sample_user, other_company):
        with pytest.raises(HTTPException) as exc_info:
            InvoiceService(db_session).create_invoice(
                InvoiceCreate(client_id=other_company.client.id, items=[InvoiceItemCreate(description="X", rate=1)]),
                sample_company.id,
                sample_user.id
            )
        assert exc_info.value.status_code == 404

    def test_hourly_project_bills_unbilled_time(
        self, db_session, sample_company, sample_user, sample_client, sample_project
    ):
        first = track(db_session, sample_project, sample_company, sample_user, 90)
        second = track(db_session, sample_project, sample_company, sample_user, 60, day=7)

        invoice = InvoiceService(db_session).create_invoice(
            InvoiceCreate(client_id=sample_client.id, project_id=sample_project.id),
            sample_company.id,
            sample_user.id
        )
        assert len(invoice.items) == 1
        item = invoice.items[0]
        assert item.description == "Website Redesign - Time tracking (2.5 hours)"
        assert item.quantity == Decimal("2.50")
        assert item.amount == Decimal("250.00")

        for entry in (first, second):
            db_session.refresh(entry)
            assert entry.invoice_id == invoice.id

        # Nothing left to bill
        with pytest.raises(HTTPException):
            InvoiceService(db_session).create_invoice(
                InvoiceCreate(client_id=sample_client.id, project_id=sample_project.id),
                sample_company.id,
                sample_user.id
            )

    def test_entry_rate_overrides_project_rate(
        self, db_session, sample_company, sample_user, sample_client, sample_project
    ):
        track(db_session, sample_project, sample_company, sample_user, 120, hourly_rate=Decimal("250.00"))

        invoice = InvoiceService(db_session).create_invoice(
            InvoiceCreate(client_id=sample_client.id, project_id=sample_project.id),
            sample_company.id,
            sample_user.id
        )
        item = invoice.items[0]
        assert item.description == "Website Redesign - Time tracking (2 hours)"
        assert item.rate == Decimal("250.00")
        assert item.amount == Decimal("500.00")
        assert invoice.total == Decimal("500.00")

    def test_one_item_per_rate(self, db_session, sample_company, sample_user, sample_client, sample_project):
        track(db_session, sample_project, sample_company, sample_user, 60)
        track(db_session, sample_project, sample_company, sample_user, 30, day=7, hourly_rate=Decimal("180.00"))
        track(db_session, sample_project, sample_company, sample_user, 60, day=8)

        invoice = InvoiceService(db_session).create_invoice(
            InvoiceCreate(client_id=sample_client.id, project_id=sample_project.id),
            sample_company.id,
            sample_user.id
        )
        lines = sorted((item.rate, item.quantity, item.amount) for item in invoice.items)
        assert lines == [
            (Decimal("100.00"), Decimal("2.00"), Decimal("200.00")),
            (Decimal("180.00"), Decimal("0.50"), Decimal("90.00")),
        ]
        assert invoice.items[0].description.endswith("at 100.00/h")
        assert invoice.total == Decimal("290.00")

    def test_project_of_other_client(self, db_session, sample_company, sample_user, sample_project):
        from app.modules.clients.schemas import ClientCreate
        from app.modules.clients.service import ClientService

        another = ClientService(db_session).create_client(ClientCreate(name="Second"), sample_company.id, sample_user.id)
        with pytest.raises(HTTPException) as exc_info:
            InvoiceService(db_session).create_invoice(
                InvoiceCreate(client_id=another.id, project_id=sample_project.id),
                sample_company.id,
                sample_user.id
            )
        assert exc_info.value.status_code == 400

    def test_fixed_price_project_rules(self, db_session, sample_company, sample_user, sample_client):
        projects = ProjectService(db_session)
        project = projects.create_project(
            ProjectCreate(
                client_id=sample_client.id, name="Brand Kit",
                project_type=ProjectType.FIXED, fixed_price=Decimal("1500")
            ),
            sample_company.id,
            sample_user.id
        )
        service = InvoiceService(db_session)
        create = InvoiceCreate(client_id=sample_client.id, project_id=project.id)

        with pytest.raises(HTTPException) as exc_info:
            service.create_invoice(create, sample_company.id, sample_user.id)
        assert exc_info.value.status_code == 400

        projects.change_status(project.id, ProjectStatus.COMPLETED, sample_company.id)
        invoice = service.create_invoice(create, sample_company.id, sample_user.id)
        assert invoice.subtotal == Decimal("1500.00")
        assert invoice.items[0].description == "Brand Kit"

        with pytest.raises(HTTPException) as exc_info:
            service.create_invoice(create, sample_company.id, sample_user.id)
        assert exc_info.value.detail == "This fixed price project has already been invoiced"

        # Cancelling frees the project for a new invoice
        service.cancel_invoice(invoice.id, sample_company.id)
        assert service.create_invoice(create, sample_company.id, sample_user.id).total == Decimal("1500.00")

    def test_project_preview(self, db_session, sample_company, sample_user, sample_project):
        track(db_session, sample_project, sample_company, sample_user, 30)
        preview = InvoiceService(db_session).preview_project_items(
            sample_project.id, sample_company.id, tax_rate=Decimal("10")
        )
        assert preview.total_hours == Decimal("0.50")
        assert preview.estimated_totals.total == Decimal("55.00")
        assert db_session.query(TimeEntry).filter(TimeEntry.invoice_id.isnot(None)).count() == 0


class TestInvoiceLifecycle:

    def test_list_and_filters(self, db_session, sample_company, make_invoice):
        make_invoice("100.00")
        sent = make_invoice("200.00")
        sent.status = InvoiceStatus.SENT
        db_session.commit()

        service = InvoiceService(db_session)
        result = service.get_invoices(sample_company.id, InvoiceFilters(status=InvoiceStatus.SENT))
        assert [inv.id for inv in result.invoices] == [sent.id]

        everything = service.get_invoices(sample_company.id, InvoiceFilters(search="acme"))
        assert everything.total == 2
        counts = {row.status: row.count for row in everything.counts_by_status}
        assert counts == {InvoiceStatus.DRAFT: 1, InvoiceStatus.SENT: 1}

    def test_get_not_found(self, db_session, sample_company):
        with pytest.raises(HTTPException) as exc_info:
            InvoiceService(db_session).get_invoice(uuid4(), sample_company.id)
        assert exc_info.value.detail == "Invoice not found"

    def test_update_recalculates(self, db_session, sample_company, make_invoice):
        invoice = make_invoice("100.00")
        updated = InvoiceService(db_session).update_invoice(
            invoice.id,
            InvoiceUpdate(
                tax_rate=Decimal("10"),
                items=[InvoiceItemCreate(description="Bigger job", quantity=Decimal("2"), rate=Decimal("150"))]
            ),
            sample_company.id
        )
        assert updated.subtotal == Decimal("300.00")
        assert updated.total == Decimal("330.00")
        assert updated.amount_due == Decimal("330.00")

    def test_paid_invoice_locked(self, db_session, sample_company, make_invoice):
        invoice = make_invoice("100.00")
        apply_payment_to_invoice(invoice, Decimal("100.00"))
        db_session.commit()

        with pytest.raises(HTTPException) as exc_info:
            InvoiceService(db_session).update_invoice(invoice.id, InvoiceUpdate(notes="late"), sample_company.id)
        assert exc_info.value.status_code == 400

    def test_cancel(self, db_session, sample_company, sample_user, sample_client, sample_project):
        entry = track(db_session, sample_project, sample_company, sample_user, 60)
        service = InvoiceService(db_session)
        invoice = service.create_invoice(
            InvoiceCreate(client_id=sample_client.id, project_id=sample_project.id),
            sample_company.id,
            sample_user.id
        )

        cancelled = service.cancel_invoice(invoice.id, sample_company.id, reason="Duplicate")
        assert cancelled.status == InvoiceStatus.CANCELLED
        assert cancelled.amount_due == Decimal("0.00")
        assert "Duplicate" in cancelled.notes
        db_session.refresh(entry)
        assert entry.invoice_id is None

        with pytest.raises(HTTPException):
            service.cancel_invoice(invoice.id, sample_company.id)

    def test_cannot_delete_or_cancel_with_payments(self, db_session, sample_company, make_invoice):
        invoice = make_invoice("100.00")
        apply_payment_to_invoice(invoice, Decimal("40.00"))
        db_session.commit()

        service = InvoiceService(db_session)
        with pytest.raises(HTTPException):
            service.delete_invoice(invoice.id, sample_company.id)
        with pytest.raises(HTTPException):
            service.cancel_invoice(invoice.id, sample_company.id)


class TestApplyPayment:

    def test_partial_then_paid(self, make_invoice):
        invoice = make_invoice("100.00")
        apply_payment_to_invoice(invoice, Decimal("30"))
        assert invoice.status == InvoiceStatus.PARTIAL
        assert invoice.amount_paid == Decimal("30.00")
        assert invoice.amount_due == Decimal("70.00")

        apply_payment_to_invoice(invoice, Decimal("70"))
        assert invoice.status == InvoiceStatus.PAID
        assert invoice.amount_due == Decimal("0.00")
        assert invoice.paid_at is not None

    def test_overpayment_rejected(self, make_invoice):
        invoice = make_invoice("100.00")
        with pytest.raises(HTTPException) as exc_info:
            apply_payment_to_invoice(invoice, Decimal("100.01"))
        assert exc_info.value.status_code == 400
        assert invoice.amount_paid == Decimal("0.00")

    def test_zero_rejected(self, make_invoice):
        with pytest.raises(HTTPException):
            apply_payment_to_invoice(make_invoice("100.00"), Decimal("0"))

    def test_cancelled_rejected(self, make_invoice):
        invoice = make_invoice("100.00")
        invoice.status = InvoiceStatus.CANCELLED
        with pytest.raises(HTTPException):
            apply_payment_to_invoice(invoice, Decimal("10"))


class TestOverdue:

    def test_mark_overdue(self, db_session, sample_company, make_invoice):
        past_due = make_invoice("100.00", issue_date=date(2026, 1, 1), due_date=date(2026, 1, 31))
        draft = make_invoice("50.00", issue_date=date(2026, 1, 1), due_date=date(2026, 1, 31))
        not_due = make_invoice("75.00", issue_date=date(2026, 2, 1), due_date=date(2026, 3, 31))
        for invoice in (past_due, not_due):
            invoice.status = InvoiceStatus.SENT
        db_session.commit()

        count = InvoiceService(db_session).mark_overdue(today=date(2026, 2, 15), tenant_id=sample_company.id)
        assert count == 1

        for invoice in (past_due, draft, not_due):
            db_session.refresh(invoice)
        assert past_due.status == InvoiceStatus.OVERDUE
        assert draft.status == InvoiceStatus.DRAFT
        assert not_due.status == InvoiceStatus.SENT
        assert past_due.is_overdue(date(2026, 2, 15))

        notification = db_session.query(Notification).one()
        assert notification.type == NotificationType.INVOICE_OVERDUE

    def test_overdue_notification_respects_preferences(self, db_session, sample_company, make_invoice):
        from app.modules.settings.models import CompanySettings

        company_settings = db_session.query(CompanySettings).filter_by(tenant_id=sample_company.id).one()
        company_settings.notification_preferences = {"invoice_overdue": False}
        db_session.commit()

        invoice = make_invoice("100.00", issue_date=date(2026, 1, 1), due_date=date(2026, 1, 2))
        invoice.status = InvoiceStatus.SENT
        db_session.commit()

        assert InvoiceService(db_session).mark_overdue(today=date(2026, 2, 1)) == 1
        assert db_session.query(Notification).count() == 0


class TestSendInvoice:

    def test_send_draft(self, db_session, sample_company, make_invoice, queued_email):
        invoice = make_invoice("100.00")
        result = InvoiceService(db_session).send_invoice(invoice.id, sample_company.id, InvoiceSendRequest())

        assert result.status == "queued"
        assert result.task_id == "task-123"
        assert result.recipient == "ap@acme.example.com"

        kwargs = queued_email["send_invoice_email_task"].call_args.kwargs
        assert kwargs["filename"] == "INV-0001.pdf"
        assert kwargs["pdf_base64"]

        db_session.refresh(invoice)
        assert invoice.status == InvoiceStatus.SENT
        assert invoice.sent_at is not None

    def test_send_without_email(self, db_session, sample_company, sample_client, make_invoice, queued_email):
        sample_client.email = None
        db_session.commit()
        invoice = make_invoice("100.00")

        with pytest.raises(HTTPException) as exc_info:
            InvoiceService(db_session).send_invoice(invoice.id, sample_company.id, InvoiceSendRequest())
        assert exc_info.value.status_code == 400
        queued_email["send_invoice_email_task"].assert_not_called()

    def test_send_cancelled(self, db_session, sample_company, make_invoice, queued_email):
        invoice = make_invoice("100.00")
        InvoiceService(db_session).cancel_invoice(invoice.id, sample_company.id)
        with pytest.raises(HTTPException):
            InvoiceService(db_session).send_invoice(invoice.id, sample_company.id, InvoiceSendRequest())


# ===== ENDPOINTS =====

class TestInvoiceEndpoints:

    def test_create_get_and_pdf(self, client, auth_headers, sample_client):
        response = client.post("/invoices/", json={
            "client_id": str(sample_client.id),
            "tax_rate": "10",
            "items": [{"description": "Design sprint", "quantity": "1", "rate": "2000"}]
        }, headers=auth_headers)
        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["total"]) == Decimal("2200.00")

        invoice_id = data["id"]
        assert client.get(f"/invoices/{invoice_id}", headers=auth_headers).status_code == 200

        pdf = client.get(f"/invoices/{invoice_id}/pdf", headers=auth_headers)
        assert pdf.status_code == 200
        assert pdf.headers["content-type"] == "application/pdf"
        assert pdf.content.startswith(b"%PDF")

    def test_next_number(self, client, auth_headers, make_invoice):
        make_invoice()
        response = client.get("/invoices/next-number", headers=auth_headers)
        assert response.json()["next_number"] == "INV-0002"

    def test_record_payment_endpoint(self, client, auth_headers, make_invoice, queued_email):
        invoice = make_invoice("300.00")
        response = client.post(
            f"/invoices/{invoice.id}/payments",
            json={"amount": "100.00", "method": "bank_transfer"},
            headers=auth_headers
        )
        assert response.status_code == 201
        data = response.json()
        assert data["invoice_status"] == "partial"
        assert Decimal(data["amount_due"]) == Decimal("200.00")

        payments = client.get(f"/invoices/{invoice.id}/payments", headers=auth_headers).json()
        assert len(payments) == 1

    def test_public_invoice(self, client, make_invoice):
        invoice = make_invoice("120.00")
        response = client.get(f"/public/invoices/{invoice.payment_token}")
        assert response.status_code == 200
        assert response.json()["invoice_number"] == invoice.invoice_number

        assert client.get("/public/invoices/not-a-token").status_code == 404

    def test_other_company_cannot_read(self, client, make_invoice, other_company):
        invoice = make_invoice("120.00")
        response = client.get(f"/invoices/{invoice.id}", headers=other_company.headers)
        assert response.status_code == 404

"""
Tests for quotations.
"""
import pytest
from datetime import date
from decimal import Decimal
from fastapi import HTTPException
from uuid import uuid4

from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.schemas import InvoiceItemCreate, InvoiceSendRequest
from app.modules.notifications.models import Notification, NotificationType
from app.modules.quotations.models import QuotationStatus
from app.modules.quotations.schemas import QuotationCreate, QuotationUpdate, ConvertToInvoiceRequest
from app.modules.quotations.service import QuotationService


@pytest.fixture
def make_quotation(db_session, sample_company, sample_user, sample_client):
    def _make_quotation(**kwargs):
        kwargs.setdefault("items", [
            InvoiceItemCreate(description="Discovery workshop", quantity=Decimal("2"), rate=Decimal("450")),
            InvoiceItemCreate(description="Prototype", rate=Decimal("1200")),
        ])
        kwargs.setdefault("tax_rate", Decimal("10"))
        return QuotationService(db_session).create_quotation(
            QuotationCreate(client_id=sample_client.id, **kwargs), sample_company.id, sample_user.id
        )
    return _make_quotation


class TestQuotationService:

    def test_create(self, make_quotation):
        quotation = make_quotation(discount_type="fixed", discount_value=Decimal("100"))
        assert quotation.quote_number == "Q-0001"
        assert quotation.status == QuotationStatus.DRAFT
        assert quotation.subtotal == Decimal("2100.00")
        assert quotation.tax_amount == Decimal("210.00")
        assert quotation.total == Decimal("2210.00")
        assert [item.position for item in quotation.items] == [0, 1]

    def test_numbers_independent_from_invoices(self, make_quotation, make_invoice):
        make_invoice()
        assert make_quotation().quote_number == "Q-0001"
        assert make_quotation().quote_number == "Q-0002"

    def test_update_recalculates(self, db_session, sample_company, make_quotation):
        quotation = make_quotation()
        updated = QuotationService(db_session).update_quotation(
            quotation.id, QuotationUpdate(tax_rate=Decimal("0")), sample_company.id
        )
        assert updated.total == Decimal("2100.00")

    def test_accept_then_locked(self, db_session, sample_company, make_quotation):
        service = QuotationService(db_session)
        quotation = make_quotation()
        accepted = service.accept_quotation(quotation.id, sample_company.id)
        assert accepted.status == QuotationStatus.ACCEPTED
        assert accepted.accepted_at is not None

        with pytest.raises(HTTPException):
            service.update_quotation(quotation.id, QuotationUpdate(notes="change"), sample_company.id)
        with pytest.raises(HTTPException):
            service.reject_quotation(quotation.id, sample_company.id)

        notification = db_session.query(Notification).one()
        assert notification.type == NotificationType.QUOTATION_ACCEPTED

    def test_cannot_accept_expired(self, db_session, sample_company, make_quotation):
        quotation = make_quotation(issue_date=date(2026, 1, 1), expiry_date=date(2026, 1, 31))
        with pytest.raises(HTTPException) as exc_info:
            QuotationService(db_session).accept_quotation(quotation.id, sample_company.id, today=date(2026, 2, 1))
        assert exc_info.value.detail == "Quotation has expired"

    def test_reject(self, db_session, sample_company, make_quotation):
        rejected = QuotationService(db_session).reject_quotation(make_quotation().id, sample_company.id)
        assert rejected.status == QuotationStatus.REJECTED

    def test_convert_once(self, db_session, sample_company, sample_user, make_quotation):
        service = QuotationService(db_session)
        quotation = make_quotation()

        with pytest.raises(HTTPException):
            service.convert_to_invoice(quotation.id, sample_company.id, sample_user.id)

        service.accept_quotation(quotation.id, sample_company.id)
        invoice = service.convert_to_invoice(
            quotation.id, sample_company.id, sample_user.id,
            ConvertToInvoiceRequest(issue_date=date(2026, 3, 1), due_date=date(2026, 3, 31))
        )
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.quotation_id == quotation.id
        assert invoice.invoice_number == "INV-0001"
        assert invoice.total == Decimal("2310.00")
        assert [item.description for item in invoice.items] == ["Discovery workshop", "Prototype"]

        with pytest.raises(HTTPException) as exc_info:
            service.convert_to_invoice(quotation.id, sample_company.id, sample_user.id)
        assert exc_info.value.detail == "Quotation has already been converted to an invoice"

        # Converted quotations stay
        with pytest.raises(HTTPException):
            service.delete_quotation(quotation.id, sample_company.id)

    def test_bulk_delete_is_all_or_nothing(self, db_session, sample_company, sample_user, make_quotation):
        service = QuotationService(db_session)
        plain = make_quotation()
        converted = make_quotation()
        service.accept_quotation(converted.id, sample_company.id)
        service.convert_to_invoice(converted.id, sample_company.id, sample_user.id)

        with pytest.raises(HTTPException):
            service.bulk_delete([plain.id, converted.id], sample_company.id)
        assert service.get_quotation(plain.id, sample_company.id)

        missing = uuid4()
        result = service.bulk_delete([plain.id, missing], sample_company.id)
        assert result.deleted == 1
        assert result.not_found == [missing]

    def test_mark_expired(self, db_session, sample_company, make_quotation, queued_email):
        service = QuotationService(db_session)
        quotation = make_quotation(issue_date=date(2026, 1, 1), expiry_date=date(2026, 1, 15))
        draft = make_quotation(issue_date=date(2026, 1, 1), expiry_date=date(2026, 1, 15))
        service.send_quotation(quotation.id, sample_company.id, InvoiceSendRequest())

        assert service.mark_expired(today=date(2026, 1, 20), tenant_id=sample_company.id) == 1
        db_session.refresh(quotation)
        db_session.refresh(draft)
        assert quotation.status == QuotationStatus.EXPIRED
        assert draft.status == QuotationStatus.DRAFT

    def test_send(self, db_session, sample_company, make_quotation, queued_email):
        quotation = make_quotation()
        result = QuotationService(db_session).send_quotation(
            quotation.id, sample_company.id, InvoiceSendRequest(to_email="cfo@acme.example.com")
        )
        assert result.recipient == "cfo@acme.example.com"
        assert queued_email["send_quotation_email_task"].call_args.kwargs["filename"] == "Q-0001.pdf"
        db_session.refresh(quotation)
        assert quotation.status == QuotationStatus.SENT


class TestQuotationEndpoints:

    def test_create_list_and_pdf(self, client, auth_headers, sample_client):
        response = client.post("/quotations/", json={
            "client_id": str(sample_client.id),
            "items": [{"description": "Audit", "rate": "800"}],
            "tax_rate": "0"
        }, headers=auth_headers)
        assert response.status_code == 201
        quotation_id = response.json()["id"]

        listing = client.get("/quotations/", headers=auth_headers).json()
        assert listing["total"] == 1

        pdf = client.get(f"/quotations/{quotation_id}/pdf", headers=auth_headers)
        assert pdf.status_code == 200
        assert pdf.content.startswith(b"%PDF")

    def test_items_required(self, client, auth_headers, sample_client):
        response = client.post("/quotations/", json={"client_id": str(sample_client.id), "items": []}, headers=auth_headers)
        assert response.status_code == 422

    def test_accept_and_convert(self, client, auth_headers, make_quotation):
        quotation = make_quotation()
        assert client.post(f"/quotations/{quotation.id}/accept", headers=auth_headers).json()["status"] == "accepted"

        response = client.post(f"/quotations/{quotation.id}/convert", headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["quotation_id"] == str(quotation.id)

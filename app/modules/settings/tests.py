"""
Tests for company settings.
"""
import pytest
from decimal import Decimal
from fastapi import HTTPException

from app.modules.settings.models import CompanySettings
from app.modules.settings.schemas import SettingsUpdate, EmailSettings, EmailProvider
from app.modules.settings.service import SettingsService, mask_api_key


class TestSettingsService:

    def test_defaults(self, db_session, sample_company):
        out = SettingsService(db_session).get(sample_company.id)
        assert out.invoice_prefix == "INV-"
        assert out.invoice_next_number == 1
        assert out.quote_prefix == "Q-"
        assert out.notification_preferences["payment_received"] is True
        assert out.email_settings["provider"] == "system"

    def test_created_on_first_access(self, db_session, sample_company):
        db_session.query(CompanySettings).delete()
        db_session.commit()

        SettingsService(db_session).get_settings(sample_company.id)
        assert db_session.query(CompanySettings).count() == 1

    def test_numbering_moves_forward(self, db_session, sample_company, make_invoice):
        service = SettingsService(db_session)
        out = service.update(sample_company.id, SettingsUpdate(invoice_prefix="F-", invoice_next_number=500))
        assert out.invoice_prefix == "F-"
        assert out.invoice_next_number == 500
        assert make_invoice().invoice_number == "F-0500"

        with pytest.raises(HTTPException) as exc_info:
            service.update(sample_company.id, SettingsUpdate(invoice_next_number=500))
        assert exc_info.value.status_code == 400

    def test_failed_update_changes_nothing(self, db_session, sample_company, make_invoice):
        make_invoice()
        service = SettingsService(db_session)
        with pytest.raises(HTTPException):
            service.update(sample_company.id, SettingsUpdate(default_tax_rate=Decimal("21"), invoice_next_number=1))

        out = service.get(sample_company.id)
        assert out.default_tax_rate == Decimal("0")

    def test_preferences_are_merged(self, db_session, sample_company):
        service = SettingsService(db_session)
        out = service.update(sample_company.id, SettingsUpdate(notification_preferences={"invoice_overdue": False}))
        assert out.notification_preferences["invoice_overdue"] is False
        assert out.notification_preferences["payment_received"] is True
        assert not service.notifications_enabled(sample_company.id, "invoice_overdue")
        assert service.notifications_enabled(sample_company.id, "client_portal")

    def test_email_api_key_is_masked_and_kept(self, db_session, sample_company):
        service = SettingsService(db_session)
        out = service.update(sample_company.id, SettingsUpdate(email_settings=EmailSettings(
            provider=EmailProvider.RESEND, api_key="re_live_key_9876", from_email="billing@studio.example.com"
        )))
        assert out.email_settings["api_key"] == "****9876"

        service.update(sample_company.id, SettingsUpdate(email_settings=EmailSettings(
            provider=EmailProvider.RESEND, api_key="****9876", from_email="hello@studio.example.com"
        )))
        stored = service.get_settings(sample_company.id).email_settings
        assert stored["api_key"] == "re_live_key_9876"
        assert stored["from_email"] == "hello@studio.example.com"

    def test_provider_needs_key(self, db_session, sample_company):
        with pytest.raises(HTTPException) as exc_info:
            SettingsService(db_session).update(sample_company.id, SettingsUpdate(email_settings=EmailSettings(
                provider=EmailProvider.BREVO, from_email="billing@studio.example.com"
            )))
        assert exc_info.value.status_code == 400

    def test_mask_api_key(self):
        assert mask_api_key("abcdef123456") == "****3456"
        assert mask_api_key(None) is None


class TestSettingsEndpoints:

    def test_get_and_patch(self, client, auth_headers):
        response = client.patch("/settings/", json={
            "default_tax_rate": "19",
            "default_due_days": 15,
            "currency": "gbp"
        }, headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["default_tax_rate"]) == Decimal("19")
        assert data["currency"] == "GBP"

        assert client.get("/settings/", headers=auth_headers).json()["default_due_days"] == 15

    def test_member_cannot_update(self, client, sample_company, make_member):
        _, headers = make_member(sample_company, "member@example.com", "member")
        assert client.get("/settings/", headers=headers).status_code == 200
        assert client.patch("/settings/", json={"default_due_days": 10}, headers=headers).status_code == 403

    def test_pdf_settings(self, client, auth_headers):
        response = client.patch("/settings/pdf", json={"template": "invoma_modern", "primary_color": "#1a2b3c"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["primary_color"] == "#1A2B3C"

        bad = client.patch("/settings/pdf", json={"primary_color": "blue"}, headers=auth_headers)
        assert bad.status_code == 422

    def test_email_templates(self, client, auth_headers):
        response = client.post("/settings/email-templates", json={
            "type": "invoice",
            "name": "Friendly",
            "subject": "Invoice {{ invoice_number }}",
            "body": "<p>Hi {{ client_name }}</p>",
            "is_default": True
        }, headers=auth_headers)
        assert response.status_code == 201
        template_id = response.json()["id"]

        preview = client.post("/settings/email-templates/preview", json={
            "subject": "Invoice {{ invoice_number }}",
            "body": "Hi {{ client_name }}",
            "context": {"client_name": "Bob"}
        }, headers=auth_headers).json()
        assert preview == {"subject": "Invoice INV-0001", "body": "Hi Bob"}

        assert client.delete(f"/settings/email-templates/{template_id}", headers=auth_headers).status_code == 200
        assert client.get("/settings/email-templates", headers=auth_headers).json() == []

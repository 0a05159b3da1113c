"""
Tests for email delivery, company templates and the email tasks.
"""
import pytest
from fastapi import HTTPException
from unittest.mock import MagicMock, patch

from app.core.config import settings
from app.modules.email.models import TemplateType
from app.modules.email.schemas import EmailTemplateCreate, EmailTemplateUpdate
from app.modules.email.service import EmailService, EmailTemplateService
from app.modules.email.tasks import load_provider_settings, send_invoice_email_task


INVOICE_CONTEXT = {
    "company_name": "Studio Owner",
    "client_name": "Acme Corp",
    "invoice_number": "INV-0007",
    "issue_date": "2026-03-01",
    "due_date": "2026-03-31",
    "total": "500.00",
    "amount_due": "500.00",
    "currency": "USD",
    "payment_link": "http://localhost:3000/invoice/pay/abc",
    "invoice_link": None,
    "message": None,
}


class TestEmailService:

    def test_render_bundled_template(self):
        html = EmailService().render_template("invoice_email.html", INVOICE_CONTEXT)
        assert "INV-0007" in html
        assert "http://localhost:3000/invoice/pay/abc" in html

    def test_resend_provider(self):
        response = MagicMock()
        with patch("app.modules.email.service.httpx.post", return_value=response) as post:
            sent = EmailService().send_email(
                ["client@example.com"],
                "Hello",
                html_content="<p>Hi</p>",
                attachments=[{"filename": "INV-0007.pdf", "content": "JVBERi0="}],
                provider_settings={"provider": "resend", "api_key": "re_123", "from_email": "studio@example.com"}
            )

        assert sent is True
        args, kwargs = post.call_args
        assert args[0] == settings.RESEND_API_URL
        assert kwargs["headers"]["Authorization"] == "Bearer re_123"
        assert kwargs["json"]["to"] == ["client@example.com"]
        assert kwargs["json"]["attachments"][0]["filename"] == "INV-0007.pdf"

    def test_brevo_provider(self):
        with patch("app.modules.email.service.httpx.post", return_value=MagicMock()) as post:
            EmailService().send_email(
                ["client@example.com"],
                "Hello",
                text_content="Hi",
                provider_settings={"provider": "brevo", "api_key": "xkeysib", "from_email": "studio@example.com"}
            )

        kwargs = post.call_args.kwargs
        assert kwargs["headers"]["api-key"] == "xkeysib"
        assert kwargs["json"]["to"] == [{"email": "client@example.com"}]
        assert kwargs["json"]["textContent"] == "Hi"

    def test_provider_failure_returns_false(self):
        response = MagicMock()
        response.raise_for_status.side_effect = RuntimeError("401 Unauthorized")
        with patch("app.modules.email.service.httpx.post", return_value=response):
            sent = EmailService().send_email(
                ["client@example.com"], "Hello", html_content="x",
                provider_settings={"provider": "resend", "api_key": "bad"}
            )
        assert sent is False

    def test_system_provider_uses_smtp(self):
        service = EmailService()
        server = MagicMock()
        with patch.object(service, "_create_smtp_connection") as connect:
            connect.return_value.__enter__.return_value = server
            assert service.send_email(["client@example.com"], "Hello", html_content="<p>Hi</p>")

        recipients = server.sendmail.call_args.args[1]
        assert recipients == ["client@example.com"]


class TestEmailTemplates:

    def test_default_template_overrides_builtin(self, db_session, sample_company):
        service = EmailTemplateService(db_session)
        assert service.render_for(sample_company.id, TemplateType.INVOICE, INVOICE_CONTEXT) == (None, None)

        service.create_template(EmailTemplateCreate(
            type=TemplateType.INVOICE,
            name="Short",
            subject="{{ invoice_number }} for {{ client_name }}",
            body="<p>Due: {{ currency }} {{ amount_due }}</p>",
            is_default=True
        ), sample_company.id)

        subject, body = service.render_for(sample_company.id, TemplateType.INVOICE, INVOICE_CONTEXT)
        assert subject == "INV-0007 for Acme Corp"
        assert body == "<p>Due: USD 500.00</p>"

    def test_one_default_per_type(self, db_session, sample_company):
        service = EmailTemplateService(db_session)
        first = service.create_template(EmailTemplateCreate(
            type=TemplateType.QUOTATION, name="A", subject="A", body="A", is_default=True
        ), sample_company.id)
        second = service.create_template(EmailTemplateCreate(
            type=TemplateType.QUOTATION, name="B", subject="B", body="B"
        ), sample_company.id)

        service.update_template(second.id, EmailTemplateUpdate(is_default=True), sample_company.id)
        db_session.refresh(first)
        assert first.is_default is False
        assert service.render_for(sample_company.id, TemplateType.QUOTATION, {}) == ("B", "B")

    def test_invalid_template_rejected(self, db_session, sample_company):
        with pytest.raises(HTTPException) as exc_info:
            EmailTemplateService(db_session).create_template(EmailTemplateCreate(
                type=TemplateType.INVOICE, name="Broken", subject="{{ invoice_number", body="x"
            ), sample_company.id)
        assert exc_info.value.status_code == 400

    def test_output_is_escaped(self, db_session):
        preview = EmailTemplateService(db_session).preview_template(
            "Hi", "{{ client_name }}", {"client_name": "<script>"}
        )
        assert preview.body == "&lt;script&gt;"

    def test_other_company_template_not_found(self, db_session, sample_company, other_company):
        template = EmailTemplateService(db_session).create_template(EmailTemplateCreate(
            type=TemplateType.INVOICE, name="Mine", subject="s", body="b"
        ), sample_company.id)
        with pytest.raises(HTTPException) as exc_info:
            EmailTemplateService(db_session).get_template(template.id, other_company.company.id)
        assert exc_info.value.status_code == 404


class TestEmailTasks:

    def test_load_provider_settings(self, db_session, sample_company):
        provider_settings = load_provider_settings(str(sample_company.id))
        assert provider_settings["provider"] == "system"
        assert load_provider_settings(None) is None

    def test_invoice_task_attaches_pdf(self, db_session, sample_company):
        with patch("app.modules.email.tasks.email_service.send_template_email", return_value=True) as send:
            result = send_invoice_email_task(
                tenant_id=str(sample_company.id),
                recipient="ap@acme.example.com",
                subject="Invoice INV-0007",
                context=INVOICE_CONTEXT,
                pdf_base64="JVBERi0=",
                filename="INV-0007.pdf"
            )

        assert result == {"status": "success", "recipient": "ap@acme.example.com", "invoice_number": "INV-0007"}
        kwargs = send.call_args.kwargs
        assert kwargs["template_name"] == "invoice_email.html"
        assert kwargs["attachments"] == [{"filename": "INV-0007.pdf", "content": "JVBERi0="}]


class TestEmailEndpoints:

    def test_test_email_is_queued(self, client, auth_headers, queued_email):
        response = client.post("/email/test", json={"to_email": "me@example.com"}, headers=auth_headers)
        assert response.status_code == 202
        assert response.json()["task_id"] == "task-123"
        assert queued_email["send_email_task"].call_args.kwargs["to_email"] == "me@example.com"

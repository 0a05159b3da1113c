import base64
import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.mime.base import MIMEBase
from email import encoders
from typing import List, Optional, Dict, Any, Tuple
from pathlib import Path
from uuid import UUID
import logging

import httpx
from fastapi import HTTPException, status
from jinja2 import Environment, FileSystemLoader, select_autoescape, TemplateError
from jinja2.sandbox import SandboxedEnvironment
from sqlalchemy.orm import Session

from app.core.config import settings
from app.modules.email.models import EmailTemplate, TemplateType
from app.modules.email.schemas import EmailTemplateCreate, EmailTemplateUpdate, TemplatePreviewOut

logger = logging.getLogger(__name__)

# Sample values used when previewing a company template
PREVIEW_CONTEXT = {
    "company_name": "Acme Studio",
    "client_name": "Jane Client",
    "invoice_number": "INV-0001",
    "quote_number": "Q-0001",
    "issue_date": "2024-01-15",
    "due_date": "2024-02-14",
    "expiry_date": "2024-02-14",
    "total": "1,250.00",
    "amount": "1,250.00",
    "amount_due": "1,250.00",
    "currency": "USD",
    "invoice_link": f"{settings.FRONTEND_URL}/invoice/public/preview",
    "payment_link": f"{settings.FRONTEND_URL}/invoice/pay/preview",
    "invite_link": f"{settings.FRONTEND_URL}/client/setup-password?token=preview",
    "message": "Thanks for working with us!",
}


class EmailService:
    """
    Email delivery with Jinja2 templates.

    SMTP is the system default. A company can route its mail through Resend
    or Brevo by storing an `email_settings` block in its settings.
    """

    def __init__(self):
        self.smtp_server = settings.EMAIL_SMTP_SERVER
        self.smtp_port = settings.EMAIL_SMTP_PORT
        self.username = settings.EMAIL_USERNAME
        self.password = settings.EMAIL_PASSWORD
        self.use_tls = settings.EMAIL_USE_TLS
        self.from_email = settings.EMAIL_FROM
        self.from_name = settings.EMAIL_FROM_NAME
        self.frontend_url = settings.FRONTEND_URL

        template_dir = Path(__file__).parent / "templates"
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(['html', 'xml'])
        )

    def _create_smtp_connection(self):
        """Open an authenticated SMTP connection."""
        try:
            if self.use_tls:
                context = ssl.create_default_context()
                server = smtplib.SMTP(self.smtp_server, self.smtp_port)
                server.starttls(context=context)
            else:
                server = smtplib.SMTP_SSL(self.smtp_server, self.smtp_port)

            if self.username:
                server.login(self.username, self.password)
            return server
        except Exception as e:
            logger.error(f"Error creating SMTP connection: {str(e)}")
            raise

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        try:
            template = self.jinja_env.get_template(template_name)
            return template.render(**context)
        except Exception as e:
            logger.error(f"Error rendering template {template_name}: {str(e)}")
            raise

    def _sender(self, provider_settings: Optional[Dict[str, Any]]) -> Tuple[str, str]:
        provider_settings = provider_settings or {}
        return (
            provider_settings.get("from_email") or self.from_email,
            provider_settings.get("from_name") or self.from_name
        )

    def send_email(
        self,
        to_emails: List[str],
        subject: str,
        html_content: Optional[str] = None,
        text_content: Optional[str] = None,
        attachments: Optional[List[Dict[str, str]]] = None,
        provider_settings: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Send an email through the configured provider.

        Args:
            to_emails: Recipients
            subject: Subject line
            html_content: HTML body
            text_content: Plain text body
            attachments: [{"filename": ..., "content": <base64>}]
            provider_settings: Company `email_settings` (provider, api_key, from_email, from_name)

        Returns:
            True when the provider accepted the message
        """
        provider = (provider_settings or {}).get("provider") or "system"
        try:
            if provider == "resend":
                self._send_resend(to_emails, subject, html_content, text_content, attachments, provider_settings)
            elif provider == "brevo":
                self._send_brevo(to_emails, subject, html_content, text_content, attachments, provider_settings)
            else:
                self._send_smtp(to_emails, subject, html_content, text_content, attachments, provider_settings)

            logger.info(f"Email '{subject}' sent via {provider} to {', '.join(to_emails)}")
            return True

        except Exception as e:
            logger.error(f"Error sending email via {provider}: {str(e)}")
            return False

    def _send_smtp(self, to_emails, subject, html_content, text_content, attachments, provider_settings):
        from_email, from_name = self._sender(provider_settings)

        msg = MIMEMultipart('mixed')
        msg['Subject'] = subject
        msg['From'] = f"{from_name} <{from_email}>"
        msg['To'] = ', '.join(to_emails)

        body = MIMEMultipart('alternative')
        if text_content:
            body.attach(MIMEText(text_content, 'plain', 'utf-8'))
        if html_content:
            body.attach(MIMEText(html_content, 'html', 'utf-8'))
        msg.attach(body)

        for attachment in attachments or []:
            part = MIMEBase('application', 'octet-stream')
            part.set_payload(base64.b64decode(attachment["content"]))
            encoders.encode_base64(part)
            part.add_header('Content-Disposition', f'attachment; filename="{attachment["filename"]}"')
            msg.attach(part)

        with self._create_smtp_connection() as server:
            server.sendmail(from_email, to_emails, msg.as_string())

    def _send_resend(self, to_emails, subject, html_content, text_content, attachments, provider_settings):
        from_email, from_name = self._sender(provider_settings)
        payload = {
            "from": f"{from_name} <{from_email}>",
            "to": to_emails,
            "subject": subject,
        }
        if html_content:
            payload["html"] = html_content
        if text_content:
            payload["text"] = text_content
        if attachments:
            payload["attachments"] = [
                {"filename": a["filename"], "content": a["content"]} for a in attachments
            ]

        response = httpx.post(
            settings.RESEND_API_URL,
            json=payload,
            headers={"Authorization": f"Bearer {provider_settings.get('api_key')}"},
            timeout=settings.EMAIL_HTTP_TIMEOUT
        )
        response.raise_for_status()

    def _send_brevo(self, to_emails, subject, html_content, text_content, attachments, provider_settings):
        from_email, from_name = self._sender(provider_settings)
        payload = {
            "sender": {"name": from_name, "email": from_email},
            "to": [{"email": email} for email in to_emails],
            "subject": subject,
        }
        if html_content:
            payload["htmlContent"] = html_content
        if text_content:
            payload["textContent"] = text_content
        if attachments:
            payload["attachment"] = [
                {"name": a["filename"], "content": a["content"]} for a in attachments
            ]

        response = httpx.post(
            settings.BREVO_API_URL,
            json=payload,
            headers={"api-key": provider_settings.get("api_key") or "", "Accept": "application/json"},
            timeout=settings.EMAIL_HTTP_TIMEOUT
        )
        response.raise_for_status()

    def send_template_email(
        self,
        to_emails: List[str],
        subject: str,
        template_name: str,
        context: Dict[str, Any],
        attachments: Optional[List[Dict[str, str]]] = None,
        provider_settings: Optional[Dict[str, Any]] = None,
        custom_body: Optional[str] = None
    ) -> bool:
        """
        Send using a bundled template, or a pre-rendered company body when given.
        """
        try:
            html_content = custom_body or self.render_template(template_name, context)
        except Exception as e:
            logger.error(f"Error sending template email: {str(e)}")
            return False

        return self.send_email(
            to_emails=to_emails,
            subject=subject,
            html_content=html_content,
            attachments=attachments,
            provider_settings=provider_settings
        )


email_service = EmailService()


class EmailTemplateService:
    """Company email templates, rendered in a sandbox."""

    def __init__(self, db: Session):
        self.db = db
        self.env = SandboxedEnvironment(autoescape=True)

    def render_string(self, source: str, context: Dict[str, Any]) -> str:
        return self.env.from_string(source).render(**context)

    def render_for(
        self,
        tenant_id: UUID,
        template_type: TemplateType,
        context: Dict[str, Any]
    ) -> Tuple[Optional[str], Optional[str]]:
        """
        Subject and body from the company's default template of this type.

        Returns (None, None) when there is no template or it does not render,
        so the built-in email is used instead.
        """
        template = self.db.query(EmailTemplate).filter(
            EmailTemplate.tenant_id == tenant_id,
            EmailTemplate.type == template_type,
            EmailTemplate.is_default == True
        ).first()
        if not template:
            return None, None

        try:
            return self.render_string(template.subject, context), self.render_string(template.body, context)
        except TemplateError as e:
            logger.warning(f"Email template {template.id} failed to render, using built-in: {str(e)}")
            return None, None

    def _validate(self, subject: str, body: str):
        try:
            self.render_string(subject, PREVIEW_CONTEXT)
            self.render_string(body, PREVIEW_CONTEXT)
        except TemplateError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid template: {str(e)}"
            )

    def _unset_defaults(self, tenant_id: UUID, template_type: TemplateType, keep_id: Optional[UUID] = None):
        query = self.db.query(EmailTemplate).filter(
            EmailTemplate.tenant_id == tenant_id,
            EmailTemplate.type == template_type,
            EmailTemplate.is_default == True
        )
        if keep_id:
            query = query.filter(EmailTemplate.id != keep_id)
        query.update({"is_default": False}, synchronize_session=False)

    def list_templates(self, tenant_id: UUID, template_type: Optional[TemplateType] = None) -> List[EmailTemplate]:
        query = self.db.query(EmailTemplate).filter(EmailTemplate.tenant_id == tenant_id)
        if template_type:
            query = query.filter(EmailTemplate.type == template_type)
        return query.order_by(EmailTemplate.type, EmailTemplate.name).all()

    def get_template(self, template_id: UUID, tenant_id: UUID) -> EmailTemplate:
        template = self.db.query(EmailTemplate).filter(
            EmailTemplate.id == template_id,
            EmailTemplate.tenant_id == tenant_id
        ).first()
        if not template:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Email template not found"
            )
        return template

    def create_template(self, data: EmailTemplateCreate, tenant_id: UUID) -> EmailTemplate:
        self._validate(data.subject, data.body)
        if data.is_default:
            self._unset_defaults(tenant_id, data.type)

        template = EmailTemplate(tenant_id=tenant_id, **data.model_dump())
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        return template

    def update_template(self, template_id: UUID, data: EmailTemplateUpdate, tenant_id: UUID) -> EmailTemplate:
        template = self.get_template(template_id, tenant_id)
        update_data = data.model_dump(exclude_unset=True)
        self._validate(update_data.get("subject") or template.subject, update_data.get("body") or template.body)

        if update_data.get("is_default"):
            self._unset_defaults(tenant_id, template.type, keep_id=template.id)
        for field, value in update_data.items():
            if value is not None:
                setattr(template, field, value)

        self.db.commit()
        self.db.refresh(template)
        return template

    def delete_template(self, template_id: UUID, tenant_id: UUID) -> Dict[str, str]:
        template = self.get_template(template_id, tenant_id)
        self.db.delete(template)
        self.db.commit()
        return {"message": "Email template deleted successfully"}

    def preview_template(self, subject: str, body: str, context: Optional[Dict[str, Any]] = None) -> TemplatePreviewOut:
        values = {**PREVIEW_CONTEXT, **(context or {})}
        try:
            return TemplatePreviewOut(
                subject=self.render_string(subject, values),
                body=self.render_string(body, values)
            )
        except TemplateError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid template: {str(e)}"
            )

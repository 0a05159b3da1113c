"""
Celery tasks for outgoing email.

Each task resolves the company's email provider settings before sending,
so mail goes out through Resend or Brevo when the company configured one.
"""
import logging
from typing import Dict, Any, Optional
from uuid import UUID

from app.core.celery import celery_app
from app.database.database import SessionLocal
from app.modules.email.service import email_service

logger = logging.getLogger(__name__)


def load_provider_settings(tenant_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if not tenant_id:
        return None

    from app.modules.settings.models import CompanySettings

    db = SessionLocal()
    try:
        company_settings = db.query(CompanySettings).filter(
            CompanySettings.tenant_id == UUID(str(tenant_id))
        ).first()
        return dict(company_settings.email_settings or {}) if company_settings else None
    finally:
        db.close()


def _pdf_attachment(pdf_base64: Optional[str], filename: Optional[str]):
    if not pdf_base64:
        return None
    return [{"filename": filename or "document.pdf", "content": pdf_base64}]


@celery_app.task(bind=True, max_retries=3)
def send_email_task(
    self,
    to_email: str,
    subject: str,
    html_content: str,
    tenant_id: Optional[str] = None
):
    """
    Plain HTML email, used to test a provider configuration.
    """
    try:
        success = email_service.send_email(
            to_emails=[to_email],
            subject=subject,
            html_content=html_content,
            provider_settings=load_provider_settings(tenant_id)
        )
        if not success:
            raise Exception("Failed to send email")

        return {"status": "success", "recipient": to_email}

    except Exception as exc:
        logger.error(f"Email sending failed: {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
        return {"status": "failed", "error": str(exc), "recipient": to_email}


@celery_app.task(bind=True, max_retries=3)
def send_invoice_email_task(
    self,
    tenant_id: str,
    recipient: str,
    subject: str,
    context: Dict[str, Any],
    pdf_base64: Optional[str] = None,
    filename: Optional[str] = None,
    custom_body: Optional[str] = None
):
    """
    Send an invoice with its PDF attached.

    Args:
        tenant_id: Company sending the invoice
        recipient: Client email
        subject: Final subject line
        context: Values for invoice_email.html
        pdf_base64: Rendered PDF, base64 encoded
        filename: Attachment name
        custom_body: Body rendered from a company template, replaces the built-in one
    """
    try:
        success = email_service.send_template_email(
            to_emails=[recipient],
            subject=subject,
            template_name="invoice_email.html",
            context=context,
            attachments=_pdf_attachment(pdf_base64, filename),
            provider_settings=load_provider_settings(tenant_id),
            custom_body=custom_body
        )
        if not success:
            raise Exception("Failed to send invoice email")

        logger.info(f"Invoice email {context.get('invoice_number')} sent to {recipient}")
        return {"status": "success", "recipient": recipient, "invoice_number": context.get("invoice_number")}

    except Exception as exc:
        logger.error(f"Invoice email sending failed to {recipient}: {str(exc)}", exc_info=True)
        if self.request.retries < self.max_retries:
            logger.info(f"Retrying invoice email task (attempt {self.request.retries + 1}/{self.max_retries})")
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        logger.error(f"Invoice email task failed permanently after {self.max_retries} retries")
        return {
            "status": "failed",
            "error": str(exc),
            "recipient": recipient,
            "invoice_number": context.get("invoice_number")
        }


@celery_app.task(bind=True, max_retries=3)
def send_quotation_email_task(
    self,
    tenant_id: str,
    recipient: str,
    subject: str,
    context: Dict[str, Any],
    pdf_base64: Optional[str] = None,
    filename: Optional[str] = None,
    custom_body: Optional[str] = None
):
    try:
        success = email_service.send_template_email(
            to_emails=[recipient],
            subject=subject,
            template_name="quotation_email.html",
            context=context,
            attachments=_pdf_attachment(pdf_base64, filename),
            provider_settings=load_provider_settings(tenant_id),
            custom_body=custom_body
        )
        if not success:
            raise Exception("Failed to send quotation email")

        return {"status": "success", "recipient": recipient, "quote_number": context.get("quote_number")}

    except Exception as exc:
        logger.error(f"Quotation email sending failed to {recipient}: {str(exc)}", exc_info=True)
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
        return {"status": "failed", "error": str(exc), "recipient": recipient}


@celery_app.task(bind=True, max_retries=3)
def send_client_invite_task(
    self,
    tenant_id: str,
    recipient: str,
    context: Dict[str, Any],
    subject: Optional[str] = None,
    custom_body: Optional[str] = None
):
    """
    Invitation to the client portal. `context` carries the invite link.
    """
    try:
        success = email_service.send_template_email(
            to_emails=[recipient],
            subject=subject or f"{context.get('company_name', 'BillSense')} invited you to the client portal",
            template_name="client_invite.html",
            context=context,
            provider_settings=load_provider_settings(tenant_id),
            custom_body=custom_body
        )
        if not success:
            raise Exception("Failed to send client invite")

        return {"status": "success", "recipient": recipient}

    except Exception as exc:
        logger.error(f"Client invite failed for {recipient}: {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=30 * (2 ** self.request.retries))
        return {"status": "failed", "error": str(exc)}


@celery_app.task(bind=True, max_retries=3)
def send_payment_receipt_task(
    self,
    tenant_id: str,
    recipient: str,
    context: Dict[str, Any]
):
    try:
        success = email_service.send_template_email(
            to_emails=[recipient],
            subject=f"Payment received for invoice {context.get('invoice_number', '')}",
            template_name="payment_receipt.html",
            context=context,
            provider_settings=load_provider_settings(tenant_id)
        )
        if not success:
            raise Exception("Failed to send payment receipt")

        return {"status": "success", "recipient": recipient}

    except Exception as exc:
        logger.error(f"Payment receipt failed for {recipient}: {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
        return {"status": "failed", "error": str(exc)}

from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, MANAGER_ROLES
from app.modules.email.models import TemplateType
from app.modules.email.schemas import (
    EmailTemplateCreate, EmailTemplateUpdate, EmailTemplateOut,
    TemplatePreviewRequest, TemplatePreviewOut
)
from app.modules.email.service import EmailTemplateService
from app.modules.pdf.schemas import PdfSettingsUpdate, PdfSettingsOut
from app.modules.pdf.service import PdfService
from app.modules.settings.schemas import SettingsOut, SettingsUpdate
from app.modules.settings.service import SettingsService

router = APIRouter(prefix="/settings", tags=["Settings"])


@router.get("/", response_model=SettingsOut)
def get_settings(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return SettingsService(db).get(auth_context.tenant_id)


@router.patch("/", response_model=SettingsOut)
def update_settings(
    data: SettingsUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    """
    Update company settings.

    - **invoice_prefix / invoice_next_number**: invoice numbering
    - **quote_prefix / quote_next_number**: quotation numbering
    - **email_settings**: provider `system`, `resend` or `brevo`
    """
    return SettingsService(db).update(auth_context.tenant_id, data)


@router.get("/pdf", response_model=PdfSettingsOut)
def get_pdf_settings(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return PdfService(db).get_settings(auth_context.tenant_id)


@router.patch("/pdf", response_model=PdfSettingsOut)
def update_pdf_settings(
    data: PdfSettingsUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    return PdfService(db).update_settings(auth_context.tenant_id, data)


# ===== Email templates =====

@router.get("/email-templates", response_model=List[EmailTemplateOut])
def list_email_templates(
    type: Optional[TemplateType] = Query(None),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return EmailTemplateService(db).list_templates(auth_context.tenant_id, type)


@router.post("/email-templates", response_model=EmailTemplateOut, status_code=status.HTTP_201_CREATED)
def create_email_template(
    data: EmailTemplateCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    """
    Create an email template. Subject and body are Jinja2 templates, e.g.
    `Invoice {{ invoice_number }} from {{ company_name }}`.
    A default template replaces the built-in email of its type.
    """
    return EmailTemplateService(db).create_template(data, auth_context.tenant_id)


@router.post("/email-templates/preview", response_model=TemplatePreviewOut)
def preview_email_template(
    data: TemplatePreviewRequest,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return EmailTemplateService(db).preview_template(data.subject, data.body, data.context)


@router.get("/email-templates/{template_id}", response_model=EmailTemplateOut)
def get_email_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return EmailTemplateService(db).get_template(template_id, auth_context.tenant_id)


@router.patch("/email-templates/{template_id}", response_model=EmailTemplateOut)
def update_email_template(
    template_id: UUID,
    data: EmailTemplateUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    return EmailTemplateService(db).update_template(template_id, data, auth_context.tenant_id)


@router.delete("/email-templates/{template_id}")
def delete_email_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    return EmailTemplateService(db).delete_template(template_id, auth_context.tenant_id)

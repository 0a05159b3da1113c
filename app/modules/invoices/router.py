from fastapi import APIRouter, Depends, status, Query, Response
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date
from decimal import Decimal

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, BILLING_ROLES, MANAGER_ROLES
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.service import InvoiceService
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceOut, InvoiceDetail, InvoiceList, InvoiceFilters,
    InvoiceSendRequest, DocumentSendResponse, InvoiceCancelRequest, ProjectBillingPreview,
    NextNumberResponse, PublicInvoiceOut
)
from app.modules.payments.schemas import PaymentCreate, PaymentOut, PaymentResult
from app.modules.payments.service import PaymentService

router = APIRouter(prefix="/invoices", tags=["Invoices"])
public_router = APIRouter(prefix="/public/invoices", tags=["Public Invoices"])


def pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'}
    )


@router.post("/", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Create a draft invoice.

    - With `items`: the given line items are used.
    - With `project_id` and no items: items come from the project (fixed
      price, or unbilled billable time for hourly projects). Fixed price
      projects must be `completed`.
    - `include_expenses`: adds the project's uninvoiced billable expenses.

    Tax rate, due date and terms default to the company settings.
    """
    return InvoiceService(db).create_invoice(invoice_data, auth_context.tenant_id, auth_context.user_id)


@router.get("/", response_model=InvoiceList)
def list_invoices(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    status: Optional[InvoiceStatus] = Query(None),
    client_id: Optional[UUID] = Query(None),
    project_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    search: Optional[str] = Query(None, description="Invoice number or client name"),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    filters = InvoiceFilters(
        status=status,
        client_id=client_id,
        project_id=project_id,
        date_from=date_from,
        date_to=date_to,
        search=search
    )
    return InvoiceService(db).get_invoices(auth_context.tenant_id, filters, limit, offset)


@router.get("/next-number", response_model=NextNumberResponse)
def get_next_invoice_number(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return NextNumberResponse(next_number=InvoiceService(db).get_next_number(auth_context.tenant_id))


@router.get("/project-items/{project_id}", response_model=ProjectBillingPreview)
def preview_project_items(
    project_id: UUID,
    include_expenses: bool = Query(False),
    tax_rate: Optional[Decimal] = Query(None, ge=0, le=100),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Items an invoice for this project would get, without creating it.
    """
    return InvoiceService(db).preview_project_items(project_id, auth_context.tenant_id, include_expenses, tax_rate)


@router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return InvoiceService(db).get_invoice(invoice_id, auth_context.tenant_id)


@router.patch("/{invoice_id}", response_model=InvoiceDetail)
def update_invoice(
    invoice_id: UUID,
    invoice_update: InvoiceUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Update an invoice that is not paid or cancelled. Totals are recalculated.
    """
    return InvoiceService(db).update_invoice(invoice_id, invoice_update, auth_context.tenant_id)


@router.delete("/{invoice_id}")
def delete_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    """
    Delete an invoice without payments. Its time entries and expenses become billable again.
    """
    return InvoiceService(db).delete_invoice(invoice_id, auth_context.tenant_id)


@router.post("/{invoice_id}/send", response_model=DocumentSendResponse, status_code=status.HTTP_202_ACCEPTED)
def send_invoice(
    invoice_id: UUID,
    send_data: Optional[InvoiceSendRequest] = None,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Render the PDF and email it to the client in the background.
    A draft invoice is marked as sent.
    """
    return InvoiceService(db).send_invoice(invoice_id, auth_context.tenant_id, send_data or InvoiceSendRequest())


@router.post("/{invoice_id}/cancel", response_model=InvoiceDetail)
def cancel_invoice(
    invoice_id: UUID,
    cancel_data: Optional[InvoiceCancelRequest] = None,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    reason = cancel_data.reason if cancel_data else None
    return InvoiceService(db).cancel_invoice(invoice_id, auth_context.tenant_id, reason)


@router.get("/{invoice_id}/pdf")
def download_invoice_pdf(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    content, filename = InvoiceService(db).get_pdf(invoice_id, auth_context.tenant_id)
    return pdf_response(content, filename)


@router.post("/{invoice_id}/payments", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
def record_payment(
    invoice_id: UUID,
    payment_data: PaymentCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Record a manual payment (cash, check, transfer received...).
    """
    return PaymentService(db).record_manual_payment(
        invoice_id, payment_data, auth_context.tenant_id, auth_context.user_id
    )


@router.get("/{invoice_id}/payments", response_model=List[PaymentOut])
def list_invoice_payments(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return PaymentService(db).list_invoice_payments(invoice_id, auth_context.tenant_id)


# ===== Public invoice page =====

@public_router.get("/{token}", response_model=PublicInvoiceOut)
def get_public_invoice(token: str, db: Session = Depends(get_db)):
    """
    Invoice behind a public link. No authentication; the token is the credential.
    """
    return InvoiceService(db).get_public_invoice(token)


@public_router.get("/{token}/pdf")
def download_public_invoice_pdf(token: str, db: Session = Depends(get_db)):
    from app.modules.pdf.service import PdfService

    invoice = InvoiceService(db).get_invoice_by_token(token)
    return pdf_response(PdfService(db).render_invoice(invoice), f"{invoice.invoice_number}.pdf")

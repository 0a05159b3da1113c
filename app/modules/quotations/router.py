from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, BILLING_ROLES, MANAGER_ROLES
from app.modules.invoices.router import pdf_response
from app.modules.invoices.schemas import InvoiceDetail, InvoiceSendRequest, DocumentSendResponse, NextNumberResponse
from app.modules.quotations.models import QuotationStatus
from app.modules.quotations.schemas import (
    QuotationCreate, QuotationUpdate, QuotationDetail, QuotationList,
    BulkDeleteRequest, BulkDeleteResult, ConvertToInvoiceRequest
)
from app.modules.quotations.service import QuotationService

router = APIRouter(prefix="/quotations", tags=["Quotations"])


@router.post("/", response_model=QuotationDetail, status_code=status.HTTP_201_CREATED)
def create_quotation(
    data: QuotationCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return QuotationService(db).create_quotation(data, auth_context.tenant_id, auth_context.user_id)


@router.get("/", response_model=QuotationList)
def list_quotations(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    status: Optional[QuotationStatus] = Query(None),
    client_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None, description="Quote number or client name"),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return QuotationService(db).get_quotations(
        auth_context.tenant_id, limit, offset, status, client_id, search
    )


@router.get("/next-number", response_model=NextNumberResponse)
def get_next_quote_number(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return NextNumberResponse(next_number=QuotationService(db).get_next_number(auth_context.tenant_id))


@router.post("/bulk-delete", response_model=BulkDeleteResult)
def bulk_delete_quotations(
    data: BulkDeleteRequest,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    return QuotationService(db).bulk_delete(data.ids, auth_context.tenant_id)


@router.get("/{quotation_id}", response_model=QuotationDetail)
def get_quotation(
    quotation_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return QuotationService(db).get_quotation(quotation_id, auth_context.tenant_id)


@router.patch("/{quotation_id}", response_model=QuotationDetail)
def update_quotation(
    quotation_id: UUID,
    data: QuotationUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return QuotationService(db).update_quotation(quotation_id, data, auth_context.tenant_id)


@router.delete("/{quotation_id}")
def delete_quotation(
    quotation_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    return QuotationService(db).delete_quotation(quotation_id, auth_context.tenant_id)


@router.post("/{quotation_id}/send", response_model=DocumentSendResponse, status_code=status.HTTP_202_ACCEPTED)
def send_quotation(
    quotation_id: UUID,
    send_data: Optional[InvoiceSendRequest] = None,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Email the quotation PDF to the client. A draft quotation is marked as sent.
    """
    return QuotationService(db).send_quotation(quotation_id, auth_context.tenant_id, send_data or InvoiceSendRequest())


@router.post("/{quotation_id}/accept", response_model=QuotationDetail)
def accept_quotation(
    quotation_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return QuotationService(db).accept_quotation(quotation_id, auth_context.tenant_id)


@router.post("/{quotation_id}/reject", response_model=QuotationDetail)
def reject_quotation(
    quotation_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return QuotationService(db).reject_quotation(quotation_id, auth_context.tenant_id)


@router.post("/{quotation_id}/convert", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def convert_quotation(
    quotation_id: UUID,
    data: Optional[ConvertToInvoiceRequest] = None,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Create a draft invoice from an accepted quotation. Each quotation converts once.
    """
    return QuotationService(db).convert_to_invoice(
        quotation_id, auth_context.tenant_id, auth_context.user_id, data
    )


@router.get("/{quotation_id}/pdf")
def download_quotation_pdf(
    quotation_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    content, filename = QuotationService(db).get_pdf(quotation_id, auth_context.tenant_id)
    return pdf_response(content, filename)

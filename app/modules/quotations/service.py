import base64
import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from app.modules.clients.models import Client
from app.modules.clients.service import ClientService
from app.modules.company.models import Company
from app.modules.invoices.calculator import round_money
from app.modules.invoices.models import Invoice, DocumentType
from app.modules.invoices.numbering import DocumentNumberGenerator
from app.modules.invoices.schemas import InvoiceItemCreate, InvoiceSendRequest, DocumentSendResponse
from app.modules.invoices.service import InvoiceService, build_items, compute_totals_or_400
from app.modules.notifications.models import NotificationType
from app.modules.notifications.service import NotificationService
from app.modules.projects.service import ProjectService
from app.modules.quotations.models import Quotation, QuotationStatus, EDITABLE_STATUSES
from app.modules.quotations.schemas import (
    QuotationCreate, QuotationUpdate, QuotationList, QuotationStatusCount,
    BulkDeleteResult, ConvertToInvoiceRequest
)
from app.modules.settings.models import CompanySettings

logger = logging.getLogger(__name__)


class QuotationService:

    def __init__(self, db: Session):
        self.db = db

    def _query(self, tenant_id: UUID):
        return self.db.query(Quotation).options(
            selectinload(Quotation.client),
            selectinload(Quotation.items)
        ).filter(Quotation.tenant_id == tenant_id)

    def _check_project(self, project_id: Optional[UUID], client_id: UUID, tenant_id: UUID):
        if not project_id:
            return
        project = ProjectService(self.db).get_project_by_id(project_id, tenant_id)
        if project.client_id != client_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Project does not belong to this client"
            )

    def create_quotation(self, data: QuotationCreate, tenant_id: UUID, user_id: UUID) -> Quotation:
        try:
            client = ClientService(self.db).get_client_by_id(data.client_id, tenant_id)
            self._check_project(data.project_id, client.id, tenant_id)

            company_settings = self.db.query(CompanySettings).filter(
                CompanySettings.tenant_id == tenant_id
            ).first()
            tax_rate = data.tax_rate
            if tax_rate is None:
                tax_rate = company_settings.default_tax_rate if company_settings else 0

            items, amounts = build_items(data.items)
            totals = compute_totals_or_400(amounts, tax_rate, data.discount_type, data.discount_value)

            quotation = Quotation(
                tenant_id=tenant_id,
                client_id=client.id,
                project_id=data.project_id,
                created_by=user_id,
                quote_number=DocumentNumberGenerator(self.db).next_number(tenant_id, DocumentType.QUOTATION),
                status=QuotationStatus.DRAFT,
                currency=(data.currency or client.currency or "USD").upper(),
                issue_date=data.issue_date,
                expiry_date=data.expiry_date,
                notes=data.notes,
                terms=data.terms,
                subtotal=totals.subtotal,
                tax_rate=round_money(tax_rate),
                tax_amount=totals.tax_amount,
                discount_type=data.discount_type,
                discount_value=round_money(data.discount_value),
                discount_amount=totals.discount_amount,
                total=totals.total,
                items=items
            )
            self.db.add(quotation)
            self.db.commit()
            self.db.refresh(quotation)
            logger.info(f"Quotation {quotation.quote_number} created for client {client.id}")
            return quotation

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating quotation: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating quotation: {str(e)}"
            )

    def get_quotations(
        self,
        tenant_id: UUID,
        limit: int = 100,
        offset: int = 0,
        status_filter: Optional[QuotationStatus] = None,
        client_id: Optional[UUID] = None,
        search: Optional[str] = None
    ) -> QuotationList:
        query = self.db.query(Quotation).options(selectinload(Quotation.client)).filter(
            Quotation.tenant_id == tenant_id
        )
        if status_filter:
            query = query.filter(Quotation.status == status_filter)
        if client_id:
            query = query.filter(Quotation.client_id == client_id)
        if search:
            term = f"%{search}%"
            query = query.join(Client, Client.id == Quotation.client_id).filter(or_(
                Quotation.quote_number.ilike(term),
                Client.name.ilike(term)
            ))

        total = query.count()
        quotations = query.order_by(Quotation.issue_date.desc(), Quotation.quote_number.desc()).offset(
            offset
        ).limit(limit).all()

        counts = self.db.query(Quotation.status, func.count(Quotation.id)).filter(
            Quotation.tenant_id == tenant_id
        ).group_by(Quotation.status).all()

        return QuotationList(
            quotations=quotations,
            total=total,
            limit=limit,
            offset=offset,
            counts_by_status=[QuotationStatusCount(status=s, count=c) for s, c in counts]
        )

    def get_quotation(self, quotation_id: UUID, tenant_id: UUID) -> Quotation:
        quotation = self._query(tenant_id).filter(Quotation.id == quotation_id).first()
        if not quotation:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Quotation not found"
            )
        return quotation

    def update_quotation(self, quotation_id: UUID, data: QuotationUpdate, tenant_id: UUID) -> Quotation:
        """Only draft and sent quotations can change. Totals are recalculated."""
        try:
            quotation = self.get_quotation(quotation_id, tenant_id)
            if quotation.status not in EDITABLE_STATUSES:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Quotation is {quotation.status.value} and cannot be modified"
                )

            update_data = data.model_dump(exclude_unset=True, exclude={"items"})

            if update_data.get("client_id") and update_data["client_id"] != quotation.client_id:
                ClientService(self.db).get_client_by_id(update_data["client_id"], tenant_id)
            client_id = update_data.get("client_id") or quotation.client_id
            if update_data.get("project_id"):
                self._check_project(update_data["project_id"], client_id, tenant_id)

            for field in ("client_id", "project_id", "issue_date", "expiry_date", "notes", "terms"):
                if field in update_data and (update_data[field] is not None or field in ("project_id", "expiry_date", "notes", "terms")):
                    setattr(quotation, field, update_data[field])
            if update_data.get("currency"):
                quotation.currency = update_data["currency"].upper()
            if "discount_type" in update_data:
                quotation.discount_type = update_data["discount_type"]
            if update_data.get("tax_rate") is not None:
                quotation.tax_rate = update_data["tax_rate"]
            if update_data.get("discount_value") is not None:
                quotation.discount_value = update_data["discount_value"]

            if quotation.expiry_date and quotation.expiry_date < quotation.issue_date:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Expiry date cannot be before the issue date"
                )

            if data.items is not None:
                items, amounts = build_items(data.items)
                quotation.items = items
            else:
                amounts = [item.amount for item in quotation.items]

            totals = compute_totals_or_400(
                amounts, quotation.tax_rate, quotation.discount_type, quotation.discount_value
            )
            quotation.subtotal = totals.subtotal
            quotation.tax_amount = totals.tax_amount
            quotation.discount_amount = totals.discount_amount
            quotation.total = totals.total

            self.db.commit()
            self.db.refresh(quotation)
            return quotation

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating quotation {quotation_id}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating quotation: {str(e)}"
            )

    def _ensure_deletable(self, quotation: Quotation):
        if quotation.converted_invoice_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Quotation {quotation.quote_number} was converted to an invoice and cannot be deleted"
            )

    def delete_quotation(self, quotation_id: UUID, tenant_id: UUID) -> Dict[str, str]:
        quotation = self.get_quotation(quotation_id, tenant_id)
        self._ensure_deletable(quotation)
        number = quotation.quote_number
        self.db.delete(quotation)
        self.db.commit()
        logger.info(f"Quotation {number} deleted")
        return {"message": "Quotation deleted successfully"}

    def bulk_delete(self, ids: List[UUID], tenant_id: UUID) -> BulkDeleteResult:
        """
        Delete several quotations at once. Nothing is deleted when one of
        them was converted; unknown ids are reported back.
        """
        quotations = self.db.query(Quotation).filter(
            Quotation.tenant_id == tenant_id,
            Quotation.id.in_(ids)
        ).all()
        for quotation in quotations:
            self._ensure_deletable(quotation)

        found = {quotation.id for quotation in quotations}
        for quotation in quotations:
            self.db.delete(quotation)
        self.db.commit()

        logger.info(f"Bulk deleted {len(quotations)} quotation(s) for tenant {tenant_id}")
        return BulkDeleteResult(
            deleted=len(quotations),
            not_found=[quotation_id for quotation_id in ids if quotation_id not in found]
        )

    # ===== Workflow =====

    def send_quotation(self, quotation_id: UUID, tenant_id: UUID, send_data: InvoiceSendRequest) -> DocumentSendResponse:
        from app.modules.email.models import TemplateType
        from app.modules.email.service import EmailTemplateService
        from app.modules.email.tasks import send_quotation_email_task
        from app.modules.pdf.service import PdfService

        quotation = self.get_quotation(quotation_id, tenant_id)
        if quotation.status not in EDITABLE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Quotation is {quotation.status.value} and cannot be sent"
            )
        recipient = send_data.to_email or quotation.client_email
        if not recipient:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Client has no email address"
            )

        try:
            company = self.db.get(Company, tenant_id)
            company_name = company.name if company else ""
            pdf_bytes = PdfService(self.db).render_quotation(quotation)

            context = {
                "company_name": company_name,
                "client_name": quotation.client_name,
                "quote_number": quotation.quote_number,
                "issue_date": quotation.issue_date.isoformat(),
                "expiry_date": quotation.expiry_date.isoformat() if quotation.expiry_date else None,
                "total": f"{quotation.total:.2f}",
                "currency": quotation.currency,
                "message": send_data.message,
            }
            subject, body = EmailTemplateService(self.db).render_for(tenant_id, TemplateType.QUOTATION, context)
            subject = send_data.subject or subject or f"Quotation {quotation.quote_number} from {company_name}"

            task = send_quotation_email_task.delay(
                tenant_id=str(tenant_id),
                recipient=recipient,
                subject=subject,
                context=context,
                pdf_base64=base64.b64encode(pdf_bytes).decode("ascii"),
                filename=f"{quotation.quote_number}.pdf",
                custom_body=body
            )

            quotation.status = QuotationStatus.SENT
            quotation.sent_at = datetime.now(timezone.utc)
            self.db.commit()

            logger.info(f"Quotation {quotation.quote_number} queued for {recipient} (task {task.id})")
            return DocumentSendResponse(
                status="queued",
                task_id=str(task.id),
                message=f"Quotation {quotation.quote_number} queued for delivery",
                recipient=recipient
            )

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error sending quotation {quotation_id}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error sending quotation: {str(e)}"
            )

    def _decide(self, quotation_id: UUID, tenant_id: UUID, accepted: bool, today: Optional[date] = None) -> Quotation:
        quotation = self.get_quotation(quotation_id, tenant_id)
        if quotation.status not in EDITABLE_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Quotation is already {quotation.status.value}"
            )
        today = today or date.today()
        if accepted and quotation.expiry_date and quotation.expiry_date < today:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Quotation has expired"
            )

        now = datetime.now(timezone.utc)
        if accepted:
            quotation.status = QuotationStatus.ACCEPTED
            quotation.accepted_at = now
            notification_type = NotificationType.QUOTATION_ACCEPTED
        else:
            quotation.status = QuotationStatus.REJECTED
            quotation.rejected_at = now
            notification_type = NotificationType.QUOTATION_REJECTED

        NotificationService(self.db).notify(
            tenant_id=tenant_id,
            type=notification_type,
            title=f"Quotation {quotation.quote_number} {quotation.status.value}",
            message=f"{quotation.client_name} {quotation.status.value} {quotation.total} {quotation.currency}",
            user_id=quotation.created_by,
            meta={"quotation_id": str(quotation.id)}
        )
        self.db.commit()
        self.db.refresh(quotation)
        logger.info(f"Quotation {quotation.quote_number} {quotation.status.value}")
        return quotation

    def accept_quotation(self, quotation_id: UUID, tenant_id: UUID, today: Optional[date] = None) -> Quotation:
        return self._decide(quotation_id, tenant_id, accepted=True, today=today)

    def reject_quotation(self, quotation_id: UUID, tenant_id: UUID) -> Quotation:
        return self._decide(quotation_id, tenant_id, accepted=False)

    def convert_to_invoice(
        self,
        quotation_id: UUID,
        tenant_id: UUID,
        user_id: UUID,
        data: Optional[ConvertToInvoiceRequest] = None
    ) -> Invoice:
        """
        Turn an accepted quotation into a draft invoice, once.

        Items, tax and discount are copied; the invoice gets its own number.
        """
        quotation = self.get_quotation(quotation_id, tenant_id)
        if quotation.status != QuotationStatus.ACCEPTED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only accepted quotations can be converted to an invoice"
            )
        if quotation.converted_invoice_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Quotation has already been converted to an invoice"
            )

        data = data or ConvertToInvoiceRequest()
        invoices = InvoiceService(self.db)
        try:
            invoice = invoices.build_invoice(
                tenant_id=tenant_id,
                client=quotation.client,
                items_data=[
                    InvoiceItemCreate(
                        description=item.description,
                        quantity=item.quantity,
                        rate=item.rate,
                        amount=item.amount
                    )
                    for item in quotation.items
                ],
                tax_rate=quotation.tax_rate,
                discount_type=quotation.discount_type,
                discount_value=quotation.discount_value,
                issue_date=data.issue_date,
                due_date=data.due_date,
                currency=quotation.currency,
                notes=quotation.notes,
                terms=quotation.terms,
                user_id=user_id,
                project_id=quotation.project_id,
                quotation_id=quotation.id
            )
            quotation.converted_invoice_id = invoice.id
            self.db.commit()
            logger.info(f"Quotation {quotation.quote_number} converted to invoice {invoice.invoice_number}")
            return invoices.get_invoice(invoice.id, tenant_id)

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error converting quotation {quotation_id}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error converting quotation: {str(e)}"
            )

    def mark_expired(self, today: Optional[date] = None, tenant_id: Optional[UUID] = None) -> int:
        """Sent quotations past their expiry date become expired."""
        today = today or date.today()
        query = self.db.query(Quotation).filter(
            Quotation.status == QuotationStatus.SENT,
            Quotation.expiry_date.isnot(None),
            Quotation.expiry_date < today
        )
        if tenant_id:
            query = query.filter(Quotation.tenant_id == tenant_id)

        quotations = query.all()
        for quotation in quotations:
            quotation.status = QuotationStatus.EXPIRED
        self.db.commit()
        return len(quotations)

    def get_pdf(self, quotation_id: UUID, tenant_id: UUID) -> Tuple[bytes, str]:
        from app.modules.pdf.service import PdfService

        quotation = self.get_quotation(quotation_id, tenant_id)
        return PdfService(self.db).render_quotation(quotation), f"{quotation.quote_number}.pdf"

    def get_next_number(self, tenant_id: UUID) -> str:
        return DocumentNumberGenerator(self.db).peek_next_number(tenant_id, DocumentType.QUOTATION)

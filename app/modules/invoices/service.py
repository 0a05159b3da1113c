import base64
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from app.modules.auth.utils import generate_secure_token
from app.modules.clients.models import Client
from app.modules.clients.service import ClientService
from app.modules.company.models import Company
from app.modules.expenses.models import Expense
from app.modules.expenses.service import ExpenseService
from app.modules.invoices.calculator import calculate_item_amount, calculate_totals, round_money, to_decimal
from app.modules.invoices.models import (
    Invoice, InvoiceItem, InvoiceStatus, DiscountType, DocumentType
)
from app.modules.invoices.numbering import DocumentNumberGenerator
from app.modules.invoices.schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceList, InvoiceFilters, InvoiceItemCreate, StatusCount,
    InvoiceSendRequest, DocumentSendResponse, ProjectBillingPreview, PublicInvoiceOut
)
from app.modules.notifications.models import NotificationType
from app.modules.notifications.service import NotificationService
from app.modules.projects.models import Project, ProjectType, ProjectStatus
from app.modules.projects.service import ProjectService, HOUR, seconds_by_rate, time_amount
from app.modules.settings.models import CompanySettings
from app.modules.time_tracking.models import TimeEntry

logger = logging.getLogger(__name__)


def format_hours(hours: Decimal) -> str:
    """2.50 -> '2.5', 3.00 -> '3'."""
    text = f"{hours.quantize(Decimal('0.01')):f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def build_items(items_data: List[InvoiceItemCreate]) -> Tuple[List[InvoiceItem], List[Decimal]]:
    """Line item rows plus their amounts, positioned in input order."""
    items, amounts = [], []
    for position, item_data in enumerate(items_data):
        amount = calculate_item_amount(item_data.quantity, item_data.rate, item_data.amount)
        items.append(InvoiceItem(
            description=item_data.description,
            quantity=item_data.quantity,
            rate=item_data.rate,
            amount=amount,
            position=position
        ))
        amounts.append(amount)
    return items, amounts


def compute_totals_or_400(amounts, tax_rate, discount_type, discount_value):
    try:
        return calculate_totals(amounts, tax_rate, discount_type, discount_value)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


def apply_payment_to_invoice(invoice: Invoice, amount: Decimal) -> Decimal:
    """
    Add a payment to the invoice balance and move its status.

    Returns the rounded amount applied. The caller commits.
    """
    if invoice.status == InvoiceStatus.CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot record a payment on a cancelled invoice"
        )
    if invoice.status == InvoiceStatus.PAID:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invoice is already paid"
        )

    amount = round_money(amount)
    if amount <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment amount must be greater than 0"
        )
    amount_due = round_money(invoice.amount_due)
    if amount > amount_due:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Payment amount exceeds the amount due ({amount_due})"
        )

    invoice.amount_paid = round_money(to_decimal(invoice.amount_paid) + amount)
    invoice.amount_due = max(Decimal("0.00"), round_money(to_decimal(invoice.total) - invoice.amount_paid))

    if invoice.amount_due == 0:
        invoice.status = InvoiceStatus.PAID
        invoice.paid_at = datetime.now(timezone.utc)
    else:
        invoice.status = InvoiceStatus.PARTIAL
    return amount


class InvoiceService:

    def __init__(self, db: Session):
        self.db = db

    def _company_settings(self, tenant_id: UUID) -> Optional[CompanySettings]:
        return self.db.query(CompanySettings).filter(CompanySettings.tenant_id == tenant_id).first()

    def _query(self, tenant_id: UUID):
        return self.db.query(Invoice).options(
            selectinload(Invoice.client),
            selectinload(Invoice.items),
            selectinload(Invoice.payments)
        ).filter(Invoice.tenant_id == tenant_id)

    # ===== Project billing =====

    def _unbilled_entries(self, project: Project) -> List[TimeEntry]:
        return self.db.query(TimeEntry).filter(
            TimeEntry.tenant_id == project.tenant_id,
            TimeEntry.project_id == project.id,
            TimeEntry.is_running == False,
            TimeEntry.is_billable == True,
            TimeEntry.invoice_id.is_(None),
            TimeEntry.duration.isnot(None)
        ).order_by(TimeEntry.start_time).all()

    def ensure_project_invoiceable(self, project: Project):
        """Fixed price projects are billed once, after completion."""
        if project.project_type != ProjectType.FIXED:
            return
        if project.status != ProjectStatus.COMPLETED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Fixed price projects can only be invoiced when marked as completed."
            )
        already_invoiced = self.db.query(Invoice).filter(
            Invoice.tenant_id == project.tenant_id,
            Invoice.project_id == project.id,
            Invoice.status != InvoiceStatus.CANCELLED
        ).count()
        if already_invoiced:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This fixed price project has already been invoiced"
            )

    def build_project_items(
        self,
        project: Project,
        include_expenses: bool = False
    ) -> Tuple[ProjectBillingPreview, List[TimeEntry], List[Expense]]:
        """Items an invoice for this project would carry, with the records they bill."""
        self.ensure_project_invoiceable(project)

        items: List[InvoiceItemCreate] = []
        entries: List[TimeEntry] = []
        total_hours = Decimal("0")

        if project.project_type == ProjectType.FIXED:
            fixed_price = round_money(project.fixed_price)
            items.append(InvoiceItemCreate(
                description=project.name,
                quantity=Decimal("1"),
                rate=fixed_price,
                amount=fixed_price
            ))
        else:
            entries = self._unbilled_entries(project)
            if entries:
                total_hours = round_money(Decimal(sum(entry.duration or 0 for entry in entries)) / HOUR)
                by_rate = seconds_by_rate(entries, project.hourly_rate)
                for rate, seconds in by_rate.items():
                    hours = round_money(Decimal(seconds) / HOUR)
                    description = f"{project.name} - Time tracking ({format_hours(hours)} hours)"
                    if len(by_rate) > 1:
                        description = f"{description} at {rate}/h"
                    items.append(InvoiceItemCreate(
                        description=description,
                        quantity=hours if hours > 0 else Decimal("0.01"),
                        rate=rate,
                        amount=time_amount(seconds, rate)
                    ))

        expenses: List[Expense] = []
        if include_expenses:
            expenses = ExpenseService(self.db).get_billable_for_project(project.id, project.tenant_id)
            for expense in expenses:
                label = f"{expense.category}: {expense.description}" if expense.description else expense.category
                items.append(InvoiceItemCreate(
                    description=f"Expense - {label}"[:500],
                    quantity=Decimal("1"),
                    rate=round_money(expense.amount),
                    amount=round_money(expense.amount)
                ))

        preview = ProjectBillingPreview(
            project_id=project.id,
            project_type=project.project_type.value,
            total_hours=total_hours,
            items=items,
            time_entry_ids=[entry.id for entry in entries],
            expense_ids=[expense.id for expense in expenses]
        )
        return preview, entries, expenses

    def preview_project_items(
        self,
        project_id: UUID,
        tenant_id: UUID,
        include_expenses: bool = False,
        tax_rate: Optional[Decimal] = None
    ) -> ProjectBillingPreview:
        project = ProjectService(self.db).get_project_by_id(project_id, tenant_id)
        preview, _, _ = self.build_project_items(project, include_expenses)

        if tax_rate is None:
            company_settings = self._company_settings(tenant_id)
            tax_rate = company_settings.default_tax_rate if company_settings else 0
        amounts = [calculate_item_amount(i.quantity, i.rate, i.amount) for i in preview.items]
        preview.estimated_totals = compute_totals_or_400(amounts, tax_rate, None, 0)
        return preview

    # ===== CRUD =====

    def build_invoice(
        self,
        tenant_id: UUID,
        client: Client,
        items_data: List[InvoiceItemCreate],
        tax_rate: Optional[Decimal] = None,
        discount_type: Optional[DiscountType] = None,
        discount_value: Optional[Decimal] = None,
        issue_date: Optional[date] = None,
        due_date: Optional[date] = None,
        currency: Optional[str] = None,
        notes: Optional[str] = None,
        terms: Optional[str] = None,
        user_id: Optional[UUID] = None,
        project_id: Optional[UUID] = None,
        quotation_id: Optional[UUID] = None,
        recurring_invoice_id: Optional[UUID] = None
    ) -> Invoice:
        """
        Create a numbered draft invoice in the session without committing.

        Company defaults fill in the tax rate, payment window and terms when
        they are not given.
        """
        if not items_data:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="An invoice needs at least one line item"
            )

        company_settings = self._company_settings(tenant_id)
        if tax_rate is None:
            tax_rate = company_settings.default_tax_rate if company_settings else Decimal("0")
        issue_date = issue_date or date.today()
        if due_date is None:
            due_days = company_settings.default_due_days if company_settings else 30
            due_date = issue_date + timedelta(days=due_days)
        if terms is None and company_settings:
            terms = company_settings.invoice_terms

        items, amounts = build_items(items_data)
        totals = compute_totals_or_400(amounts, tax_rate, discount_type, discount_value)

        invoice = Invoice(
            tenant_id=tenant_id,
            client_id=client.id,
            project_id=project_id,
            quotation_id=quotation_id,
            recurring_invoice_id=recurring_invoice_id,
            is_recurring=recurring_invoice_id is not None,
            created_by=user_id,
            invoice_number=DocumentNumberGenerator(self.db).next_number(tenant_id, DocumentType.INVOICE),
            status=InvoiceStatus.DRAFT,
            currency=(currency or client.currency or "USD").upper(),
            issue_date=issue_date,
            due_date=due_date,
            notes=notes,
            terms=terms,
            subtotal=totals.subtotal,
            tax_rate=round_money(tax_rate),
            tax_amount=totals.tax_amount,
            discount_type=discount_type,
            discount_value=round_money(discount_value or 0),
            discount_amount=totals.discount_amount,
            total=totals.total,
            amount_paid=Decimal("0.00"),
            amount_due=totals.total,
            payment_token=generate_secure_token(),
            items=items
        )
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def create_invoice(self, invoice_data: InvoiceCreate, tenant_id: UUID, user_id: UUID) -> Invoice:
        """
        Create an invoice from explicit items or from a project.

        With a project and no items, the items are generated from the
        project: the fixed price, or the unbilled billable time. Time entries
        and expenses that end up on the invoice are linked to it.
        """
        try:
            client = ClientService(self.db).get_client_by_id(invoice_data.client_id, tenant_id)

            items_data = list(invoice_data.items)
            entries: List[TimeEntry] = []
            expenses: List[Expense] = []

            if invoice_data.project_id:
                project = ProjectService(self.db).get_project_by_id(invoice_data.project_id, tenant_id)
                if project.client_id != client.id:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail="Project does not belong to this client"
                    )
                preview, project_entries, expenses = self.build_project_items(
                    project, invoice_data.include_expenses
                )
                if items_data:
                    if expenses:
                        items_data.extend(preview.items[-len(expenses):])
                else:
                    items_data = preview.items
                    entries = project_entries

            invoice = self.build_invoice(
                tenant_id=tenant_id,
                client=client,
                items_data=items_data,
                tax_rate=invoice_data.tax_rate,
                discount_type=invoice_data.discount_type,
                discount_value=invoice_data.discount_value,
                issue_date=invoice_data.issue_date,
                due_date=invoice_data.due_date,
                currency=invoice_data.currency,
                notes=invoice_data.notes,
                terms=invoice_data.terms,
                user_id=user_id,
                project_id=invoice_data.project_id
            )

            for entry in entries:
                entry.invoice_id = invoice.id
            for expense in expenses:
                expense.invoice_id = invoice.id
                expense.is_invoiced = True

            self.db.commit()
            self.db.refresh(invoice)
            logger.info(
                f"Invoice {invoice.invoice_number} created for client {client.id} "
                f"(total {invoice.total} {invoice.currency}, {len(entries)} time entries billed)"
            )
            return invoice

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating invoice: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating invoice: {str(e)}"
            )

    def get_invoices(
        self,
        tenant_id: UUID,
        filters: InvoiceFilters,
        limit: int = 100,
        offset: int = 0
    ) -> InvoiceList:
        query = self.db.query(Invoice).options(selectinload(Invoice.client)).filter(
            Invoice.tenant_id == tenant_id
        )

        if filters.status:
            query = query.filter(Invoice.status == filters.status)
        if filters.client_id:
            query = query.filter(Invoice.client_id == filters.client_id)
        if filters.project_id:
            query = query.filter(Invoice.project_id == filters.project_id)
        if filters.date_from:
            query = query.filter(Invoice.issue_date >= filters.date_from)
        if filters.date_to:
            query = query.filter(Invoice.issue_date <= filters.date_to)
        if filters.search:
            term = f"%{filters.search}%"
            query = query.join(Client, Client.id == Invoice.client_id).filter(or_(
                Invoice.invoice_number.ilike(term),
                Client.name.ilike(term)
            ))

        total = query.count()
        invoices = query.order_by(Invoice.issue_date.desc(), Invoice.invoice_number.desc()).offset(
            offset
        ).limit(limit).all()

        counts = self.db.query(Invoice.status, func.count(Invoice.id)).filter(
            Invoice.tenant_id == tenant_id
        ).group_by(Invoice.status).all()

        return InvoiceList(
            invoices=invoices,
            total=total,
            limit=limit,
            offset=offset,
            counts_by_status=[StatusCount(status=s, count=c) for s, c in counts]
        )

    def get_invoice(self, invoice_id: UUID, tenant_id: UUID) -> Invoice:
        invoice = self._query(tenant_id).filter(Invoice.id == invoice_id).first()
        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice not found"
            )
        return invoice

    def get_invoice_by_token(self, token: str) -> Invoice:
        invoice = self.db.query(Invoice).options(
            selectinload(Invoice.client),
            selectinload(Invoice.items)
        ).filter(Invoice.payment_token == token).first()
        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice not found"
            )
        return invoice

    def get_public_invoice(self, token: str) -> PublicInvoiceOut:
        """What the public invoice page shows, including the enabled gateways."""
        from app.modules.payments.service import PaymentService

        invoice = self.get_invoice_by_token(token)
        company = self.db.get(Company, invoice.tenant_id)
        gateways = PaymentService(self.db).available_gateways(invoice.tenant_id)

        return PublicInvoiceOut(
            invoice_number=invoice.invoice_number,
            status=invoice.status,
            issue_date=invoice.issue_date,
            due_date=invoice.due_date,
            currency=invoice.currency,
            company_name=company.name if company else "",
            company_email=company.email if company else None,
            client_name=invoice.client_name,
            subtotal=invoice.subtotal,
            tax_rate=invoice.tax_rate,
            tax_amount=invoice.tax_amount,
            discount_amount=invoice.discount_amount,
            total=invoice.total,
            amount_paid=invoice.amount_paid,
            amount_due=invoice.amount_due,
            notes=invoice.notes,
            terms=invoice.terms,
            items=invoice.items,
            available_gateways=[g.value for g in gateways]
        )

    def update_invoice(self, invoice_id: UUID, invoice_update: InvoiceUpdate, tenant_id: UUID) -> Invoice:
        try:
            invoice = self.get_invoice(invoice_id, tenant_id)
            if invoice.status in (InvoiceStatus.PAID, InvoiceStatus.CANCELLED):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"A {invoice.status.value} invoice cannot be modified"
                )

            update_data = invoice_update.model_dump(exclude_unset=True, exclude={"items"})

            if update_data.get("client_id") and update_data["client_id"] != invoice.client_id:
                if invoice.project_id:
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail="The client of a project invoice cannot be changed"
                    )
                ClientService(self.db).get_client_by_id(update_data["client_id"], tenant_id)

            for field in ("client_id", "issue_date", "due_date", "notes", "terms"):
                if field in update_data and (update_data[field] is not None or field in ("notes", "terms")):
                    setattr(invoice, field, update_data[field])
            if update_data.get("currency"):
                invoice.currency = update_data["currency"].upper()
            if "discount_type" in update_data:
                invoice.discount_type = update_data["discount_type"]
            if update_data.get("tax_rate") is not None:
                invoice.tax_rate = update_data["tax_rate"]
            if update_data.get("discount_value") is not None:
                invoice.discount_value = update_data["discount_value"]

            if invoice.due_date and invoice.issue_date and invoice.due_date < invoice.issue_date:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Due date cannot be before the issue date"
                )

            if invoice_update.items is not None:
                items, amounts = build_items(invoice_update.items)
                invoice.items = items
            else:
                amounts = [item.amount for item in invoice.items]

            self._recalculate(invoice, amounts)
            self.db.commit()
            self.db.refresh(invoice)
            logger.info(f"Invoice {invoice.invoice_number} updated (total {invoice.total})")
            return invoice

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error updating invoice {invoice_id}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating invoice: {str(e)}"
            )

    def _recalculate(self, invoice: Invoice, amounts: List[Decimal]):
        totals = compute_totals_or_400(amounts, invoice.tax_rate, invoice.discount_type, invoice.discount_value)
        amount_paid = round_money(invoice.amount_paid)
        if totals.total < amount_paid:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invoice total cannot be lower than the amount already paid"
            )

        invoice.subtotal = totals.subtotal
        invoice.tax_amount = totals.tax_amount
        invoice.discount_amount = totals.discount_amount
        invoice.total = totals.total
        invoice.amount_due = round_money(totals.total - amount_paid)

        if amount_paid > 0:
            if invoice.amount_due == 0:
                invoice.status = InvoiceStatus.PAID
                invoice.paid_at = datetime.now(timezone.utc)
            elif invoice.status != InvoiceStatus.OVERDUE:
                invoice.status = InvoiceStatus.PARTIAL

    def _release_billed_records(self, invoice: Invoice):
        """Billed time and expenses become billable again."""
        self.db.query(TimeEntry).filter(TimeEntry.invoice_id == invoice.id).update(
            {"invoice_id": None}, synchronize_session=False
        )
        self.db.query(Expense).filter(Expense.invoice_id == invoice.id).update(
            {"invoice_id": None, "is_invoiced": False}, synchronize_session=False
        )

    def delete_invoice(self, invoice_id: UUID, tenant_id: UUID) -> Dict[str, str]:
        from app.modules.payments.models import Transaction
        from app.modules.recurring.models import RecurringInvoice

        try:
            invoice = self.get_invoice(invoice_id, tenant_id)
            if invoice.payments or round_money(invoice.amount_paid) > 0:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Invoices with payments cannot be deleted"
                )
            schedules = self.db.query(RecurringInvoice).filter(
                RecurringInvoice.tenant_id == tenant_id,
                RecurringInvoice.template_invoice_id == invoice.id
            ).count()
            if schedules:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Invoice is the template of a recurring invoice. Delete the recurring invoice first"
                )

            self._release_billed_records(invoice)
            self.db.query(Transaction).filter(Transaction.invoice_id == invoice.id).delete(
                synchronize_session=False
            )
            number = invoice.invoice_number
            self.db.delete(invoice)
            self.db.commit()
            logger.info(f"Invoice {number} deleted")
            return {"message": "Invoice deleted successfully"}

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error deleting invoice {invoice_id}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error deleting invoice: {str(e)}"
            )

    def cancel_invoice(self, invoice_id: UUID, tenant_id: UUID, reason: Optional[str] = None) -> Invoice:
        invoice = self.get_invoice(invoice_id, tenant_id)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invoice is already cancelled"
            )
        if invoice.status == InvoiceStatus.PAID or round_money(invoice.amount_paid) > 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invoices with payments cannot be cancelled"
            )

        invoice.status = InvoiceStatus.CANCELLED
        invoice.cancelled_at = datetime.now(timezone.utc)
        invoice.amount_due = Decimal("0.00")
        if reason:
            invoice.notes = f"{invoice.notes}\n\nCancelled: {reason}" if invoice.notes else f"Cancelled: {reason}"
        self._release_billed_records(invoice)

        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"Invoice {invoice.invoice_number} cancelled")
        return invoice

    # ===== Delivery =====

    def get_pdf(self, invoice_id: UUID, tenant_id: UUID) -> Tuple[bytes, str]:
        from app.modules.pdf.service import PdfService

        invoice = self.get_invoice(invoice_id, tenant_id)
        return PdfService(self.db).render_invoice(invoice), f"{invoice.invoice_number}.pdf"

    def send_invoice(self, invoice_id: UUID, tenant_id: UUID, send_data: InvoiceSendRequest) -> DocumentSendResponse:
        """
        Render the PDF and queue the invoice email.

        A draft becomes `sent`. Re-sending an already sent invoice only
        refreshes `sent_at`.
        """
        from app.modules.email.service import EmailTemplateService
        from app.modules.email.models import TemplateType
        from app.modules.email.tasks import send_invoice_email_task
        from app.modules.pdf.service import PdfService

        invoice = self.get_invoice(invoice_id, tenant_id)
        if invoice.status == InvoiceStatus.CANCELLED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cancelled invoices cannot be sent"
            )

        recipient = send_data.to_email or invoice.client_email
        if not recipient:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Client has no email address"
            )

        try:
            company = self.db.get(Company, tenant_id)
            company_name = company.name if company else ""
            pdf_bytes = PdfService(self.db).render_invoice(invoice)

            context = {
                "company_name": company_name,
                "client_name": invoice.client_name,
                "invoice_number": invoice.invoice_number,
                "issue_date": invoice.issue_date.isoformat(),
                "due_date": invoice.due_date.isoformat() if invoice.due_date else None,
                "total": f"{invoice.total:.2f}",
                "amount_due": f"{invoice.amount_due:.2f}",
                "currency": invoice.currency,
                "invoice_link": invoice.public_link,
                "payment_link": invoice.payment_link,
                "message": send_data.message,
            }
            subject, body = EmailTemplateService(self.db).render_for(tenant_id, TemplateType.INVOICE, context)
            subject = send_data.subject or subject or f"Invoice {invoice.invoice_number} from {company_name}"

            task = send_invoice_email_task.delay(
                tenant_id=str(tenant_id),
                recipient=recipient,
                subject=subject,
                context=context,
                pdf_base64=base64.b64encode(pdf_bytes).decode("ascii"),
                filename=f"{invoice.invoice_number}.pdf",
                custom_body=body
            )

            if invoice.status == InvoiceStatus.DRAFT:
                invoice.status = InvoiceStatus.SENT
            invoice.sent_at = datetime.now(timezone.utc)
            self.db.commit()

            logger.info(f"Invoice {invoice.invoice_number} queued for {recipient} (task {task.id})")
            return DocumentSendResponse(
                status="queued",
                task_id=str(task.id),
                message=f"Invoice {invoice.invoice_number} queued for delivery",
                recipient=recipient
            )

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error sending invoice {invoice_id}: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error sending invoice: {str(e)}"
            )

    # ===== Status maintenance =====

    def mark_overdue(self, today: Optional[date] = None, tenant_id: Optional[UUID] = None) -> int:
        """Sent or partially paid invoices past their due date become overdue."""
        today = today or date.today()
        query = self.db.query(Invoice).filter(
            Invoice.status.in_((InvoiceStatus.SENT, InvoiceStatus.PARTIAL)),
            Invoice.due_date.isnot(None),
            Invoice.due_date < today,
            Invoice.amount_due > 0
        )
        if tenant_id:
            query = query.filter(Invoice.tenant_id == tenant_id)

        invoices = query.all()
        notifications = NotificationService(self.db)
        for invoice in invoices:
            invoice.status = InvoiceStatus.OVERDUE
            notifications.notify(
                tenant_id=invoice.tenant_id,
                type=NotificationType.INVOICE_OVERDUE,
                title=f"Invoice {invoice.invoice_number} is overdue",
                message=f"{invoice.amount_due} {invoice.currency} was due on {invoice.due_date.isoformat()}",
                user_id=invoice.created_by,
                meta={"invoice_id": str(invoice.id)}
            )

        self.db.commit()
        if invoices:
            logger.info(f"Marked {len(invoices)} invoice(s) as overdue")
        return len(invoices)

    def get_next_number(self, tenant_id: UUID) -> str:
        return DocumentNumberGenerator(self.db).peek_next_number(tenant_id, DocumentType.INVOICE)


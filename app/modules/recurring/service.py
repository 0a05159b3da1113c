import calendar
import logging
from datetime import date, timedelta
from typing import Dict, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session, selectinload

from app.modules.invoices.models import Invoice, InvoiceStatus
from app.modules.invoices.schemas import InvoiceItemCreate, InvoiceSendRequest
from app.modules.invoices.service import InvoiceService
from app.modules.recurring.models import RecurringInvoice, RecurringFrequency
from app.modules.recurring.schemas import (
    RecurringInvoiceCreate, RecurringInvoiceUpdate, RecurringInvoiceList, GenerationResult
)

logger = logging.getLogger(__name__)

MONTHS_PER_PERIOD = {
    RecurringFrequency.MONTHLY: 1,
    RecurringFrequency.QUARTERLY: 3,
    RecurringFrequency.YEARLY: 12,
}


def add_months(value: date, months: int, anchor_day: Optional[int] = None) -> date:
    """
    Move a date by whole months, clamping to the last day of short months.

    anchor_day keeps a schedule that started on the 31st on the last day of
    each month instead of drifting to the 28th after February.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(anchor_day or value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_occurrence(current: date, frequency: RecurringFrequency, anchor_day: Optional[int] = None) -> date:
    if frequency == RecurringFrequency.WEEKLY:
        return current + timedelta(weeks=1)
    return add_months(current, MONTHS_PER_PERIOD[frequency], anchor_day)


class RecurringInvoiceService:

    def __init__(self, db: Session):
        self.db = db

    def _query(self, tenant_id: UUID):
        return self.db.query(RecurringInvoice).options(
            selectinload(RecurringInvoice.client),
            selectinload(RecurringInvoice.template_invoice)
        ).filter(RecurringInvoice.tenant_id == tenant_id)

    def create_schedule(self, data: RecurringInvoiceCreate, tenant_id: UUID, user_id: UUID) -> RecurringInvoice:
        template = InvoiceService(self.db).get_invoice(data.template_invoice_id, tenant_id)
        if template.status == InvoiceStatus.CANCELLED:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A cancelled invoice cannot be used as a template"
            )

        schedule = RecurringInvoice(
            tenant_id=tenant_id,
            client_id=template.client_id,
            template_invoice_id=template.id,
            created_by=user_id,
            frequency=data.frequency,
            start_date=data.start_date,
            end_date=data.end_date,
            next_invoice_date=data.start_date,
            auto_send=data.auto_send,
            is_active=True
        )
        template.is_recurring = True
        self.db.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)
        logger.info(
            f"Recurring {schedule.frequency.value} schedule created from invoice "
            f"{template.invoice_number}, first run {schedule.next_invoice_date}"
        )
        return schedule

    def get_schedules(
        self,
        tenant_id: UUID,
        limit: int = 100,
        offset: int = 0,
        is_active: Optional[bool] = None,
        client_id: Optional[UUID] = None
    ) -> RecurringInvoiceList:
        query = self._query(tenant_id)
        if is_active is not None:
            query = query.filter(RecurringInvoice.is_active == is_active)
        if client_id:
            query = query.filter(RecurringInvoice.client_id == client_id)

        total = query.count()
        items = query.order_by(RecurringInvoice.next_invoice_date).offset(offset).limit(limit).all()
        return RecurringInvoiceList(items=items, total=total, limit=limit, offset=offset)

    def get_schedule(self, schedule_id: UUID, tenant_id: UUID) -> RecurringInvoice:
        schedule = self._query(tenant_id).filter(RecurringInvoice.id == schedule_id).first()
        if not schedule:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Recurring invoice not found"
            )
        return schedule

    def update_schedule(self, schedule_id: UUID, data: RecurringInvoiceUpdate, tenant_id: UUID) -> RecurringInvoice:
        schedule = self.get_schedule(schedule_id, tenant_id)
        update_data = data.model_dump(exclude_unset=True)

        for field, value in update_data.items():
            if value is not None or field == "end_date":
                setattr(schedule, field, value)

        if schedule.end_date and schedule.end_date < schedule.start_date:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="End date cannot be before the start date"
            )

        self.db.commit()
        self.db.refresh(schedule)
        return schedule

    def deactivate_schedule(self, schedule_id: UUID, tenant_id: UUID) -> RecurringInvoice:
        schedule = self.get_schedule(schedule_id, tenant_id)
        schedule.is_active = False
        self.db.commit()
        self.db.refresh(schedule)
        logger.info(f"Recurring schedule {schedule.id} deactivated")
        return schedule

    def delete_schedule(self, schedule_id: UUID, tenant_id: UUID) -> Dict[str, str]:
        schedule = self.get_schedule(schedule_id, tenant_id)
        self.db.delete(schedule)
        self.db.commit()
        return {"message": "Recurring invoice deleted successfully"}

    # ===== Generation =====

    def _generate_one(self, schedule: RecurringInvoice) -> Invoice:
        template = schedule.template_invoice
        issue_date = schedule.next_invoice_date
        due_date = None
        if template.due_date and template.issue_date:
            due_date = issue_date + (template.due_date - template.issue_date)

        invoice = InvoiceService(self.db).build_invoice(
            tenant_id=schedule.tenant_id,
            client=template.client,
            items_data=[
                InvoiceItemCreate(
                    description=item.description,
                    quantity=item.quantity,
                    rate=item.rate,
                    amount=item.amount
                )
                for item in template.items
            ],
            tax_rate=template.tax_rate,
            discount_type=template.discount_type,
            discount_value=template.discount_value,
            issue_date=issue_date,
            due_date=due_date,
            currency=template.currency,
            notes=template.notes,
            terms=template.terms,
            user_id=schedule.created_by,
            project_id=template.project_id,
            recurring_invoice_id=schedule.id
        )

        schedule.last_generated_date = issue_date
        schedule.next_invoice_date = next_occurrence(issue_date, schedule.frequency, schedule.start_date.day)
        if schedule.end_date and schedule.next_invoice_date > schedule.end_date:
            schedule.is_active = False
        return invoice

    def generate_due_invoices(self, today: Optional[date] = None, tenant_id: Optional[UUID] = None) -> GenerationResult:
        """
        Create the invoices of every active schedule due on or before today.

        Each schedule produces at most one invoice per run. Schedules whose
        end date has passed are deactivated without generating.
        """
        today = today or date.today()
        query = self.db.query(RecurringInvoice).filter(
            RecurringInvoice.is_active == True,
            RecurringInvoice.next_invoice_date <= today
        )
        if tenant_id:
            query = query.filter(RecurringInvoice.tenant_id == tenant_id)

        result = GenerationResult(generated=0)
        for schedule in query.order_by(RecurringInvoice.next_invoice_date).all():
            if schedule.end_date and schedule.next_invoice_date > schedule.end_date:
                schedule.is_active = False
                self.db.commit()
                result.deactivated += 1
                continue

            try:
                invoice = self._generate_one(schedule)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                result.failed += 1
                logger.error(f"Recurring schedule {schedule.id} failed: {str(e)}", exc_info=True)
                continue

            result.generated += 1
            result.invoice_ids.append(invoice.id)
            logger.info(f"Recurring schedule {schedule.id} generated invoice {invoice.invoice_number}")

            if schedule.auto_send:
                try:
                    InvoiceService(self.db).send_invoice(invoice.id, schedule.tenant_id, InvoiceSendRequest())
                except HTTPException as e:
                    # The draft stays; it can be sent by hand
                    logger.warning(f"Could not auto-send invoice {invoice.invoice_number}: {e.detail}")

        return result

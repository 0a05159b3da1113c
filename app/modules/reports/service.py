"""
Report queries. Every query is scoped to one company.

Amounts are summed as stored, without currency conversion.
"""
import logging
from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.modules.clients.models import Client
from app.modules.expenses.models import Expense
from app.modules.invoices.models import Invoice, InvoiceStatus, UNPAID_STATUSES
from app.modules.payments.models import Payment, PaymentStatus
from app.modules.projects.models import Project, ProjectStatus
from app.modules.projects.service import seconds_to_hours
from app.modules.reports.schemas import (
    AmountCount, DashboardResponse, SummaryResponse, MonthlyFigures, ClientRevenue
)
from app.modules.time_tracking.models import TimeEntry
from app.modules.time_tracking.service import start_of_day

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def month_key(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def months_between(start: date, end: date):
    current = start.replace(day=1)
    while current <= end:
        yield month_key(current)
        current = (current + timedelta(days=32)).replace(day=1)


class ReportService:

    def __init__(self, db: Session, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id

    def _invoices(self):
        return self.db.query(Invoice).filter(Invoice.tenant_id == self.tenant_id)

    def _tracked_seconds(self, start: date, end: date, user_id: Optional[UUID] = None) -> int:
        """Seconds of finished entries started between start and end, inclusive."""
        query = self.db.query(func.coalesce(func.sum(TimeEntry.duration), 0)).filter(
            TimeEntry.tenant_id == self.tenant_id,
            TimeEntry.is_running == False,
            TimeEntry.start_time >= start_of_day(start),
            TimeEntry.start_time < start_of_day(end + timedelta(days=1))
        )
        if user_id:
            query = query.filter(TimeEntry.user_id == user_id)
        return int(query.scalar() or 0)

    def _earnings(self, start: date, end: date) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
            Payment.tenant_id == self.tenant_id,
            Payment.status == PaymentStatus.COMPLETED,
            Payment.payment_date >= start,
            Payment.payment_date <= end
        ).scalar()
        return Decimal(total or 0)

    def _expenses(self, start: date, end: date) -> Decimal:
        total = self.db.query(func.coalesce(func.sum(Expense.amount), 0)).filter(
            Expense.tenant_id == self.tenant_id,
            Expense.expense_date >= start,
            Expense.expense_date <= end
        ).scalar()
        return Decimal(total or 0)

    def dashboard(self, user_id: UUID, today: Optional[date] = None) -> DashboardResponse:
        today = today or date.today()
        week_start = today - timedelta(days=today.weekday())
        month_start = today.replace(day=1)
        year_start = today.replace(month=1, day=1)

        unpaid = self._invoices().filter(Invoice.status.in_(UNPAID_STATUSES)).all()
        overdue = [inv for inv in unpaid if inv.status == InvoiceStatus.OVERDUE or inv.is_overdue(today)]

        active_projects = self.db.query(Project).filter(
            Project.tenant_id == self.tenant_id,
            Project.status == ProjectStatus.ACTIVE,
            Project.deleted_at.is_(None)
        ).count()
        clients = self.db.query(Client).filter(
            Client.tenant_id == self.tenant_id,
            Client.deleted_at.is_(None)
        ).count()

        recent = self._invoices().options(selectinload(Invoice.client)).order_by(
            Invoice.created_at.desc()
        ).limit(5).all()

        return DashboardResponse(
            today=today,
            hours_this_week=seconds_to_hours(self._tracked_seconds(week_start, today, user_id)),
            hours_this_month=seconds_to_hours(self._tracked_seconds(month_start, today, user_id)),
            unpaid_invoices=AmountCount(
                count=len(unpaid),
                amount=sum((Decimal(inv.amount_due) for inv in unpaid), ZERO)
            ),
            overdue_invoices=AmountCount(
                count=len(overdue),
                amount=sum((Decimal(inv.amount_due) for inv in overdue), ZERO)
            ),
            earnings_this_month=self._earnings(month_start, today),
            earnings_this_year=self._earnings(year_start, today),
            expenses_this_month=self._expenses(month_start, today),
            active_projects=active_projects,
            clients=clients,
            recent_invoices=recent
        )

    def summary(self, start: date, end: date) -> SummaryResponse:
        """
        Figures for invoices issued and expenses incurred between start and
        end. Revenue is what was paid on those invoices; drafts and cancelled
        invoices are left out.
        """
        if end < start:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="end_date must be greater than or equal to start_date"
            )

        invoices = self._invoices().options(selectinload(Invoice.client)).filter(
            Invoice.issue_date >= start,
            Invoice.issue_date <= end,
            Invoice.status.notin_((InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED))
        ).all()
        expenses = self.db.query(Expense).filter(
            Expense.tenant_id == self.tenant_id,
            Expense.expense_date >= start,
            Expense.expense_date <= end
        ).all()

        monthly: Dict[str, Dict[str, Decimal]] = OrderedDict(
            (key, {"revenue": ZERO, "invoiced": ZERO, "expenses": ZERO}) for key in months_between(start, end)
        )
        by_client: Dict[UUID, ClientRevenue] = {}

        for invoice in invoices:
            figures = monthly[month_key(invoice.issue_date)]
            figures["revenue"] += Decimal(invoice.amount_paid)
            figures["invoiced"] += Decimal(invoice.total)

            row = by_client.get(invoice.client_id)
            if row is None:
                row = by_client[invoice.client_id] = ClientRevenue(
                    client_id=invoice.client_id,
                    client_name=invoice.client_name,
                    revenue=ZERO,
                    invoiced=ZERO,
                    invoice_count=0
                )
            row.revenue += Decimal(invoice.amount_paid)
            row.invoiced += Decimal(invoice.total)
            row.invoice_count += 1

        for expense in expenses:
            monthly[month_key(expense.expense_date)]["expenses"] += Decimal(expense.amount)

        revenue = sum((f["revenue"] for f in monthly.values()), ZERO)
        invoiced = sum((f["invoiced"] for f in monthly.values()), ZERO)
        expense_total = sum((f["expenses"] for f in monthly.values()), ZERO)

        return SummaryResponse(
            start_date=start,
            end_date=end,
            revenue=revenue,
            invoiced=invoiced,
            expenses=expense_total,
            profit=revenue - expense_total,
            hours_tracked=seconds_to_hours(self._tracked_seconds(start, end)),
            monthly=[
                MonthlyFigures(month=key, profit=f["revenue"] - f["expenses"], **f)
                for key, f in monthly.items()
            ],
            by_client=sorted(by_client.values(), key=lambda r: r.revenue, reverse=True)
        )

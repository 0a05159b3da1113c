from pydantic import BaseModel
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
from datetime import date

from app.modules.invoices.schemas import InvoiceOut


class AmountCount(BaseModel):
    count: int
    amount: Decimal


class DashboardResponse(BaseModel):
    today: date
    hours_this_week: Decimal
    hours_this_month: Decimal
    unpaid_invoices: AmountCount
    overdue_invoices: AmountCount
    earnings_this_month: Decimal
    earnings_this_year: Decimal
    expenses_this_month: Decimal
    active_projects: int
    clients: int
    recent_invoices: List[InvoiceOut] = []


class MonthlyFigures(BaseModel):
    month: str  # YYYY-MM
    revenue: Decimal
    invoiced: Decimal
    expenses: Decimal
    profit: Decimal


class ClientRevenue(BaseModel):
    client_id: UUID
    client_name: Optional[str] = None
    revenue: Decimal
    invoiced: Decimal
    invoice_count: int


class SummaryResponse(BaseModel):
    start_date: date
    end_date: date
    revenue: Decimal
    invoiced: Decimal
    expenses: Decimal
    profit: Decimal
    hours_tracked: Decimal
    monthly: List[MonthlyFigures] = []
    by_client: List[ClientRevenue] = []

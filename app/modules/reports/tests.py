"""
Tests for the dashboard and the financial summary.
"""
import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from fastapi import HTTPException

from app.modules.clients.schemas import ClientCreate
from app.modules.clients.service import ClientService
from app.modules.expenses.schemas import ExpenseCreate
from app.modules.expenses.service import ExpenseService
from app.modules.invoices.models import InvoiceStatus
from app.modules.payments.schemas import PaymentCreate
from app.modules.payments.service import PaymentService
from app.modules.reports.service import ReportService, months_between
from app.modules.time_tracking.schemas import TimeEntryCreate
from app.modules.time_tracking.service import TimeTrackingService


def issued(db_session, make_invoice, amount, issue_date, due_date=None, **kwargs):
    invoice = make_invoice(amount, issue_date=issue_date, due_date=due_date or issue_date + timedelta(days=14), **kwargs)
    invoice.status = InvoiceStatus.SENT
    db_session.commit()
    return invoice


def pay(db_session, invoice, amount, paid_on, tenant_id, user_id):
    return PaymentService(db_session).record_manual_payment(
        invoice.id, PaymentCreate(amount=Decimal(amount), payment_date=paid_on), tenant_id, user_id
    )


def spend(db_session, amount, spent_on, tenant_id, user_id):
    return ExpenseService(db_session).create_expense(
        ExpenseCreate(category="Software", amount=Decimal(amount), expense_date=spent_on), tenant_id, user_id
    )


def log_hours(db_session, project, tenant_id, user_id, day, hours):
    start = datetime(day.year, day.month, day.day, 9, 0, tzinfo=timezone.utc)
    return TimeTrackingService(db_session).create_manual_entry(
        TimeEntryCreate(project_id=project.id, start_time=start, end_time=start + timedelta(hours=hours)),
        tenant_id,
        user_id
    )


@pytest.fixture
def second_client(db_session, sample_company, sample_user):
    return ClientService(db_session).create_client(
        ClientCreate(name="Globex", email="ap@globex.example.com"), sample_company.id, sample_user.id
    )


@pytest.fixture
def spring_books(db_session, sample_company, sample_user, second_client, make_invoice, queued_email):
    """Invoices and expenses spread over February to May 2026."""
    tenant, user = sample_company.id, sample_user.id

    march = issued(db_session, make_invoice, "1000.00", date(2026, 3, 10))
    pay(db_session, march, "1000.00", date(2026, 3, 20), tenant, user)

    april = issued(db_session, make_invoice, "500.00", date(2026, 4, 5), client_id=second_client.id)
    pay(db_session, april, "200.00", date(2026, 4, 12), tenant, user)

    make_invoice("999.00", issue_date=date(2026, 4, 6), due_date=date(2026, 4, 20))
    issued(db_session, make_invoice, "700.00", date(2026, 2, 20))

    spend(db_session, "100.00", date(2026, 3, 15), tenant, user)
    spend(db_session, "50.00", date(2026, 4, 3), tenant, user)
    spend(db_session, "70.00", date(2026, 5, 1), tenant, user)


class TestMonths:

    def test_months_between(self):
        assert list(months_between(date(2025, 11, 30), date(2026, 2, 1))) == [
            "2025-11", "2025-12", "2026-01", "2026-02"
        ]
        assert list(months_between(date(2026, 4, 5), date(2026, 4, 5))) == ["2026-04"]


class TestSummary:

    def test_totals(self, db_session, sample_company, spring_books):
        report = ReportService(db_session, sample_company.id).summary(date(2026, 3, 1), date(2026, 4, 30))

        assert report.revenue == Decimal("1200.00")
        assert report.invoiced == Decimal("1500.00")
        assert report.expenses == Decimal("150.00")
        assert report.profit == Decimal("1050.00")

    def test_monthly_series(self, db_session, sample_company, spring_books):
        report = ReportService(db_session, sample_company.id).summary(date(2026, 3, 1), date(2026, 4, 30))

        march, april = report.monthly
        assert (march.month, march.revenue, march.expenses, march.profit) == (
            "2026-03", Decimal("1000.00"), Decimal("100.00"), Decimal("900.00")
        )
        assert (april.month, april.invoiced, april.profit) == ("2026-04", Decimal("500.00"), Decimal("150.00"))

    def test_empty_months_are_listed(self, db_session, sample_company):
        report = ReportService(db_session, sample_company.id).summary(date(2026, 1, 1), date(2026, 3, 31))
        assert [m.month for m in report.monthly] == ["2026-01", "2026-02", "2026-03"]
        assert report.revenue == Decimal("0")
        assert report.by_client == []

    def test_by_client(self, db_session, sample_company, sample_client, second_client, spring_books):
        report = ReportService(db_session, sample_company.id).summary(date(2026, 3, 1), date(2026, 4, 30))

        assert [row.client_id for row in report.by_client] == [sample_client.id, second_client.id]
        globex = report.by_client[1]
        assert globex.client_name == "Globex"
        assert globex.revenue == Decimal("200.00")
        assert globex.invoice_count == 1

    def test_hours_tracked(self, db_session, sample_company, sample_user, sample_project, make_member):
        member, _ = make_member(sample_company, "member@example.com", "member")
        log_hours(db_session, sample_project, sample_company.id, sample_user.id, date(2026, 3, 2), 2)
        log_hours(db_session, sample_project, sample_company.id, member.id, date(2026, 3, 3), 1.5)
        log_hours(db_session, sample_project, sample_company.id, sample_user.id, date(2026, 4, 1), 4)

        report = ReportService(db_session, sample_company.id).summary(date(2026, 3, 1), date(2026, 3, 31))
        assert report.hours_tracked == Decimal("3.50")

    def test_end_before_start(self, db_session, sample_company):
        with pytest.raises(HTTPException) as exc_info:
            ReportService(db_session, sample_company.id).summary(date(2026, 4, 1), date(2026, 3, 1))
        assert exc_info.value.status_code == 422

    def test_scoped_to_company(self, db_session, other_company, spring_books):
        report = ReportService(db_session, other_company.company.id).summary(date(2026, 1, 1), date(2026, 12, 31))
        assert report.invoiced == Decimal("0")
        assert report.expenses == Decimal("0")


class TestDashboard:

    def test_figures(
        self, db_session, sample_company, sample_user, sample_project, make_invoice, make_member, queued_email
    ):
        tenant, user = sample_company.id, sample_user.id
        today = date(2026, 4, 8)

        issued(db_session, make_invoice, "300.00", date(2026, 3, 1), due_date=date(2026, 4, 1))
        partly_paid = issued(db_session, make_invoice, "200.00", date(2026, 4, 1), due_date=date(2026, 5, 1))
        pay(db_session, partly_paid, "50.00", date(2026, 4, 2), tenant, user)
        spend(db_session, "40.00", date(2026, 4, 3), tenant, user)

        member, _ = make_member(sample_company, "member@example.com", "member")
        log_hours(db_session, sample_project, tenant, user, date(2026, 4, 6), 2)
        log_hours(db_session, sample_project, tenant, user, date(2026, 4, 1), 1)
        log_hours(db_session, sample_project, tenant, member.id, date(2026, 4, 7), 5)

        dashboard = ReportService(db_session, tenant).dashboard(user, today=today)

        assert dashboard.hours_this_week == Decimal("2.00")
        assert dashboard.hours_this_month == Decimal("3.00")
        assert dashboard.unpaid_invoices.count == 2
        assert dashboard.unpaid_invoices.amount == Decimal("450.00")
        assert dashboard.overdue_invoices.count == 1
        assert dashboard.overdue_invoices.amount == Decimal("300.00")
        assert dashboard.earnings_this_month == Decimal("50.00")
        assert dashboard.expenses_this_month == Decimal("40.00")
        assert dashboard.active_projects == 1
        assert dashboard.clients == 1
        assert len(dashboard.recent_invoices) == 2


class TestReportEndpoints:

    def test_dashboard(self, client, auth_headers, sample_client):
        response = client.get("/reports/dashboard", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["clients"] == 1

    def test_summary(self, client, auth_headers, spring_books):
        response = client.get(
            "/reports/summary", params={"start_date": "2026-03-01", "end_date": "2026-04-30"}, headers=auth_headers
        )
        assert response.status_code == 200
        assert Decimal(response.json()["profit"]) == Decimal("1050.00")

    def test_csv_export(self, client, auth_headers, spring_books):
        response = client.get("/reports/summary", params={
            "start_date": "2026-03-01", "end_date": "2026-04-30", "export": "csv"
        }, headers=auth_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "summary_2026-03-01_2026-04-30.csv" in response.headers["content-disposition"]

        lines = response.text.splitlines()
        assert lines[0] == "Month,Revenue,Invoiced,Expenses,Profit"
        assert lines[1] == "2026-03,1000.00,1000.00,100.00,900.00"

    def test_client_csv_export(self, client, auth_headers, spring_books):
        response = client.get("/reports/summary", params={
            "start_date": "2026-03-01", "end_date": "2026-04-30", "export": "csv_clients"
        }, headers=auth_headers)
        lines = response.text.splitlines()
        assert lines[0] == "Client,Invoices,Invoiced,Revenue"
        assert lines[2] == "Globex,1,500.00,200.00"

    def test_bad_range_and_format(self, client, auth_headers):
        params = {"start_date": "2026-04-01", "end_date": "2026-03-01"}
        assert client.get("/reports/summary", params=params, headers=auth_headers).status_code == 422

        params = {"start_date": "2026-03-01", "end_date": "2026-04-01", "export": "xlsx"}
        assert client.get("/reports/summary", params=params, headers=auth_headers).status_code == 422

    def test_viewers_cannot_see_summary(self, client, sample_company, make_member):
        _, headers = make_member(sample_company, "viewer@example.com", "viewer")
        response = client.get(
            "/reports/summary", params={"start_date": "2026-03-01", "end_date": "2026-04-01"}, headers=headers
        )
        assert response.status_code == 403

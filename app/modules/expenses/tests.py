"""
Tests for the expenses module.
"""
import pytest
from datetime import date
from decimal import Decimal
from fastapi import HTTPException
from pydantic import ValidationError
from uuid import uuid4

from app.modules.expenses.schemas import ExpenseCreate, ExpenseUpdate
from app.modules.expenses.service import ExpenseService


def expense(category="Software", amount="49.99", **kwargs):
    kwargs.setdefault("expense_date", date(2026, 5, 4))
    return ExpenseCreate(category=category, amount=Decimal(amount), **kwargs)


class TestExpenseService:

    def test_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            expense(amount="0")

    def test_create_with_foreign_project(self, db_session, sample_company, sample_user, other_company):
        from app.modules.projects.schemas import ProjectCreate
        from app.modules.projects.service import ProjectService

        foreign_project = ProjectService(db_session).create_project(
            ProjectCreate(client_id=other_company.client.id, name="Theirs", hourly_rate=Decimal("20")),
            other_company.company.id,
            other_company.owner.id
        )
        with pytest.raises(HTTPException) as exc_info:
            ExpenseService(db_session).create_expense(
                expense(project_id=foreign_project.id), sample_company.id, sample_user.id
            )
        assert exc_info.value.status_code == 404

    def test_list_and_totals(self, db_session, sample_company, sample_user):
        service = ExpenseService(db_session)
        service.create_expense(expense("Software", "20.00"), sample_company.id, sample_user.id)
        service.create_expense(expense("Software", "30.00"), sample_company.id, sample_user.id)
        service.create_expense(expense("Travel", "120.50", expense_date=date(2026, 6, 1)), sample_company.id, sample_user.id)

        listing = service.get_expenses(sample_company.id, date_to=date(2026, 5, 31))
        assert listing.total == 2
        assert listing.total_amount == Decimal("50.00")

        totals = service.totals_by_category(sample_company.id)
        assert [(t.category, t.count, t.total) for t in totals] == [
            ("Travel", 1, Decimal("120.50")),
            ("Software", 2, Decimal("50.00")),
        ]

    def test_not_found(self, db_session, sample_company):
        with pytest.raises(HTTPException) as exc_info:
            ExpenseService(db_session).get_expense_by_id(uuid4(), sample_company.id)
        assert exc_info.value.detail == "Expense not found"

    def test_update_and_delete(self, db_session, sample_company, sample_user):
        service = ExpenseService(db_session)
        created = service.create_expense(expense(), sample_company.id, sample_user.id)

        updated = service.update_expense(created.id, ExpenseUpdate(description="Annual plan"), sample_company.id)
        assert updated.description == "Annual plan"

        service.delete_expense(created.id, sample_company.id)
        assert service.get_expenses(sample_company.id).total == 0

    def test_billable_expenses_invoiced_once(
        self, db_session, sample_company, sample_user, sample_client, sample_project
    ):
        from app.modules.invoices.schemas import InvoiceCreate, InvoiceItemCreate
        from app.modules.invoices.service import InvoiceService

        service = ExpenseService(db_session)
        billable = service.create_expense(
            expense("Hosting", "75.00", project_id=sample_project.id, is_billable=True, description="VPS"),
            sample_company.id, sample_user.id
        )
        service.create_expense(
            expense("Meals", "18.00", project_id=sample_project.id), sample_company.id, sample_user.id
        )
        assert [e.id for e in service.get_billable_for_project(sample_project.id, sample_company.id)] == [billable.id]

        invoice = InvoiceService(db_session).create_invoice(
            InvoiceCreate(
                client_id=sample_client.id,
                project_id=sample_project.id,
                include_expenses=True,
                items=[InvoiceItemCreate(description="Setup", rate=Decimal("100"))]
            ),
            sample_company.id,
            sample_user.id
        )
        assert [item.description for item in invoice.items] == ["Setup", "Expense - Hosting: VPS"]
        assert invoice.subtotal == Decimal("175.00")
        assert service.get_billable_for_project(sample_project.id, sample_company.id) == []

        with pytest.raises(HTTPException) as exc_info:
            service.delete_expense(billable.id, sample_company.id)
        assert exc_info.value.status_code == 400


class TestExpenseEndpoints:

    def test_create_and_by_category(self, client, auth_headers):
        response = client.post("/expenses/", json={
            "category": "Equipment",
            "amount": "899.00",
            "expense_date": "2026-05-02"
        }, headers=auth_headers)
        assert response.status_code == 201

        totals = client.get("/expenses/by-category", headers=auth_headers).json()
        assert [(t["category"], t["count"], Decimal(t["total"])) for t in totals] == [("Equipment", 1, Decimal("899"))]

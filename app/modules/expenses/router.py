from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, BILLING_ROLES
from app.modules.expenses.service import ExpenseService
from app.modules.expenses.schemas import ExpenseCreate, ExpenseUpdate, ExpenseOut, ExpenseList, CategoryTotal

router = APIRouter(prefix="/expenses", tags=["Expenses"])


@router.post("/", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
def create_expense(
    expense_data: ExpenseCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return ExpenseService(db).create_expense(expense_data, auth_context.tenant_id, auth_context.user_id)


@router.get("/", response_model=ExpenseList)
def list_expenses(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    project_id: Optional[UUID] = Query(None),
    category: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    is_billable: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return ExpenseService(db).get_expenses(
        auth_context.tenant_id, limit, offset, project_id, category, date_from, date_to, is_billable
    )


@router.get("/by-category", response_model=List[CategoryTotal])
def expenses_by_category(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return ExpenseService(db).totals_by_category(auth_context.tenant_id, date_from, date_to)


@router.get("/{expense_id}", response_model=ExpenseOut)
def get_expense(
    expense_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return ExpenseService(db).get_expense_by_id(expense_id, auth_context.tenant_id)


@router.patch("/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: UUID,
    expense_update: ExpenseUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return ExpenseService(db).update_expense(expense_id, expense_update, auth_context.tenant_id)


@router.delete("/{expense_id}")
def delete_expense(
    expense_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return ExpenseService(db).delete_expense(expense_id, auth_context.tenant_id)

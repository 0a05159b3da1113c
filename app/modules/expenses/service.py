import logging
from decimal import Decimal
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.modules.expenses.models import Expense
from app.modules.expenses.schemas import ExpenseCreate, ExpenseUpdate, ExpenseList, CategoryTotal
from app.modules.projects.service import ProjectService

logger = logging.getLogger(__name__)


class ExpenseService:

    def __init__(self, db: Session):
        self.db = db

    def create_expense(self, expense_data: ExpenseCreate, tenant_id: UUID, user_id: UUID) -> Expense:
        if expense_data.project_id:
            ProjectService(self.db).get_project_by_id(expense_data.project_id, tenant_id)

        try:
            expense = Expense(tenant_id=tenant_id, created_by=user_id, **expense_data.model_dump())
            self.db.add(expense)
            self.db.commit()
            self.db.refresh(expense)
            logger.info(f"Expense recorded: {expense.category} {expense.amount} {expense.currency}")
            return expense
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating expense: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating expense: {str(e)}"
            )

    def _filtered_query(
        self,
        tenant_id: UUID,
        project_id: Optional[UUID] = None,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        is_billable: Optional[bool] = None
    ):
        query = self.db.query(Expense).filter(Expense.tenant_id == tenant_id)
        if project_id:
            query = query.filter(Expense.project_id == project_id)
        if category:
            query = query.filter(Expense.category == category)
        if date_from:
            query = query.filter(Expense.expense_date >= date_from)
        if date_to:
            query = query.filter(Expense.expense_date <= date_to)
        if is_billable is not None:
            query = query.filter(Expense.is_billable == is_billable)
        return query

    def get_expenses(
        self,
        tenant_id: UUID,
        limit: int = 100,
        offset: int = 0,
        project_id: Optional[UUID] = None,
        category: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        is_billable: Optional[bool] = None
    ) -> ExpenseList:
        query = self._filtered_query(tenant_id, project_id, category, date_from, date_to, is_billable)

        total = query.count()
        total_amount = query.with_entities(func.coalesce(func.sum(Expense.amount), 0)).scalar()
        expenses = query.options(selectinload(Expense.project)).order_by(
            Expense.expense_date.desc()
        ).offset(offset).limit(limit).all()

        return ExpenseList(
            items=expenses,
            total=total,
            total_amount=Decimal(str(total_amount)),
            limit=limit,
            offset=offset
        )

    def get_expense_by_id(self, expense_id: UUID, tenant_id: UUID) -> Expense:
        expense = self.db.query(Expense).filter(
            Expense.id == expense_id,
            Expense.tenant_id == tenant_id
        ).first()
        if not expense:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Expense not found"
            )
        return expense

    def update_expense(self, expense_id: UUID, expense_update: ExpenseUpdate, tenant_id: UUID) -> Expense:
        expense = self.get_expense_by_id(expense_id, tenant_id)
        if expense.is_invoiced:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Expense has been invoiced and cannot be modified"
            )

        update_data = expense_update.model_dump(exclude_unset=True)
        if update_data.get("project_id"):
            ProjectService(self.db).get_project_by_id(update_data["project_id"], tenant_id)

        for field, value in update_data.items():
            setattr(expense, field, value)

        self.db.commit()
        self.db.refresh(expense)
        return expense

    def delete_expense(self, expense_id: UUID, tenant_id: UUID) -> Dict[str, str]:
        expense = self.get_expense_by_id(expense_id, tenant_id)
        if expense.is_invoiced:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Expense has been invoiced and cannot be deleted"
            )
        self.db.delete(expense)
        self.db.commit()
        return {"message": "Expense deleted successfully"}

    def totals_by_category(
        self,
        tenant_id: UUID,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> List[CategoryTotal]:
        rows = self._filtered_query(tenant_id, date_from=date_from, date_to=date_to).with_entities(
            Expense.category,
            func.count(Expense.id),
            func.coalesce(func.sum(Expense.amount), 0)
        ).group_by(Expense.category).all()

        totals = [
            CategoryTotal(category=category, count=count, total=Decimal(str(total)))
            for category, count, total in rows
        ]
        return sorted(totals, key=lambda t: t.total, reverse=True)

    def get_billable_for_project(self, project_id: UUID, tenant_id: UUID) -> List[Expense]:
        """Billable expenses of a project that are not on an invoice yet."""
        return self.db.query(Expense).filter(
            Expense.tenant_id == tenant_id,
            Expense.project_id == project_id,
            Expense.is_billable == True,
            Expense.is_invoiced == False
        ).order_by(Expense.expense_date).all()

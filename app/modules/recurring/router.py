from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, BILLING_ROLES, MANAGER_ROLES
from app.modules.recurring.schemas import (
    RecurringInvoiceCreate, RecurringInvoiceUpdate, RecurringInvoiceOut, RecurringInvoiceList, GenerationResult
)
from app.modules.recurring.service import RecurringInvoiceService

router = APIRouter(prefix="/recurring-invoices", tags=["Recurring Invoices"])


@router.post("/", response_model=RecurringInvoiceOut, status_code=status.HTTP_201_CREATED)
def create_recurring_invoice(
    data: RecurringInvoiceCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    """
    Repeat an existing invoice every week, month, quarter or year,
    starting on **start_date**.
    """
    return RecurringInvoiceService(db).create_schedule(data, auth_context.tenant_id, auth_context.user_id)


@router.get("/", response_model=RecurringInvoiceList)
def list_recurring_invoices(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    is_active: Optional[bool] = Query(None),
    client_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return RecurringInvoiceService(db).get_schedules(auth_context.tenant_id, limit, offset, is_active, client_id)


@router.post("/generate", response_model=GenerationResult)
def generate_due_invoices(
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    """
    Run the company's due schedules now instead of waiting for the daily job.
    """
    return RecurringInvoiceService(db).generate_due_invoices(tenant_id=auth_context.tenant_id)


@router.get("/{schedule_id}", response_model=RecurringInvoiceOut)
def get_recurring_invoice(
    schedule_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return RecurringInvoiceService(db).get_schedule(schedule_id, auth_context.tenant_id)


@router.patch("/{schedule_id}", response_model=RecurringInvoiceOut)
def update_recurring_invoice(
    schedule_id: UUID,
    data: RecurringInvoiceUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return RecurringInvoiceService(db).update_schedule(schedule_id, data, auth_context.tenant_id)


@router.post("/{schedule_id}/deactivate", response_model=RecurringInvoiceOut)
def deactivate_recurring_invoice(
    schedule_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(BILLING_ROLES))
):
    return RecurringInvoiceService(db).deactivate_schedule(schedule_id, auth_context.tenant_id)


@router.delete("/{schedule_id}")
def delete_recurring_invoice(
    schedule_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    return RecurringInvoiceService(db).delete_schedule(schedule_id, auth_context.tenant_id)

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, BILLING_ROLES
from app.modules.auth.schemas import AuthContext
from app.modules.reports.schemas import DashboardResponse
from app.modules.reports.service import ReportService
from app.modules.reports.utils import create_csv_response, MONTHLY_HEADERS, CLIENT_HEADERS

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(
    auth_context: AuthContext = Depends(AuthDependencies.require_role(STAFF_ROLES)),
    db: Session = Depends(get_db)
):
    """Home screen figures. Hours are those of the current user."""
    return ReportService(db, auth_context.tenant_id).dashboard(auth_context.user_id)


@router.get("/summary", response_model=None)
def get_summary(
    start_date: date = Query(..., description="Start date for the report period"),
    end_date: date = Query(..., description="End date for the report period"),
    export: Optional[str] = Query(None, pattern="^(csv|csv_clients)$", description="Export format: csv or csv_clients"),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(BILLING_ROLES)),
    db: Session = Depends(get_db)
):
    """
    Revenue, invoiced amount, expenses and profit for a period.

    - **export=csv**: monthly series as CSV
    - **export=csv_clients**: revenue by client as CSV
    """
    report = ReportService(db, auth_context.tenant_id).summary(start_date, end_date)

    if export == "csv":
        return create_csv_response(
            [row.model_dump() for row in report.monthly],
            f"summary_{start_date}_{end_date}.csv",
            MONTHLY_HEADERS
        )
    if export == "csv_clients":
        return create_csv_response(
            [row.model_dump() for row in report.by_client],
            f"revenue_by_client_{start_date}_{end_date}.csv",
            CLIENT_HEADERS
        )
    return report

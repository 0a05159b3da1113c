from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, WRITER_ROLES, MANAGER_ROLES
from app.modules.client_portal.dependencies import get_current_client_user
from app.modules.client_portal.models import ClientUser
from app.modules.client_portal.schemas import (
    ClientInviteRequest, ClientInviteOut, ClientUserOut, AcceptInviteRequest, ClientLoginRequest,
    ClientTokenResponse, PortalMe, PortalDashboard, PortalTimeLogList, PortalProjectDetail
)
from app.modules.client_portal.service import ClientInviteService, ClientPortalService
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.router import pdf_response
from app.modules.invoices.schemas import InvoiceList, InvoiceDetail
from app.modules.projects.schemas import ProjectOut

# Staff endpoints managing portal access
router = APIRouter(prefix="/client-portal", tags=["Client Portal Access"])
# Endpoints used by client users
portal_router = APIRouter(prefix="/portal", tags=["Client Portal"])


@router.post("/invite", response_model=ClientInviteOut, status_code=status.HTTP_201_CREATED)
def invite_client_user(
    data: ClientInviteRequest,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    """
    Invite a client contact to the portal.

    Set **is_resend** to issue a new link to someone who already has access
    (for example after a forgotten password).
    """
    return ClientInviteService(db).invite_client_user(
        data.client_id, data.email, auth_context.tenant_id, auth_context.user_id, data.is_resend
    )


@router.get("/users", response_model=List[ClientUserOut])
def list_client_users(
    client_id: Optional[UUID] = Query(None),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return ClientInviteService(db).list_client_users(auth_context.tenant_id, client_id)


@router.post("/users/{client_user_id}/deactivate", response_model=ClientUserOut)
def deactivate_client_user(
    client_user_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    return ClientInviteService(db).deactivate_client_user(client_user_id, auth_context.tenant_id)


# ===== Portal =====

@portal_router.post("/accept-invite", response_model=ClientTokenResponse)
def accept_invite(data: AcceptInviteRequest, db: Session = Depends(get_db)):
    """
    Set the password from an invitation link and sign in.
    """
    return ClientPortalService(db).accept_invite(data.token, data.password)


@portal_router.post("/login", response_model=ClientTokenResponse)
def login(data: ClientLoginRequest, db: Session = Depends(get_db)):
    return ClientPortalService(db).login(data.email, data.password, data.company_id)


@portal_router.get("/me", response_model=PortalMe)
def get_me(
    db: Session = Depends(get_db),
    client_user: ClientUser = Depends(get_current_client_user)
):
    return ClientPortalService(db).me(client_user)


@portal_router.get("/dashboard", response_model=PortalDashboard)
def get_dashboard(
    db: Session = Depends(get_db),
    client_user: ClientUser = Depends(get_current_client_user)
):
    return ClientPortalService(db).dashboard(client_user)


@portal_router.get("/invoices", response_model=InvoiceList)
def list_invoices(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    status: Optional[InvoiceStatus] = Query(None),
    db: Session = Depends(get_db),
    client_user: ClientUser = Depends(get_current_client_user)
):
    return ClientPortalService(db).list_invoices(client_user, limit, offset, status)


@portal_router.get("/invoices/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    client_user: ClientUser = Depends(get_current_client_user)
):
    return ClientPortalService(db).get_invoice(client_user, invoice_id)


@portal_router.get("/invoices/{invoice_id}/pdf")
def download_invoice_pdf(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    client_user: ClientUser = Depends(get_current_client_user)
):
    content, filename = ClientPortalService(db).get_invoice_pdf(client_user, invoice_id)
    return pdf_response(content, filename)


@portal_router.get("/projects", response_model=List[ProjectOut])
def list_projects(
    db: Session = Depends(get_db),
    client_user: ClientUser = Depends(get_current_client_user)
):
    return ClientPortalService(db).list_projects(client_user)


@portal_router.get("/projects/{project_id}", response_model=PortalProjectDetail)
def get_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    client_user: ClientUser = Depends(get_current_client_user)
):
    return ClientPortalService(db).get_project(client_user, project_id)


@portal_router.get("/time-logs", response_model=PortalTimeLogList)
def list_time_logs(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    project_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    client_user: ClientUser = Depends(get_current_client_user)
):
    return ClientPortalService(db).list_time_logs(client_user, limit, offset, project_id, date_from, date_to)

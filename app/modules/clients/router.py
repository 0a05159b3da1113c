from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies, STAFF_ROLES, WRITER_ROLES, MANAGER_ROLES
from app.modules.clients.service import ClientService
from app.modules.clients.schemas import ClientCreate, ClientUpdate, ClientOut, ClientList, ClientSummary

router = APIRouter(
    prefix="/clients",
    tags=["Clients"],
    responses={404: {"description": "Not found"}}
)


@router.post("/", response_model=ClientOut, status_code=status.HTTP_201_CREATED)
def create_client(
    client_data: ClientCreate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    return ClientService(db).create_client(client_data, auth_context.tenant_id, auth_context.user_id)


@router.get("/", response_model=ClientList)
def list_clients(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    search: Optional[str] = Query(None, description="Search by name, email or company"),
    is_active: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return ClientService(db).get_clients(auth_context.tenant_id, limit, offset, search, is_active)


@router.get("/{client_id}", response_model=ClientOut)
def get_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    return ClientService(db).get_client_by_id(client_id, auth_context.tenant_id)


@router.get("/{client_id}/summary", response_model=ClientSummary)
def get_client_summary(
    client_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(STAFF_ROLES))
):
    """
    Billing summary: invoiced, paid, outstanding, projects and tracked hours.
    """
    return ClientService(db).get_client_summary(client_id, auth_context.tenant_id)


@router.patch("/{client_id}", response_model=ClientOut)
def update_client(
    client_id: UUID,
    client_update: ClientUpdate,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(WRITER_ROLES))
):
    return ClientService(db).update_client(client_id, client_update, auth_context.tenant_id)


@router.delete("/{client_id}")
def delete_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    auth_context = Depends(AuthDependencies.require_role(MANAGER_ROLES))
):
    """
    Soft delete a client. Rejected while the client has unpaid invoices.
    """
    return ClientService(db).delete_client(client_id, auth_context.tenant_id)

import logging
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import or_, func
from sqlalchemy.orm import Session

from app.modules.clients.models import Client
from app.modules.clients.schemas import ClientCreate, ClientUpdate, ClientList, ClientSummary

logger = logging.getLogger(__name__)


class ClientService:
    """Client records scoped by company."""

    def __init__(self, db: Session):
        self.db = db

    def create_client(self, client_data: ClientCreate, tenant_id: UUID, user_id: UUID) -> Client:
        try:
            client = Client(
                tenant_id=tenant_id,
                created_by=user_id,
                **client_data.model_dump(exclude={"address"}),
                address=client_data.address.model_dump() if client_data.address else None
            )
            self.db.add(client)
            self.db.commit()
            self.db.refresh(client)
            logger.info(f"Client created: {client.name} ({client.id}) for tenant {tenant_id}")
            return client
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creating client: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating client: {str(e)}"
            )

    def get_clients(
        self,
        tenant_id: UUID,
        limit: int = 100,
        offset: int = 0,
        search: Optional[str] = None,
        is_active: Optional[bool] = None
    ) -> ClientList:
        query = self.db.query(Client).filter(
            Client.tenant_id == tenant_id,
            Client.deleted_at.is_(None)
        )

        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                Client.name.ilike(term),
                Client.email.ilike(term),
                Client.company_name.ilike(term)
            ))

        if is_active is not None:
            query = query.filter(Client.is_active == is_active)

        total = query.count()
        clients = query.order_by(Client.name).offset(offset).limit(limit).all()
        return ClientList(items=clients, total=total, limit=limit, offset=offset)

    def get_client_by_id(self, client_id: UUID, tenant_id: UUID) -> Client:
        client = self.db.query(Client).filter(
            Client.id == client_id,
            Client.tenant_id == tenant_id,
            Client.deleted_at.is_(None)
        ).first()

        if not client:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client not found"
            )
        return client

    def update_client(self, client_id: UUID, client_update: ClientUpdate, tenant_id: UUID) -> Client:
        try:
            client = self.get_client_by_id(client_id, tenant_id)

            update_data = client_update.model_dump(exclude_unset=True)
            for field, value in update_data.items():
                if field == "address":
                    value = client_update.address.model_dump() if client_update.address else None
                setattr(client, field, value)

            self.db.commit()
            self.db.refresh(client)
            return client

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating client: {str(e)}"
            )

    def delete_client(self, client_id: UUID, tenant_id: UUID) -> Dict[str, str]:
        """Soft delete. Clients with money still owed cannot be removed."""
        from app.modules.invoices.models import Invoice, OPEN_STATUSES

        try:
            client = self.get_client_by_id(client_id, tenant_id)

            open_invoices = self.db.query(Invoice).filter(
                Invoice.tenant_id == tenant_id,
                Invoice.client_id == client_id,
                Invoice.status.in_(OPEN_STATUSES)
            ).count()
            if open_invoices:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Client has {open_invoices} unpaid invoice(s) and cannot be deleted"
                )

            client.soft_delete()
            for portal_user in client.portal_users:
                portal_user.is_active = False

            self.db.commit()
            logger.info(f"Client {client_id} soft deleted")
            return {"message": "Client deleted successfully"}

        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error deleting client: {str(e)}"
            )

    def get_client_summary(self, client_id: UUID, tenant_id: UUID) -> ClientSummary:
        from app.modules.invoices.models import Invoice, InvoiceStatus
        from app.modules.projects.models import Project, ProjectStatus
        from app.modules.time_tracking.models import TimeEntry

        self.get_client_by_id(client_id, tenant_id)

        invoiced, paid, outstanding, invoice_count = self.db.query(
            func.coalesce(func.sum(Invoice.total), 0),
            func.coalesce(func.sum(Invoice.amount_paid), 0),
            func.coalesce(func.sum(Invoice.amount_due), 0),
            func.count(Invoice.id)
        ).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.client_id == client_id,
            Invoice.status != InvoiceStatus.CANCELLED
        ).one()

        projects = self.db.query(Project).filter(
            Project.tenant_id == tenant_id,
            Project.client_id == client_id,
            Project.deleted_at.is_(None)
        ).all()

        seconds = self.db.query(func.coalesce(func.sum(TimeEntry.duration), 0)).join(
            Project, Project.id == TimeEntry.project_id
        ).filter(
            TimeEntry.tenant_id == tenant_id,
            Project.client_id == client_id
        ).scalar()

        return ClientSummary(
            client_id=client_id,
            total_invoiced=Decimal(str(invoiced)),
            total_paid=Decimal(str(paid)),
            outstanding=Decimal(str(outstanding)),
            invoice_count=invoice_count,
            project_count=len(projects),
            active_project_count=sum(1 for p in projects if p.status == ProjectStatus.ACTIVE),
            hours_tracked=(Decimal(int(seconds or 0)) / Decimal(3600)).quantize(Decimal("0.01"))
        )

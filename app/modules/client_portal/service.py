import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.modules.auth.utils import hash_password, verify_password, generate_secure_token, create_client_token
from app.modules.client_portal.models import ClientUser
from app.modules.client_portal.schemas import (
    ClientInviteOut, ClientTokenResponse, ClientUserOut, PortalMe, PortalDashboard,
    PortalTimeLogList, PortalProjectDetail, PortalTimeLog
)
from app.modules.clients.service import ClientService
from app.modules.company.models import Company
from app.modules.invoices.models import Invoice, InvoiceStatus, OPEN_STATUSES
from app.modules.invoices.schemas import InvoiceList
from app.modules.projects.models import Project, ProjectStatus
from app.modules.projects.schemas import ProjectOut
from app.modules.projects.service import seconds_to_hours
from app.modules.time_tracking.models import TimeEntry
from app.modules.time_tracking.service import start_of_day

logger = logging.getLogger(__name__)


def invite_link(token: str) -> str:
    return f"{settings.FRONTEND_URL}/client/setup-password?token={token}"


class ClientInviteService:
    """Staff side: invitations and access management."""

    def __init__(self, db: Session):
        self.db = db

    def invite_client_user(
        self,
        client_id: UUID,
        email: str,
        tenant_id: UUID,
        user_id: Optional[UUID] = None,
        is_resend: bool = False
    ) -> ClientInviteOut:
        """
        Create a portal invitation, or re-issue it.

        A user who already set a password only gets a fresh link when
        `is_resend` is set; the link then lets them choose a new password.
        """
        client = ClientService(self.db).get_client_by_id(client_id, tenant_id)
        email = email.lower()

        try:
            client_user = self.db.query(ClientUser).filter(
                ClientUser.tenant_id == tenant_id,
                func.lower(ClientUser.email) == email
            ).first()

            if client_user:
                if client_user.client_id != client.id:
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail="This email already has portal access for another client"
                    )
                if client_user.has_accepted and client_user.is_active and not is_resend:
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail="This client user already has portal access"
                    )
            else:
                client_user = ClientUser(
                    tenant_id=tenant_id,
                    client_id=client.id,
                    email=email,
                    invited_by=user_id
                )
                self.db.add(client_user)

            now = datetime.now(timezone.utc)
            client_user.invite_token = generate_secure_token()
            client_user.invite_expires_at = now + timedelta(days=settings.CLIENT_INVITE_EXPIRE_DAYS)
            client_user.invited_at = now
            client_user.is_active = True

            self.db.commit()
            self.db.refresh(client_user)

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error inviting {email} to the client portal: {str(e)}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error creating the invitation"
            )

        link = invite_link(client_user.invite_token)
        task_id = self._queue_invite(client_user, link)
        logger.info(f"Client portal invite {'re-sent' if is_resend else 'sent'} to {email} for client {client.id}")

        return ClientInviteOut(
            client_user=client_user,
            invite_link=link,
            invite_expires_at=client_user.invite_expires_at,
            task_id=task_id
        )

    def _queue_invite(self, client_user: ClientUser, link: str) -> Optional[str]:
        from app.modules.email.models import TemplateType
        from app.modules.email.service import EmailTemplateService
        from app.modules.email.tasks import send_client_invite_task

        company = self.db.get(Company, client_user.tenant_id)
        context = {
            "company_name": company.name if company else "",
            "client_name": client_user.client_name,
            "invite_link": link,
            "expires_at": client_user.invite_expires_at.date().isoformat(),
        }
        subject, body = EmailTemplateService(self.db).render_for(
            client_user.tenant_id, TemplateType.CLIENT_INVITE, context
        )
        try:
            task = send_client_invite_task.delay(
                tenant_id=str(client_user.tenant_id),
                recipient=client_user.email,
                context=context,
                subject=subject,
                custom_body=body
            )
            return str(task.id)
        except Exception as e:
            # The invite stays valid; the link can be shared by hand or re-sent
            logger.error(f"Could not queue invite email for {client_user.email}: {str(e)}", exc_info=True)
            return None

    def list_client_users(self, tenant_id: UUID, client_id: Optional[UUID] = None) -> List[ClientUser]:
        query = self.db.query(ClientUser).options(selectinload(ClientUser.client)).filter(
            ClientUser.tenant_id == tenant_id
        )
        if client_id:
            query = query.filter(ClientUser.client_id == client_id)
        return query.order_by(ClientUser.created_at.desc()).all()

    def get_client_user(self, client_user_id: UUID, tenant_id: UUID) -> ClientUser:
        client_user = self.db.query(ClientUser).filter(
            ClientUser.id == client_user_id,
            ClientUser.tenant_id == tenant_id
        ).first()
        if not client_user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client user not found"
            )
        return client_user

    def deactivate_client_user(self, client_user_id: UUID, tenant_id: UUID) -> ClientUser:
        client_user = self.get_client_user(client_user_id, tenant_id)
        client_user.is_active = False
        client_user.invite_token = None
        self.db.commit()
        self.db.refresh(client_user)
        logger.info(f"Client user {client_user.email} deactivated")
        return client_user


class ClientPortalService:
    """
    Client side. Every query is scoped to the signed-in client user's
    client and company; anything else reads as not found.
    """

    def __init__(self, db: Session):
        self.db = db

    # ===== Access =====

    def _token_response(self, client_user: ClientUser) -> ClientTokenResponse:
        token = create_client_token({
            "sub": str(client_user.id),
            "client_id": str(client_user.client_id),
            "tenant_id": str(client_user.tenant_id),
        })
        return ClientTokenResponse(
            access_token=token,
            expires_in=settings.CLIENT_TOKEN_EXPIRE_MINUTES * 60,
            client_user=ClientUserOut.model_validate(client_user)
        )

    def accept_invite(self, token: str, password: str) -> ClientTokenResponse:
        client_user = self.db.query(ClientUser).filter(ClientUser.invite_token == token).first()
        if not client_user or not client_user.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid invitation link"
            )
        if client_user.invite_expired():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invitation link has expired"
            )

        now = datetime.now(timezone.utc)
        client_user.password = hash_password(password)
        client_user.accepted_at = client_user.accepted_at or now
        client_user.last_login = now
        client_user.invite_token = None
        client_user.invite_expires_at = None
        self.db.commit()
        self.db.refresh(client_user)

        logger.info(f"Client user {client_user.email} accepted the portal invitation")
        return self._token_response(client_user)

    def login(self, email: str, password: str, company_id: Optional[UUID] = None) -> ClientTokenResponse:
        query = self.db.query(ClientUser).filter(
            func.lower(ClientUser.email) == email.lower(),
            ClientUser.is_active == True,
            ClientUser.accepted_at.isnot(None)
        )
        if company_id:
            query = query.filter(ClientUser.tenant_id == company_id)

        matches = [cu for cu in query.all() if verify_password(password, cu.password)]
        if not matches:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Incorrect email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if len(matches) > 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="This email has portal access at several companies; company_id is required"
            )

        client_user = matches[0]
        client_user.last_login = datetime.now(timezone.utc)
        self.db.commit()
        self.db.refresh(client_user)
        return self._token_response(client_user)

    def me(self, client_user: ClientUser) -> PortalMe:
        company = self.db.get(Company, client_user.tenant_id)
        return PortalMe(
            client_user=ClientUserOut.model_validate(client_user),
            client_name=client_user.client_name or "",
            company_id=client_user.tenant_id,
            company_name=company.name if company else ""
        )

    # ===== Scoped queries =====

    def _invoices(self, client_user: ClientUser):
        return self.db.query(Invoice).filter(
            Invoice.tenant_id == client_user.tenant_id,
            Invoice.client_id == client_user.client_id,
            Invoice.status != InvoiceStatus.DRAFT
        )

    def _projects(self, client_user: ClientUser):
        return self.db.query(Project).filter(
            Project.tenant_id == client_user.tenant_id,
            Project.client_id == client_user.client_id,
            Project.deleted_at.is_(None)
        )

    def _time_logs(self, client_user: ClientUser):
        return self.db.query(TimeEntry).join(Project, Project.id == TimeEntry.project_id).filter(
            TimeEntry.tenant_id == client_user.tenant_id,
            Project.client_id == client_user.client_id,
            Project.deleted_at.is_(None),
            TimeEntry.is_running == False
        )

    def dashboard(self, client_user: ClientUser, today: Optional[date] = None) -> PortalDashboard:
        today = today or date.today()
        invoices = self._invoices(client_user).filter(Invoice.status != InvoiceStatus.CANCELLED).all()

        outstanding = sum((inv.amount_due for inv in invoices if inv.status in OPEN_STATUSES), Decimal("0"))
        paid = sum((inv.amount_paid for inv in invoices), Decimal("0"))
        billed = sum((inv.total for inv in invoices), Decimal("0"))

        active_projects = self._projects(client_user).filter(Project.status == ProjectStatus.ACTIVE).count()

        month_start = start_of_day(today.replace(day=1))
        seconds = self._time_logs(client_user).filter(
            TimeEntry.start_time >= month_start
        ).with_entities(func.coalesce(func.sum(TimeEntry.duration), 0)).scalar()

        return PortalDashboard(
            currency=client_user.client.currency if client_user.client else "USD",
            outstanding_amount=outstanding,
            paid_amount=paid,
            total_billed=billed,
            invoice_count=len(invoices),
            open_invoice_count=sum(1 for inv in invoices if inv.status in OPEN_STATUSES),
            overdue_invoice_count=sum(1 for inv in invoices if inv.status == InvoiceStatus.OVERDUE),
            active_projects=active_projects,
            hours_this_month=seconds_to_hours(seconds)
        )

    def list_invoices(
        self,
        client_user: ClientUser,
        limit: int = 100,
        offset: int = 0,
        status_filter: Optional[InvoiceStatus] = None
    ) -> InvoiceList:
        query = self._invoices(client_user).options(selectinload(Invoice.client))
        if status_filter:
            query = query.filter(Invoice.status == status_filter)

        total = query.count()
        invoices = query.order_by(Invoice.issue_date.desc(), Invoice.invoice_number.desc()).offset(
            offset
        ).limit(limit).all()
        return InvoiceList(invoices=invoices, total=total, limit=limit, offset=offset)

    def get_invoice(self, client_user: ClientUser, invoice_id: UUID) -> Invoice:
        invoice = self._invoices(client_user).options(
            selectinload(Invoice.client),
            selectinload(Invoice.items),
            selectinload(Invoice.payments)
        ).filter(Invoice.id == invoice_id).first()
        if not invoice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invoice not found"
            )
        return invoice

    def get_invoice_pdf(self, client_user: ClientUser, invoice_id: UUID) -> Tuple[bytes, str]:
        from app.modules.pdf.service import PdfService

        invoice = self.get_invoice(client_user, invoice_id)
        return PdfService(self.db).render_invoice(invoice), f"{invoice.invoice_number}.pdf"

    def list_projects(self, client_user: ClientUser) -> List[Project]:
        return self._projects(client_user).options(selectinload(Project.client)).order_by(
            Project.created_at.desc()
        ).all()

    def get_project(self, client_user: ClientUser, project_id: UUID) -> PortalProjectDetail:
        project = self._projects(client_user).options(selectinload(Project.client)).filter(
            Project.id == project_id
        ).first()
        if not project:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Project not found"
            )

        entries = self._time_logs(client_user).filter(
            TimeEntry.project_id == project.id
        ).order_by(TimeEntry.start_time.desc()).all()

        return PortalProjectDetail(
            **ProjectOut.model_validate(project).model_dump(),
            total_hours=seconds_to_hours(sum(e.duration or 0 for e in entries)),
            time_logs=[PortalTimeLog.model_validate(e) for e in entries]
        )

    def list_time_logs(
        self,
        client_user: ClientUser,
        limit: int = 100,
        offset: int = 0,
        project_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> PortalTimeLogList:
        query = self._time_logs(client_user)
        if project_id:
            query = query.filter(TimeEntry.project_id == project_id)
        if date_from:
            query = query.filter(TimeEntry.start_time >= start_of_day(date_from))
        if date_to:
            query = query.filter(TimeEntry.start_time < start_of_day(date_to + timedelta(days=1)))

        total = query.count()
        total_seconds = query.with_entities(func.coalesce(func.sum(TimeEntry.duration), 0)).scalar()
        entries = query.options(selectinload(TimeEntry.project)).order_by(
            TimeEntry.start_time.desc()
        ).offset(offset).limit(limit).all()

        return PortalTimeLogList(
            items=entries,
            total=total,
            total_seconds=int(total_seconds or 0),
            limit=limit,
            offset=offset
        )

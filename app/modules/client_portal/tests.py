"""
Tests for the client portal: invitations, client sign-in and the
client-scoped views.
"""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from fastapi import HTTPException

from app.modules.client_portal.models import ClientUser
from app.modules.client_portal.service import ClientInviteService, ClientPortalService
from app.modules.clients.schemas import ClientCreate
from app.modules.clients.service import ClientService
from app.modules.invoices.models import InvoiceStatus
from app.modules.invoices.service import InvoiceService
from app.modules.projects.schemas import ProjectCreate
from app.modules.projects.service import ProjectService
from app.modules.time_tracking.schemas import TimeEntryCreate
from app.modules.time_tracking.service import TimeTrackingService

PORTAL_PASSWORD = "client-pass-123"


@pytest.fixture
def portal_user(db_session, sample_company, sample_user, sample_client, queued_email):
    invite = ClientInviteService(db_session).invite_client_user(
        sample_client.id, "AP@acme.example.com", sample_company.id, sample_user.id
    )
    token = invite.invite_link.split("token=")[1]
    ClientPortalService(db_session).accept_invite(token, PORTAL_PASSWORD)
    return db_session.query(ClientUser).filter_by(id=invite.client_user.id).one()


@pytest.fixture
def portal_headers(portal_user, db_session):
    response = ClientPortalService(db_session).login(portal_user.email, PORTAL_PASSWORD)
    return {"Authorization": f"Bearer {response.access_token}"}


@pytest.fixture
def second_client(db_session, sample_company, sample_user):
    return ClientService(db_session).create_client(
        ClientCreate(name="Globex", email="ap@globex.example.com"), sample_company.id, sample_user.id
    )


def sent_invoice(db_session, make_invoice, amount, **kwargs):
    invoice = make_invoice(amount, **kwargs)
    invoice.status = InvoiceStatus.SENT
    db_session.commit()
    return invoice


class TestInvites:

    def test_invite_queues_email(self, db_session, sample_company, sample_user, sample_client, queued_email):
        invite = ClientInviteService(db_session).invite_client_user(
            sample_client.id, "Jane@Acme.example.com", sample_company.id, sample_user.id
        )
        assert invite.client_user.email == "jane@acme.example.com"
        assert "/client/setup-password?token=" in invite.invite_link
        assert invite.task_id == "task-123"

        context = queued_email["send_client_invite_task"].call_args.kwargs["context"]
        assert context["invite_link"] == invite.invite_link
        assert context["company_name"] == sample_company.name

    def test_accepted_user_needs_resend(self, db_session, sample_company, sample_client, portal_user, queued_email):
        service = ClientInviteService(db_session)
        with pytest.raises(HTTPException) as exc_info:
            service.invite_client_user(sample_client.id, portal_user.email, sample_company.id)
        assert exc_info.value.status_code == 409

        resent = service.invite_client_user(sample_client.id, portal_user.email, sample_company.id, is_resend=True)
        assert resent.client_user.id == portal_user.id

    def test_email_taken_by_other_client(self, db_session, sample_company, second_client, portal_user, queued_email):
        with pytest.raises(HTTPException) as exc_info:
            ClientInviteService(db_session).invite_client_user(second_client.id, portal_user.email, sample_company.id)
        assert exc_info.value.status_code == 409

    def test_invalid_and_expired_links(self, db_session, sample_company, sample_client, queued_email):
        service = ClientPortalService(db_session)
        with pytest.raises(HTTPException) as exc_info:
            service.accept_invite("not-a-real-token", PORTAL_PASSWORD)
        assert exc_info.value.detail == "Invalid invitation link"

        invite = ClientInviteService(db_session).invite_client_user(
            sample_client.id, "late@acme.example.com", sample_company.id
        )
        client_user = db_session.query(ClientUser).filter_by(id=invite.client_user.id).one()
        client_user.invite_expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        db_session.commit()

        with pytest.raises(HTTPException) as exc_info:
            service.accept_invite(client_user.invite_token, PORTAL_PASSWORD)
        assert exc_info.value.detail == "Invitation link has expired"

    def test_deactivate(self, db_session, sample_company, portal_user):
        ClientInviteService(db_session).deactivate_client_user(portal_user.id, sample_company.id)
        with pytest.raises(HTTPException) as exc_info:
            ClientPortalService(db_session).login(portal_user.email, PORTAL_PASSWORD)
        assert exc_info.value.status_code == 401


class TestLogin:

    def test_wrong_password(self, db_session, portal_user):
        with pytest.raises(HTTPException) as exc_info:
            ClientPortalService(db_session).login(portal_user.email, "wrong-password")
        assert exc_info.value.status_code == 401

    def test_email_at_two_companies(self, db_session, portal_user, other_company, queued_email):
        invite = ClientInviteService(db_session).invite_client_user(
            other_company.client.id, portal_user.email, other_company.company.id
        )
        ClientPortalService(db_session).accept_invite(invite.invite_link.split("token=")[1], PORTAL_PASSWORD)

        service = ClientPortalService(db_session)
        with pytest.raises(HTTPException) as exc_info:
            service.login(portal_user.email, PORTAL_PASSWORD)
        assert exc_info.value.status_code == 400

        response = service.login(portal_user.email, PORTAL_PASSWORD, company_id=other_company.company.id)
        assert response.client_user.client_id == other_company.client.id


class TestPortalViews:

    def test_dashboard(self, db_session, portal_user, make_invoice):
        make_invoice("999.00")
        sent_invoice(db_session, make_invoice, "300.00")
        partly_paid = sent_invoice(db_session, make_invoice, "200.00")
        partly_paid.amount_paid = Decimal("50.00")
        partly_paid.amount_due = Decimal("150.00")
        partly_paid.status = InvoiceStatus.PARTIAL
        db_session.commit()

        dashboard = ClientPortalService(db_session).dashboard(portal_user)
        assert dashboard.invoice_count == 2
        assert dashboard.outstanding_amount == Decimal("450.00")
        assert dashboard.paid_amount == Decimal("50.00")
        assert dashboard.total_billed == Decimal("500.00")

    def test_only_own_records(
        self, db_session, sample_company, sample_user, portal_user, second_client, make_invoice, sample_project
    ):
        service = ClientPortalService(db_session)
        own = sent_invoice(db_session, make_invoice, "100.00")
        foreign = sent_invoice(db_session, make_invoice, "100.00", client_id=second_client.id)
        foreign_project = ProjectService(db_session).create_project(
            ProjectCreate(client_id=second_client.id, name="Globex Site", hourly_rate=Decimal("90")),
            sample_company.id,
            sample_user.id
        )

        assert [inv.id for inv in service.list_invoices(portal_user).invoices] == [own.id]
        with pytest.raises(HTTPException) as exc_info:
            service.get_invoice(portal_user, foreign.id)
        assert exc_info.value.status_code == 404

        assert [p.id for p in service.list_projects(portal_user)] == [sample_project.id]
        with pytest.raises(HTTPException):
            service.get_project(portal_user, foreign_project.id)

    def test_time_logs(self, db_session, sample_company, sample_user, portal_user, sample_project):
        start = datetime(2026, 4, 6, 9, 0, tzinfo=timezone.utc)
        TimeTrackingService(db_session).create_manual_entry(
            TimeEntryCreate(project_id=sample_project.id, start_time=start, end_time=start + timedelta(hours=2)),
            sample_company.id,
            sample_user.id
        )
        logs = ClientPortalService(db_session).list_time_logs(portal_user)
        assert logs.total == 1
        assert logs.total_seconds == 7200

        detail = ClientPortalService(db_session).get_project(portal_user, sample_project.id)
        assert detail.total_hours == Decimal("2.00")


class TestPortalEndpoints:

    def test_invite_and_accept(self, client, auth_headers, sample_client, queued_email):
        response = client.post("/client-portal/invite", json={
            "client_id": str(sample_client.id),
            "email": "owner@acme.example.com"
        }, headers=auth_headers)
        assert response.status_code == 201
        token = response.json()["invite_link"].split("token=")[1]

        accepted = client.post("/portal/accept-invite", json={"token": token, "password": PORTAL_PASSWORD})
        assert accepted.status_code == 200
        headers = {"Authorization": f"Bearer {accepted.json()['access_token']}"}

        me = client.get("/portal/me", headers=headers).json()
        assert me["client_name"] == sample_client.name

    def test_drafts_hidden(self, client, db_session, portal_headers, make_invoice):
        draft = make_invoice("100.00")
        assert client.get("/portal/invoices", headers=portal_headers).json()["total"] == 0
        assert client.get(f"/portal/invoices/{draft.id}", headers=portal_headers).status_code == 404

    def test_invoice_pdf(self, client, db_session, portal_headers, make_invoice):
        invoice = sent_invoice(db_session, make_invoice, "100.00")
        response = client.get(f"/portal/invoices/{invoice.id}/pdf", headers=portal_headers)
        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")

    def test_tokens_do_not_cross(self, client, auth_headers, portal_headers):
        assert client.get("/portal/me", headers=auth_headers).status_code == 401
        assert client.get("/clients/", headers=portal_headers).status_code == 401

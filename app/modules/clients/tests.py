"""
Tests for the clients module.

Every query is scoped to the company in the auth context; a client of
another company behaves as if it did not exist.
"""
import pytest
from fastapi import HTTPException
from uuid import uuid4

from app.modules.clients.schemas import ClientCreate, ClientUpdate
from app.modules.clients.service import ClientService
from app.modules.invoices.models import InvoiceStatus


class TestClientService:

    def test_create_and_search(self, db_session, sample_company, sample_user):
        service = ClientService(db_session)
        service.create_client(ClientCreate(name="Globex", email="hi@globex.com"), sample_company.id, sample_user.id)
        service.create_client(ClientCreate(name="Initech", company_name="Initech LLC"), sample_company.id, sample_user.id)

        result = service.get_clients(sample_company.id, search="initech")
        assert result.total == 1
        assert result.items[0].name == "Initech"

    def test_currency_normalized(self):
        assert ClientCreate(name="Euro Client", currency="eur").currency == "EUR"

    def test_invalid_currency(self):
        with pytest.raises(ValueError):
            ClientCreate(name="Bad Currency", currency="E1R")

    def test_not_found(self, db_session, sample_company):
        with pytest.raises(HTTPException) as exc_info:
            ClientService(db_session).get_client_by_id(uuid4(), sample_company.id)
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Client not found"

    def test_other_tenant_client_hidden(self, db_session, sample_company, other_company):
        with pytest.raises(HTTPException) as exc_info:
            ClientService(db_session).get_client_by_id(other_company.client.id, sample_company.id)
        assert exc_info.value.status_code == 404

    def test_update(self, db_session, sample_company, sample_client):
        updated = ClientService(db_session).update_client(
            sample_client.id, ClientUpdate(notes="Pays on the 15th", is_active=False), sample_company.id
        )
        assert updated.notes == "Pays on the 15th"
        assert updated.is_active is False

        inactive = ClientService(db_session).get_clients(sample_company.id, is_active=False)
        assert inactive.total == 1

    def test_soft_delete(self, db_session, sample_company, sample_client):
        service = ClientService(db_session)
        service.delete_client(sample_client.id, sample_company.id)

        assert service.get_clients(sample_company.id).total == 0
        db_session.refresh(sample_client)
        assert sample_client.deleted_at is not None

    def test_delete_blocked_by_open_invoice(self, db_session, sample_company, sample_client, make_invoice):
        invoice = make_invoice("250.00")
        invoice.status = InvoiceStatus.SENT
        db_session.commit()

        with pytest.raises(HTTPException) as exc_info:
            ClientService(db_session).delete_client(sample_client.id, sample_company.id)
        assert exc_info.value.status_code == 400

    def test_delete_allowed_with_draft(self, db_session, sample_company, sample_client, make_invoice):
        make_invoice("250.00")
        result = ClientService(db_session).delete_client(sample_client.id, sample_company.id)
        assert result["message"] == "Client deleted successfully"

    def test_summary(self, db_session, sample_company, sample_client, make_invoice):
        make_invoice("100.00", "50.00")
        summary = ClientService(db_session).get_client_summary(sample_client.id, sample_company.id)
        assert summary.invoice_count == 1
        assert summary.total_invoiced == 150
        assert summary.outstanding == 150


class TestClientEndpoints:

    def test_crud(self, client, auth_headers):
        response = client.post("/clients/", json={"name": "Umbrella", "email": "ops@umbrella.com"}, headers=auth_headers)
        assert response.status_code == 201
        client_id = response.json()["id"]

        assert client.get(f"/clients/{client_id}", headers=auth_headers).status_code == 200

        response = client.patch(f"/clients/{client_id}", json={"phone": "+1 555 010 0100"}, headers=auth_headers)
        assert response.status_code == 200

        assert client.delete(f"/clients/{client_id}", headers=auth_headers).status_code == 200
        assert client.get(f"/clients/{client_id}", headers=auth_headers).status_code == 404

    def test_cross_tenant_access(self, client, auth_headers, other_company):
        response = client.get(f"/clients/{other_company.client.id}", headers=auth_headers)
        assert response.status_code == 404

    def test_invalid_email(self, client, auth_headers):
        response = client.post("/clients/", json={"name": "No Mail", "email": "not-an-email"}, headers=auth_headers)
        assert response.status_code == 422

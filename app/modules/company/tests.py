"""
Tests for company onboarding and membership management.
"""
from app.modules.auth.utils import create_access_token
from app.modules.company.schemas import CompanyCreate
from app.modules.company.service import create_company, get_companies_for_user
from app.modules.invoices.models import DocumentType
from app.modules.invoices.numbering import DocumentNumberGenerator
from app.modules.pdf.models import PdfSettings
from app.modules.settings.models import CompanySettings


class TestCompanyService:

    def test_create_company_sets_up_defaults(self, db_session, sample_user):
        company = create_company(
            db_session,
            CompanyCreate(name="Pixel Works", currency="EUR", invoice_prefix="PW-", quote_prefix="PQ-"),
            sample_user
        )

        settings_row = db_session.query(CompanySettings).filter_by(tenant_id=company.id).one()
        assert settings_row.currency == "EUR"
        assert db_session.query(PdfSettings).filter_by(tenant_id=company.id).count() == 1

        numbering = DocumentNumberGenerator(db_session)
        assert numbering.peek_next_number(company.id, DocumentType.INVOICE) == "PW-0001"
        assert numbering.peek_next_number(company.id, DocumentType.QUOTATION) == "PQ-0001"

        companies = get_companies_for_user(db_session, sample_user.id)
        assert [(c.id, c.role) for c in companies] == [(company.id, "owner")]

    def test_inactive_company_hidden(self, db_session, sample_user, sample_company):
        sample_company.is_active = False
        db_session.commit()
        assert get_companies_for_user(db_session, sample_user.id) == []


class TestCompanyEndpoints:

    def test_create_company(self, client, sample_user):
        token = create_access_token({"sub": str(sample_user.id)})
        response = client.post(
            "/company/",
            json={"name": "New Venture", "currency": "GBP"},
            headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 201
        assert response.json()["currency"] == "GBP"

    def test_my_companies(self, client, auth_headers, sample_company):
        response = client.get("/company/my_companies", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()[0]["role"] == "owner"

    def test_update_requires_manager(self, client, make_member, sample_company):
        _, headers = make_member(sample_company, "member@example.com", "member")
        response = client.patch("/company/me", json={"name": "Renamed"}, headers=headers)
        assert response.status_code == 403

    def test_update_company(self, client, auth_headers):
        response = client.patch("/company/me", json={"name": "Renamed Studio"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed Studio"

    def test_add_member(self, client, auth_headers, make_user):
        make_user("colleague@example.com", "Cole League")
        response = client.post(
            "/company/members",
            json={"email": "colleague@example.com", "role": "accountant"},
            headers=auth_headers
        )
        assert response.status_code == 201
        assert response.json()["role"] == "accountant"

        members = client.get("/company/members", headers=auth_headers).json()
        assert {m["email"] for m in members} == {"owner@example.com", "colleague@example.com"}

    def test_add_member_twice(self, client, auth_headers, make_user):
        make_user("colleague@example.com")
        payload = {"email": "colleague@example.com", "role": "member"}
        client.post("/company/members", json=payload, headers=auth_headers)
        response = client.post("/company/members", json=payload, headers=auth_headers)
        assert response.status_code == 409

    def test_add_unknown_member(self, client, auth_headers):
        response = client.post(
            "/company/members",
            json={"email": "nobody@example.com", "role": "member"},
            headers=auth_headers
        )
        assert response.status_code == 404

"""
Tests for registration, login and company selection.
"""
import jwt
import pytest
from fastapi import HTTPException

from app.core.config import settings
from app.modules.auth.utils import (
    hash_password, verify_password, create_access_token, create_client_token, verify_token
)


class TestPasswordAndTokens:

    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_verify_empty_hash(self):
        assert not verify_password("anything", "")

    def test_access_token_type(self):
        token = create_access_token({"sub": "abc"})
        payload = jwt.decode(token, settings.APP_SECRET_STRING, algorithms=[settings.ALGORITHM])
        assert payload["type"] == "access"
        assert payload["sub"] == "abc"

    def test_verify_token_rejects_wrong_type(self):
        token = create_client_token({"sub": "abc"})
        with pytest.raises(HTTPException) as exc_info:
            verify_token(token, expected_type="access")
        assert exc_info.value.status_code == 401


class TestAuthEndpoints:

    def test_register(self, client):
        response = client.post("/auth/register", json={
            "email": "New.User@Example.com",
            "password": "longenough",
            "profile": {"full_name": "New User"}
        })
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "new.user@example.com"
        assert data["profile"]["full_name"] == "New User"

    def test_register_duplicate_email(self, client, sample_user):
        response = client.post("/auth/register", json={
            "email": sample_user.email,
            "password": "longenough",
            "profile": {"full_name": "Someone Else"}
        })
        assert response.status_code == 400

    def test_register_short_password(self, client):
        response = client.post("/auth/register", json={
            "email": "short@example.com",
            "password": "short",
            "profile": {"full_name": "Short Pass"}
        })
        assert response.status_code == 422

    def test_login_returns_companies(self, client, sample_user, sample_company, user_password):
        response = client.post("/auth/login", data={"username": sample_user.email, "password": user_password})
        assert response.status_code == 200
        data = response.json()
        assert data["access_token"]
        assert data["refresh_token"]
        assert [c["company_id"] for c in data["companies"]] == [str(sample_company.id)]

    def test_login_bad_password(self, client, sample_user):
        response = client.post("/auth/login", data={"username": sample_user.email, "password": "nope-nope"})
        assert response.status_code == 401

    def test_select_company_issues_context_token(self, client, sample_user, sample_company, user_password):
        login = client.post("/auth/login", data={"username": sample_user.email, "password": user_password}).json()
        response = client.post(
            "/auth/select-company",
            json={"company_id": str(sample_company.id)},
            headers={"Authorization": f"Bearer {login['access_token']}"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["user_role"] == "owner"

        payload = jwt.decode(data["access_token"], settings.APP_SECRET_STRING, algorithms=[settings.ALGORITHM])
        assert payload["type"] == "context"
        assert payload["tenant_id"] == str(sample_company.id)

    def test_select_foreign_company_forbidden(self, client, make_user, sample_company):
        outsider = make_user("outsider@example.com")
        token = create_access_token({"sub": str(outsider.id)})
        response = client.post(
            "/auth/select-company",
            json={"company_id": str(sample_company.id)},
            headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 403

    def test_company_header_checked_against_memberships(self, client, make_user, sample_company):
        outsider = make_user("outsider@example.com")
        token = create_access_token({"sub": str(outsider.id)})
        response = client.get(
            "/clients/",
            headers={"Authorization": f"Bearer {token}", "X-Company-ID": str(sample_company.id)}
        )
        assert response.status_code == 403

    def test_company_header_selects_tenant(self, client, sample_user, sample_company):
        token = create_access_token({"sub": str(sample_user.id)})
        response = client.get(
            "/clients/",
            headers={"Authorization": f"Bearer {token}", "X-Company-ID": str(sample_company.id)}
        )
        assert response.status_code == 200

    def test_tenant_required(self, client, sample_user):
        token = create_access_token({"sub": str(sample_user.id)})
        response = client.get("/clients/", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 400

    def test_viewer_cannot_write(self, client, make_member, sample_company):
        _, headers = make_member(sample_company, "viewer@example.com", "viewer")
        assert client.get("/clients/", headers=headers).status_code == 200
        response = client.post("/clients/", json={"name": "Blocked"}, headers=headers)
        assert response.status_code == 403

    def test_me(self, client, auth_headers, sample_user):
        response = client.get("/auth/me", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["email"] == sample_user.email

    def test_missing_token(self, client):
        response = client.get("/auth/me")
        assert response.status_code in (401, 403)

"""
Shared fixtures for module tests.

Tests run against an in-memory SQLite database. The environment is set
before the app is imported so the engine and password hashing pick it up.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "false")

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import app.database.models  # noqa: F401
from app.database.database import Base, SessionLocal, sync_engine, get_db
from app.main import app as fastapi_app
from app.modules.auth.models import User, Profile, UserCompany
from app.modules.auth.utils import hash_password, create_context_token
from app.modules.clients.schemas import ClientCreate
from app.modules.clients.service import ClientService
from app.modules.company.schemas import CompanyCreate
from app.modules.company.service import create_company
from app.modules.invoices.schemas import InvoiceCreate, InvoiceItemCreate
from app.modules.invoices.service import InvoiceService
from app.modules.projects.models import ProjectType
from app.modules.projects.schemas import ProjectCreate
from app.modules.projects.service import ProjectService

TEST_PASSWORD = "s3cret-pass"


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=sync_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    with TestClient(fastapi_app) as test_client:
        yield test_client
    fastapi_app.dependency_overrides.clear()


def _create_user(db_session, email: str, full_name: str = "Test User") -> User:
    profile = Profile(full_name=full_name)
    db_session.add(profile)
    db_session.flush()
    user = User(email=email, password=hash_password(TEST_PASSWORD), profile_id=profile.id, is_active=True)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def _context_headers(user: User, company_id, role: str = "owner") -> dict:
    token = create_context_token({
        "sub": str(user.id),
        "tenant_id": str(company_id),
        "user_role": role,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_password():
    return TEST_PASSWORD


@pytest.fixture
def make_user(db_session):
    """Factory for extra staff users: make_user(email, full_name=...)."""
    def _make_user(email: str, full_name: str = "Test User") -> User:
        return _create_user(db_session, email, full_name)
    return _make_user


@pytest.fixture
def make_member(db_session, make_user):
    """Factory adding a user to a company with a role. Returns (user, headers)."""
    def _make_member(company, email: str, role: str):
        user = make_user(email)
        db_session.add(UserCompany(user_id=user.id, company_id=company.id, role=role, is_active=True))
        db_session.commit()
        return user, _context_headers(user, company.id, role)
    return _make_member


@pytest.fixture
def sample_user(db_session):
    return _create_user(db_session, "owner@example.com", "Olivia Owner")


@pytest.fixture
def sample_company(db_session, sample_user):
    return create_company(db_session, CompanyCreate(name="Studio Owner", email="billing@studio.example.com"), sample_user)


@pytest.fixture
def auth_headers(sample_user, sample_company):
    return _context_headers(sample_user, sample_company.id)


@pytest.fixture
def other_company(db_session, make_user):
    """A second tenant with its own owner, client and headers."""
    owner = make_user("other-owner@example.com", "Otto Other")
    company = create_company(db_session, CompanyCreate(name="Other Studio"), owner)
    other_client = ClientService(db_session).create_client(
        ClientCreate(name="Foreign Client", email="foreign@client.example.com"), company.id, owner.id
    )
    return SimpleNamespace(
        company=company, owner=owner, client=other_client, headers=_context_headers(owner, company.id)
    )


@pytest.fixture
def sample_client(db_session, sample_company, sample_user):
    return ClientService(db_session).create_client(
        ClientCreate(name="Acme Corp", email="ap@acme.example.com", company_name="Acme Corporation"),
        sample_company.id,
        sample_user.id
    )


@pytest.fixture
def sample_project(db_session, sample_company, sample_user, sample_client):
    return ProjectService(db_session).create_project(
        ProjectCreate(
            client_id=sample_client.id,
            name="Website Redesign",
            project_type=ProjectType.HOURLY,
            hourly_rate=Decimal("100.00")
        ),
        sample_company.id,
        sample_user.id
    )


@pytest.fixture
def make_invoice(db_session, sample_company, sample_user, sample_client):
    """Factory creating draft invoices for the sample client."""
    def _make_invoice(*amounts, **kwargs):
        items = [
            InvoiceItemCreate(description=f"Item {index + 1}", quantity=Decimal("1"), rate=Decimal(amount))
            for index, amount in enumerate(amounts or ("100.00",))
        ]
        kwargs.setdefault("tax_rate", Decimal("0"))
        kwargs.setdefault("client_id", sample_client.id)
        return InvoiceService(db_session).create_invoice(
            InvoiceCreate(items=items, **kwargs),
            sample_company.id,
            sample_user.id
        )
    return _make_invoice


@pytest.fixture
def queued_email():
    """Patch every email task's delay so nothing reaches a broker."""
    task = SimpleNamespace(id="task-123")
    targets = [
        "app.modules.email.tasks.send_email_task.delay",
        "app.modules.email.tasks.send_invoice_email_task.delay",
        "app.modules.email.tasks.send_quotation_email_task.delay",
        "app.modules.email.tasks.send_payment_receipt_task.delay",
        "app.modules.email.tasks.send_client_invite_task.delay",
    ]
    patchers = [patch(target, return_value=task) for target in targets]
    mocks = {target.split(".")[-2]: patcher.start() for target, patcher in zip(targets, patchers)}
    yield mocks
    for patcher in patchers:
        patcher.stop()

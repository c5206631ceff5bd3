"""Pytest configuration and fixtures.

Settings are read once at import, so the environment is fixed here before any
``servicevault_api`` module loads. Set TEST_DATABASE_URL to run against a
real PostgreSQL instance instead of in-memory SQLite.
"""

import os

os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite://")
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_STORE"] = "memory"
os.environ["RATE_LIMIT_REQUESTS_PER_MINUTE"] = "10000"
os.environ["ASSET_LOCK_BACKEND"] = "local"
os.environ["ADMIN_API_KEY"] = "test-admin-key"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from servicevault_api.auth.api_key import issue_api_key  # noqa: E402
from servicevault_api.auth.scopes import DEFAULT_SCOPES  # noqa: E402
from servicevault_api.db import session as db_session  # noqa: E402
from servicevault_api.db.base import Base  # noqa: E402
from servicevault_api.ledger.locks import LocalAssetLockProvider  # noqa: E402
from servicevault_api.ledger.service import EventLedgerService  # noqa: E402
from servicevault_api.models import Asset, Tenant  # noqa: E402

ACME_API_KEY = "acme-test-key-0001"
GLOBEX_API_KEY = "globex-test-key-0002"
READONLY_API_KEY = "readonly-key-0003"
ADMIN_API_KEY = "test-admin-key"


@pytest.fixture(scope="function")
def db():
    """Create a test database session on the application's engine."""
    Base.metadata.create_all(bind=db_session.engine)
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=db_session.engine)


def _make_tenant(db: Session, label: str, raw_key: str) -> Tenant:
    tenant = Tenant(label=label, status="active")
    db.add(tenant)
    db.flush()
    issue_api_key(db, tenant, raw_key, DEFAULT_SCOPES, label="test-key")
    db.commit()
    return tenant


@pytest.fixture
def tenant(db: Session) -> Tenant:
    """Tenant holding a full-scope API key."""
    return _make_tenant(db, "acme", ACME_API_KEY)


@pytest.fixture
def other_tenant(db: Session) -> Tenant:
    """A second, unrelated tenant."""
    return _make_tenant(db, "globex", GLOBEX_API_KEY)


@pytest.fixture
def readonly_key(db: Session, tenant: Tenant) -> str:
    """API key for ``tenant`` that may only read assets."""
    issue_api_key(db, tenant, READONLY_API_KEY, ["assets:read"], label="readonly")
    db.commit()
    return READONLY_API_KEY


@pytest.fixture
def asset(db: Session, tenant: Tenant) -> Asset:
    """An asset with no events yet."""
    asset = Asset(tenant_id=tenant.id, name="Basement water heater", category="PLUMBING")
    db.add(asset)
    db.commit()
    return asset


@pytest.fixture
def ledger(db: Session, tenant: Tenant) -> EventLedgerService:
    """Ledger service scoped to ``tenant`` with its own lock provider."""
    return EventLedgerService(db, tenant_id=tenant.id, locks=LocalAssetLockProvider(timeout_seconds=1.0))


@pytest.fixture
def client(db: Session) -> TestClient:
    """API client over the test database."""
    from servicevault_api.main import app

    return TestClient(app)


@pytest.fixture
def auth_headers() -> dict:
    return {"x-api-key": ACME_API_KEY}

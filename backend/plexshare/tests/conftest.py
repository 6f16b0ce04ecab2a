"""
Root test configuration and fixtures.

Provides:
- settings: a complete Settings value for tests (no environment reads)
- db_engine / db_session: fresh in-memory SQLite database per test
- directory: SqlAccessDirectory over db_session
- app / client: the FastAPI app with database, Plex and Stripe overridden
- as_admin / as_user / login: set the caller identity for subsequent requests
"""

import os
from typing import Generator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session

from plexshare.api.dependencies import get_billing_client, get_plex
from plexshare.auth.identity import CallerIdentity, get_optional_caller
from plexshare.config.settings import Settings, get_settings
from plexshare.database.session import build_engine, get_db_session
from plexshare.integrations.plex import PlexClient, ShareResult
from plexshare.integrations.stripe import BillingCustomer, StripeBillingClient
from plexshare.platform.secrets import Secret
from plexshare.repositories.access_directory import SqlAccessDirectory

# Set test environment
os.environ.setdefault("ENV", "test")

ADMIN_USER_ID = 1
WEBHOOK_SECRET = "whsec_test_secret"
MACHINE_IDENTIFIER = "machine-abc"


@pytest.fixture
def settings() -> Settings:
    """Settings with every integration configured."""
    return Settings(
        database_url="sqlite:///:memory:",
        stripe_secret_key=Secret("sk_test_123"),
        stripe_webhook_secret=Secret(WEBHOOK_SECRET),
        stripe_entitlement_name="plex",
        plex_token=Secret("admin-plex-token"),
        plex_client_id="plexshare-tests",
        plex_machine_identifier=MACHINE_IDENTIFIER,
        plex_admin_user_id=ADMIN_USER_ID,
        plex_shared_libraries=("Movies", "TV Shows"),
        invite_default_entitlement="plex",
        session_secret=Secret("test-session-secret"),
    )


@pytest.fixture
def db_engine():
    """
    Create an in-memory SQLite engine with all tables.

    A new database per test keeps tests independent of commit behaviour.
    """
    from plexshare.db_base import Base
    import plexshare.models  # noqa: F401

    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()

    yield session

    session.close()


@pytest.fixture
def directory(db_session) -> SqlAccessDirectory:
    return SqlAccessDirectory(db_session)


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")


# =============================================================================
# API fixtures
# =============================================================================

@pytest.fixture
def mock_plex():
    """PlexClient double; every network method is an AsyncMock."""
    client = MagicMock(spec=PlexClient)
    client.share_library = AsyncMock(return_value=ShareResult(id=555, invited_id=200))
    client.unshare_library = AsyncMock(return_value=None)
    client.accept_invite = AsyncMock(return_value=None)
    client.user_has_access = AsyncMock(return_value=False)
    client.get_user_ids_with_access = AsyncMock(return_value=set())
    return client


@pytest.fixture
def mock_billing():
    """StripeBillingClient double returning a customer linked to Plex user 200."""
    client = MagicMock(spec=StripeBillingClient)
    client.get_customer = AsyncMock(
        return_value=BillingCustomer(
            id="cus_123",
            email="bob@example.com",
            metadata={"plex_user_id": "200"},
        )
    )
    return client


@pytest.fixture
def app(settings, db_session, mock_plex, mock_billing):
    """
    Application wired to the test database and client doubles.

    Requests are anonymous until a test calls act_as().
    """
    from main import create_app

    app = create_app(settings)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_db_session] = lambda: db_session
    app.dependency_overrides[get_plex] = lambda: mock_plex
    app.dependency_overrides[get_billing_client] = lambda: mock_billing
    app.dependency_overrides[get_optional_caller] = lambda: None

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def act_as(app, user_id: int, settings: Settings, email: Optional[str] = None, username: str = ""):
    """Make subsequent requests come from the given Plex account."""
    caller = CallerIdentity(
        id=user_id,
        uuid=f"uuid-{user_id}",
        username=username or f"user{user_id}",
        email=email,
        is_admin=settings.is_admin(user_id),
    )
    app.dependency_overrides[get_optional_caller] = lambda: caller
    return caller


@pytest.fixture
def as_admin(app, settings):
    return act_as(app, ADMIN_USER_ID, settings, email="owner@example.com", username="owner")


@pytest.fixture
def as_user(app, settings):
    return act_as(app, 200, settings, email="bob@example.com", username="bob")


@pytest.fixture
def login(app, settings):
    """act_as() bound to the test app: login(user_id, email=..., username=...)."""
    def _login(user_id: int, email: Optional[str] = None, username: str = "") -> CallerIdentity:
        return act_as(app, user_id, settings, email=email, username=username)
    return _login

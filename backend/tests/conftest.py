"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.helpers import get_current_user_email
from api.saltedge import get_connection_service
from database import Base, enable_sqlite_foreign_keys, get_db
from integrations.client_context import get_client_context
from integrations.saltedge_client import get_saltedge_client
from integrations.webhook_verifier import WebhookVerifier, get_webhook_verifier
from main import app
from services.connection_service import ConnectionService
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    connected_user,
    other_user,
    user,
)
from tests.fixtures.mocks import TEST_EMAIL, MockSaltEdgeClient


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine with foreign keys enforced."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(name="session_factory")
def session_factory_fixture(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(name="db")
def db_fixture(session_factory):
    """Create an in-memory SQLite database session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="mock_saltedge")
def mock_saltedge_fixture():
    """Mock Salt Edge client with one active connection, 2 accounts and 15 transactions."""
    return MockSaltEdgeClient()


@pytest.fixture(name="connection_service")
def connection_service_fixture(mock_saltedge, session_factory):
    return ConnectionService(
        mock_saltedge,
        session_factory=session_factory,
        sleep=lambda seconds: None,
    )


@pytest.fixture(autouse=True)
def reset_client_context():
    """Start every test with an empty rate limiter, cache and telemetry."""
    get_client_context().reset()
    yield
    get_client_context().reset()


@pytest.fixture(name="client")
def client_fixture(db, mock_saltedge, connection_service):
    """Create a test client with the test database and a mock Salt Edge client."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user_email] = lambda: TEST_EMAIL
    app.dependency_overrides[get_saltedge_client] = lambda: mock_saltedge
    app.dependency_overrides[get_connection_service] = lambda: connection_service
    app.dependency_overrides[get_webhook_verifier] = lambda: WebhookVerifier(
        public_key_pem="", strict=False
    )
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="anonymous_client")
def anonymous_client_fixture(db):
    """Test client without the identity override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

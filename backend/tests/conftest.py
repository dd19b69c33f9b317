"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from database import Base, get_db
from main import app
from api.connections import get_registry as get_registry_for_connections
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    account,
    connection,
    external_account,
    investment_account,
    security,
)
from tests.fixtures import build_test_engine
from tests.fixtures.mocks import (
    MockProviderClient,
    MockProviderRegistry,
    SAMPLE_CHECKING,
)


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = build_test_engine()

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="mock_client")
def mock_client_fixture():
    """A SimpleFIN-keyed mock client streaming one checking account."""
    return MockProviderClient([SAMPLE_CHECKING])


@pytest.fixture(name="client")
def client_fixture(db, mock_client):
    """Create a test client with the test database."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    mock_registry = MockProviderRegistry({"simplefin": mock_client})

    def override_get_registry():
        return mock_registry

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry_for_connections] = override_get_registry
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

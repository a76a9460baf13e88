"""API test fixtures: TestClient over the full app with an in-memory ledger."""

import pytest
from starlette.testclient import TestClient

from main import create_app

STAFF_HEADERS = {"X-Staff-Id": "accounting@workshop.test"}


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(config, ledger, gateway, audit):
    """Full app: middleware, error handlers, data/actions/receipt routes."""
    return create_app(config, ledger, gateway, audit)


@pytest.fixture
def client(app):
    """Client acting as a staff member."""
    return TestClient(app, raise_server_exceptions=False, headers=STAFF_HEADERS)


@pytest.fixture
def anonymous_client(app):
    """Client with no staff identity, like a customer's browser."""
    return TestClient(app, raise_server_exceptions=False)

"""Shared test fixtures for the workshop payments test suite."""

from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._client = None
vault_module._secrets.clear()

from clients.leanx_client import LeanxClient
from core.audit import AuditLogger
from core.config import PaymentConfig
from core.event_bus import EventBus
from core.invariants import settle_fields
from core.ledger_store import InMemoryLedgerStore
from core.models import DepositStatus, GatewayBill
from utils.user_context import staff_context, clear_current_staff
from utils.timezone import now_utc


# =============================================================================
# STAFF CONSTANTS
# =============================================================================

TEST_STAFF = "accounting@workshop.test"
TEST_PHONE = "012-345 6789"


# =============================================================================
# STAFF CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_staff_context():
    """Ensure clean staff context before and after each test."""
    clear_current_staff()
    yield
    clear_current_staff()


@pytest.fixture
def as_staff():
    """Run the test as the accounting staff member."""
    with staff_context(TEST_STAFF):
        yield TEST_STAFF


# =============================================================================
# LEDGER & COLLABORATOR FIXTURES
# =============================================================================


@pytest.fixture
def ledger():
    """Fresh in-memory ledger per test."""
    return InMemoryLedgerStore()


@pytest.fixture
def audit():
    return Mock(spec=AuditLogger)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def config():
    return PaymentConfig(app_base_url="https://workshop.test")


@pytest.fixture
def gateway():
    """Gateway client double. Defaults to issuing a bill successfully."""
    mock = Mock(spec=LeanxClient)
    mock.create_bill.return_value = GatewayBill(
        url="https://pay.leanx.test/bill/BP-NEW-0001",
        id="BP-NEW-0001",
    )
    return mock


# =============================================================================
# INVOICE FACTORY
# =============================================================================


@pytest.fixture
def make_invoice(ledger):
    """
    Factory writing an invoice straight into the ledger.

    Money fields are always derived from total and deposit, so every
    invoice it returns satisfies the ledger invariants.
    """
    counter = {"n": 0}

    def _make(
        total="1000.00",
        deposit="0",
        deposit_status=DepositStatus.NONE,
        **overrides,
    ):
        counter["n"] += 1
        fields = {
            "invoice_number": f"INV-20260101-{counter['n']:04d}",
            "customer_name": "Ahmad Faiz",
            "customer_phone": TEST_PHONE,
            "customer_email": "faiz@example.test",
            "total": Decimal(total),
            **settle_fields(Decimal(total), Decimal(deposit)),
            "deposit_status": deposit_status,
            "created_at": now_utc(),
            **overrides,
        }
        return ledger.create(fields)

    return _make

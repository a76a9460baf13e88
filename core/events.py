"""
Domain events for the invoice ledger.

Immutable event objects describing what happened to an invoice. Services
publish them after the ledger write has committed; handlers react without
the publisher knowing who's listening.

Event Categories:
- InvoiceEvent: Invoice lifecycle (create, fully paid)
- PaymentEvent: Money and payment links (recorded, link generated)

Events carry the full domain object so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class LedgerEvent:
    """Base class for all ledger domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(LedgerEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class InvoiceCreated(InvoiceEvent):
    """A new invoice was written to the ledger."""
    invoice: Any = None  # Invoice; Any avoids a circular import

    @classmethod
    def create(cls, invoice: Any) -> "InvoiceCreated":
        return cls(invoice=invoice)


@dataclass(frozen=True)
class InvoicePaid(InvoiceEvent):
    """Invoice balance reached zero (within tolerance)."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "InvoicePaid":
        return cls(invoice=invoice)


# =============================================================================
# PAYMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class PaymentEvent(LedgerEvent):
    """Events related to money moving or being requested."""
    pass


@dataclass(frozen=True)
class PaymentRecorded(PaymentEvent):
    """Money was credited to an invoice."""
    invoice: Any = None
    entry: Any = None  # PaymentHistoryEntry

    @classmethod
    def create(cls, invoice: Any, entry: Any) -> "PaymentRecorded":
        return cls(invoice=invoice, entry=entry)


@dataclass(frozen=True)
class PaymentLinkGenerated(PaymentEvent):
    """The gateway issued a new hosted payment page for an invoice."""
    invoice: Any = None
    url: str = ""
    bill_id: str | None = None
    amount: Decimal = Decimal("0")

    @classmethod
    def create(cls, invoice: Any, url: str, bill_id: str | None, amount: Decimal) -> "PaymentLinkGenerated":
        return cls(invoice=invoice, url=url, bill_id=bill_id, amount=amount)

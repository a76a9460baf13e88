"""
Ledger store: where invoices live.

The payment services depend only on the LedgerStore interface. It offers
document-level reads, partial updates with optional version checks, and
push-based subscriptions that deliver a fresh ordered snapshot after every
committed write.

Every update is validated against the money invariants before it is
applied, and payment_history may only grow by appending.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable
from uuid import uuid4

from core.exceptions import ConcurrentModificationError, InvoiceConsistencyError, InvoiceNotFoundError
from core.invariants import check_invoice_consistency
from core.models import Invoice, LedgerTransaction, PaymentHistoryEntry
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

Snapshot = list[Invoice]
SnapshotCallback = Callable[[Snapshot], None]

# Fields no update may touch
IMMUTABLE_FIELDS = {"id", "invoice_number", "created_at", "version"}

# Fields find_by_field may match on
QUERYABLE_FIELDS = {
    "invoice_number", "customer_name", "customer_phone",
    "payment_status", "deposit_status", "last_payment_id",
}

SORTABLE_FIELDS = {"created_at", "updated_at", "due_at", "invoice_number", "balance_due"}


def merge_update(current: Invoice, fields: dict[str, Any]) -> Invoice:
    """
    Apply a partial update to an invoice and validate the result.

    Raises:
        ValueError: Unknown or immutable field
        InvoiceConsistencyError: Money fields disagree or history was rewritten
    """
    unknown = set(fields) - set(Invoice.model_fields)
    if unknown:
        raise ValueError(f"Unknown invoice fields: {', '.join(sorted(unknown))}")

    immutable = set(fields) & IMMUTABLE_FIELDS
    if immutable:
        raise ValueError(f"Cannot update immutable fields: {', '.join(sorted(immutable))}")

    if "payment_history" in fields:
        new_history = [PaymentHistoryEntry.model_validate(e) for e in fields["payment_history"]]
        old_history = current.payment_history
        if new_history[:len(old_history)] != old_history:
            raise InvoiceConsistencyError(
                f"payment_history of invoice {current.invoice_number} is append-only"
            )

    merged = Invoice.model_validate({
        **current.model_dump(),
        **fields,
        "version": current.version + 1,
        "updated_at": now_utc(),
    })

    check_invoice_consistency(
        merged.total, merged.deposit, merged.balance_due, merged.payment_status
    )
    return merged


class LedgerStore(ABC):
    """
    Abstract invoice store.

    Subclasses implement persistence; this base class owns the subscription
    registry and fans out snapshots after writes via _notify().
    """

    def __init__(self):
        self._listeners: list[tuple[SnapshotCallback, str, bool]] = []
        self._listeners_lock = threading.RLock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @abstractmethod
    def create(self, fields: dict[str, Any]) -> Invoice:
        """Insert a new invoice. The store assigns id, version and timestamps."""

    @abstractmethod
    def get(self, invoice_id: str) -> Invoice | None:
        """Invoice by store id, or None."""

    @abstractmethod
    def find_by_field(self, field: str, value: Any) -> list[Invoice]:
        """All invoices whose `field` equals `value`, newest first."""

    @abstractmethod
    def update(
        self,
        invoice_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> Invoice:
        """
        Apply a partial update and return the stored result.

        Without expected_version the write is last-write-wins. With it, the
        write is rejected with ConcurrentModificationError if the stored
        version differs.

        Raises:
            InvoiceNotFoundError: No such invoice
        """

    @abstractmethod
    def delete(self, invoice_id: str) -> bool:
        """Remove an invoice. True if it existed."""

    @abstractmethod
    def list_all(self, order_by: str = "created_at", descending: bool = True) -> list[Invoice]:
        """All invoices in the requested order."""

    @abstractmethod
    def append_transaction(self, entry: LedgerTransaction) -> None:
        """Append an income entry to the transaction ledger."""

    @abstractmethod
    def list_transactions(self, limit: int = 100) -> list[LedgerTransaction]:
        """Most recent transaction ledger entries first."""

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    def get_by_number(self, invoice_number: str) -> Invoice | None:
        """Resolve the human-readable invoice number to an invoice."""
        matches = self.find_by_field("invoice_number", invoice_number)
        return matches[0] if matches else None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        callback: SnapshotCallback,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> Callable[[], None]:
        """
        Receive the ordered invoice list now and after every write.

        Returns:
            Function that removes the subscription
        """
        if order_by not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot order by '{order_by}'")

        listener = (callback, order_by, descending)
        with self._listeners_lock:
            self._listeners.append(listener)

        self._deliver(listener)

        def unsubscribe():
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _deliver(self, listener: tuple[SnapshotCallback, str, bool]) -> None:
        callback, order_by, descending = listener
        try:
            callback(self.list_all(order_by=order_by, descending=descending))
        except Exception:
            logger.exception(
                "Ledger subscriber %s failed",
                getattr(callback, "__name__", repr(callback)),
            )

    def _notify(self) -> None:
        """Push a fresh snapshot to every subscriber."""
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            self._deliver(listener)


class InMemoryLedgerStore(LedgerStore):
    """
    Dict-backed LedgerStore.

    Used by tests and local demos. Behaves like the hosted store: documents
    are copied on the way in and out, so callers never share state.
    """

    def __init__(self):
        super().__init__()
        self._invoices: dict[str, Invoice] = {}
        self._transactions: list[LedgerTransaction] = []
        self._lock = threading.RLock()

    def create(self, fields: dict[str, Any]) -> Invoice:
        now = now_utc()
        invoice = Invoice.model_validate({
            "created_at": now,
            **fields,
            "id": uuid4().hex,
            "version": 1,
            "updated_at": now,
        })
        check_invoice_consistency(
            invoice.total, invoice.deposit, invoice.balance_due, invoice.payment_status
        )

        with self._lock:
            if self.get_by_number(invoice.invoice_number) is not None:
                raise ValueError(f"Invoice number {invoice.invoice_number} already exists")
            self._invoices[invoice.id] = invoice

        self._notify()
        return invoice.model_copy(deep=True)

    def get(self, invoice_id: str) -> Invoice | None:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
        return invoice.model_copy(deep=True) if invoice else None

    def find_by_field(self, field: str, value: Any) -> list[Invoice]:
        if field not in QUERYABLE_FIELDS:
            raise ValueError(f"Cannot query invoices by '{field}'")
        return [inv for inv in self.list_all() if getattr(inv, field) == value]

    def update(
        self,
        invoice_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> Invoice:
        with self._lock:
            current = self._invoices.get(invoice_id)
            if current is None:
                raise InvoiceNotFoundError(invoice_id)

            if expected_version is not None and current.version != expected_version:
                raise ConcurrentModificationError(invoice_id, expected_version, current.version)

            updated = merge_update(current, fields)
            self._invoices[invoice_id] = updated

        self._notify()
        return updated.model_copy(deep=True)

    def delete(self, invoice_id: str) -> bool:
        with self._lock:
            existed = self._invoices.pop(invoice_id, None) is not None
        if existed:
            self._notify()
        return existed

    def list_all(self, order_by: str = "created_at", descending: bool = True) -> list[Invoice]:
        if order_by not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot order by '{order_by}'")
        with self._lock:
            invoices = [inv.model_copy(deep=True) for inv in self._invoices.values()]

        present = [inv for inv in invoices if getattr(inv, order_by) is not None]
        missing = [inv for inv in invoices if getattr(inv, order_by) is None]
        present.sort(key=lambda inv: getattr(inv, order_by), reverse=descending)
        return present + missing

    def append_transaction(self, entry: LedgerTransaction) -> None:
        with self._lock:
            self._transactions.append(entry.model_copy())

    def list_transactions(self, limit: int = 100) -> list[LedgerTransaction]:
        with self._lock:
            return list(reversed(self._transactions))[:limit]

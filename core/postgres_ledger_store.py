"""
PostgreSQL-backed LedgerStore.

One row per invoice; parts, labor and payment history are JSONB arrays.
Subscriptions are served in-process: snapshots are pushed to subscribers of
this instance after each of its own writes.
"""

import logging
from typing import Any
from uuid import uuid4

from clients.postgres_client import PostgresClient
from core.exceptions import ConcurrentModificationError, InvoiceNotFoundError
from core.invariants import check_invoice_consistency
from core.ledger_store import LedgerStore, QUERYABLE_FIELDS, SORTABLE_FIELDS, merge_update
from core.models import Invoice, LedgerTransaction
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY,
    invoice_number TEXT NOT NULL UNIQUE,
    customer_name TEXT NOT NULL,
    customer_phone TEXT NOT NULL DEFAULT '',
    customer_email TEXT NOT NULL DEFAULT '',
    vehicle_plate TEXT,
    work_description TEXT NOT NULL DEFAULT '',
    parts JSONB NOT NULL DEFAULT '[]',
    labor JSONB NOT NULL DEFAULT '[]',
    parts_total NUMERIC(12, 2) NOT NULL DEFAULT 0,
    labor_total NUMERIC(12, 2) NOT NULL DEFAULT 0,
    subtotal NUMERIC(12, 2) NOT NULL DEFAULT 0,
    discount_percent NUMERIC(5, 2) NOT NULL DEFAULT 0,
    discount_amount NUMERIC(12, 2) NOT NULL DEFAULT 0,
    total NUMERIC(12, 2) NOT NULL,
    deposit NUMERIC(12, 2) NOT NULL DEFAULT 0 CHECK (deposit >= 0),
    balance_due NUMERIC(12, 2) NOT NULL CHECK (balance_due >= 0),
    payment_status TEXT NOT NULL,
    deposit_status TEXT NOT NULL,
    payment_method TEXT,
    payment_history JSONB NOT NULL DEFAULT '[]',
    last_payment_link TEXT,
    last_payment_id TEXT,
    last_payment_transaction_id TEXT,
    last_payment_at TIMESTAMPTZ,
    payment_terms_days INTEGER NOT NULL DEFAULT 30,
    due_at TIMESTAMPTZ,
    notes TEXT,
    version INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS ledger_transactions (
    id TEXT PRIMARY KEY,
    invoice_id TEXT NOT NULL,
    invoice_number TEXT NOT NULL,
    customer_name TEXT NOT NULL,
    amount NUMERIC(12, 2) NOT NULL,
    type TEXT NOT NULL,
    category TEXT NOT NULL,
    method TEXT NOT NULL,
    recorded_at TIMESTAMPTZ NOT NULL
);
"""

# Columns serialized as JSONB
_JSON_COLUMNS = {"parts", "labor", "payment_history"}


def _column_values(invoice: Invoice, columns: list[str]) -> list[Any]:
    """Column values for an invoice, JSON-safe for the JSONB columns."""
    dumped = invoice.model_dump(mode="json")
    values = []
    for column in columns:
        values.append(dumped[column] if column in _JSON_COLUMNS else getattr(invoice, column))
    return values


class PostgresLedgerStore(LedgerStore):
    """LedgerStore on top of PostgresClient."""

    def __init__(self, postgres: PostgresClient):
        super().__init__()
        self.postgres = postgres

    def ensure_schema(self) -> None:
        """Create the ledger tables if they don't exist."""
        self.postgres.execute(SCHEMA)
        logger.info("Ledger schema ensured")

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

        columns = list(Invoice.model_fields)
        placeholders = ", ".join(["%s"] * len(columns))
        row = self.postgres.execute_returning(
            f"INSERT INTO invoices ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
            tuple(_column_values(invoice, columns)),
        )[0]

        created = Invoice.model_validate(row)
        self._notify()
        return created

    def get(self, invoice_id: str) -> Invoice | None:
        row = self.postgres.execute_single(
            "SELECT * FROM invoices WHERE id = %s",
            (invoice_id,)
        )
        return Invoice.model_validate(row) if row else None

    def find_by_field(self, field: str, value: Any) -> list[Invoice]:
        if field not in QUERYABLE_FIELDS:
            raise ValueError(f"Cannot query invoices by '{field}'")

        rows = self.postgres.execute(
            f"SELECT * FROM invoices WHERE {field} = %s ORDER BY created_at DESC",
            (value,)
        )
        return [Invoice.model_validate(row) for row in rows]

    def update(
        self,
        invoice_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> Invoice:
        current = self.get(invoice_id)
        if current is None:
            raise InvoiceNotFoundError(invoice_id)

        if expected_version is not None and current.version != expected_version:
            raise ConcurrentModificationError(invoice_id, expected_version, current.version)

        merged = merge_update(current, fields)

        columns = sorted(set(fields) | {"balance_due", "payment_status", "updated_at"})
        assignments = ", ".join(f"{column} = %s" for column in columns)
        params = _column_values(merged, columns)

        query = f"UPDATE invoices SET {assignments}, version = version + 1 WHERE id = %s"
        params.append(invoice_id)
        if expected_version is not None:
            query += " AND version = %s"
            params.append(expected_version)

        rows = self.postgres.execute_returning(query + " RETURNING *", tuple(params))
        if not rows:
            # Row changed between our read and write
            latest = self.get(invoice_id)
            if latest is None:
                raise InvoiceNotFoundError(invoice_id)
            raise ConcurrentModificationError(invoice_id, expected_version, latest.version)

        updated = Invoice.model_validate(rows[0])
        self._notify()
        return updated

    def delete(self, invoice_id: str) -> bool:
        rows = self.postgres.execute_returning(
            "DELETE FROM invoices WHERE id = %s RETURNING id",
            (invoice_id,)
        )
        if rows:
            self._notify()
        return bool(rows)

    def list_all(self, order_by: str = "created_at", descending: bool = True) -> list[Invoice]:
        if order_by not in SORTABLE_FIELDS:
            raise ValueError(f"Cannot order by '{order_by}'")

        direction = "DESC" if descending else "ASC"
        rows = self.postgres.execute(
            f"SELECT * FROM invoices ORDER BY {order_by} {direction} NULLS LAST"
        )
        return [Invoice.model_validate(row) for row in rows]

    def append_transaction(self, entry: LedgerTransaction) -> None:
        self.postgres.execute(
            """
            INSERT INTO ledger_transactions (
                id, invoice_id, invoice_number, customer_name,
                amount, type, category, method, recorded_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4().hex, entry.invoice_id, entry.invoice_number, entry.customer_name,
                entry.amount, entry.type, entry.category, entry.method, entry.recorded_at
            )
        )

    def list_transactions(self, limit: int = 100) -> list[LedgerTransaction]:
        rows = self.postgres.execute(
            """
            SELECT invoice_id, invoice_number, customer_name, amount,
                   type, category, method, recorded_at
            FROM ledger_transactions
            ORDER BY recorded_at DESC
            LIMIT %s
            """,
            (limit,)
        )
        return [LedgerTransaction.model_validate(row) for row in rows]

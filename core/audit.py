"""
Audit trail for invoice changes.

Every mutation of an invoice is logged here. The audit log is:
- Append-only (entries never modified or deleted)
- Staff-attributed (who made the change, "system" for gateway-driven credits)
- Detailed (captures old and new values)

Manual credits (confirmed deposits, counter payments) are the only place
money enters the ledger without gateway proof, so they must be traceable.
"""

from enum import Enum
from uuid import uuid4
from typing import Any

from clients.postgres_client import PostgresClient
from utils.user_context import get_current_staff_or_default
from utils.timezone import now_utc

AUDIT_SCHEMA = """
CREATE TABLE IF NOT EXISTS audit_log (
    id TEXT PRIMARY KEY,
    staff TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    action TEXT NOT NULL,
    changes JSONB NOT NULL,
    created_at TIMESTAMPTZ NOT NULL
);
"""


class AuditAction(Enum):
    """Type of change made to an entity."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


def compute_changes(
    old: dict[str, Any],
    new: dict[str, Any],
    exclude_fields: set[str] | None = None
) -> dict[str, dict[str, Any]]:
    """
    Compute changes between two entity states.

    Args:
        old: Previous state of entity
        new: New state of entity
        exclude_fields: Fields to ignore (defaults to {"updated_at", "version"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at", "version"}
    changes = {}

    for key in set(old.keys()) | set(new.keys()):
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Audit trail writer.

    Always pass model_dump(mode="json") output so Decimals and datetimes are
    stored as JSON-compatible strings.

    Usage:
        audit = AuditLogger(postgres)
        audit.log_change(
            entity_type="invoice",
            entity_id=invoice.id,
            action=AuditAction.UPDATE,
            changes=compute_changes(old.model_dump(mode="json"), new.model_dump(mode="json")),
        )
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def ensure_schema(self) -> None:
        """Create the audit table if it doesn't exist."""
        self.postgres.execute(AUDIT_SCHEMA)

    def log_change(
        self,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        changes: dict[str, Any],
        staff: str | None = None
    ) -> None:
        """
        Log an entity change.

        Args:
            entity_type: Type of entity ("invoice")
            entity_id: ID of the entity
            action: The action performed (CREATE, UPDATE, DELETE)
            changes: The changes made (format depends on action)
            staff: Who made the change (defaults to current context, else "system")

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        if staff is None:
            staff = get_current_staff_or_default()

        self.postgres.execute(
            """
            INSERT INTO audit_log (id, staff, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4().hex,
                staff,
                entity_type,
                entity_id,
                action.value,
                changes,
                now_utc()
            )
        )

    def get_entity_history(
        self,
        entity_type: str,
        entity_id: str
    ) -> list[dict[str, Any]]:
        """
        Get full audit history for an entity.

        Returns:
            List of audit entries, newest first.
        """
        return self.postgres.execute(
            """
            SELECT id, staff, entity_type, entity_id, action, changes, created_at
            FROM audit_log
            WHERE entity_type = %s AND entity_id = %s
            ORDER BY created_at DESC
            """,
            (entity_type, entity_id)
        )

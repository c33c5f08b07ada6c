"""
Audit trail for access-link and ledger mutations.

Every mutation of a link, invoice or payment is logged here. The audit log is:
- Append-only (entries never modified or deleted)
- Actor-attributed (who made the change; NULL for link holders, who have
  no account)
- Detailed (captures old and new values)
"""

from enum import Enum
from uuid import UUID, uuid4
from typing import Any

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.user_context import peek_current_actor
from utils.timezone import now_utc


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
        exclude_fields: Fields to ignore (defaults to {"updated_at"})

    Returns:
        Dict of {field: {"old": old_val, "new": new_val}} for changed fields.
        Empty dict if no changes.
    """
    exclude = exclude_fields or {"updated_at"}
    changes = {}

    all_keys = set(old.keys()) | set(new.keys())
    for key in all_keys:
        if key in exclude:
            continue

        old_val = old.get(key)
        new_val = new.get(key)

        if old_val != new_val:
            changes[key] = {"old": old_val, "new": new_val}

    return changes


class AuditLogger:
    """
    Append-only audit trail.

    Always pass model_dump(mode="json") output so UUIDs, Decimals and
    datetimes arrive as JSON-compatible values.

    Usage:
        audit = AuditLogger(postgres)

        audit.log_change(
            entity_type="invoice_payment",
            entity_id=payment.id,
            action=AuditAction.CREATE,
            changes={"created": payment.model_dump(mode="json")},
        )
    """

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def log_change(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        changes: dict[str, Any],
        actor_id: UUID | None = None
    ) -> None:
        """
        Log an entity change.

        Args:
            entity_type: "access_link", "invoice" or "invoice_payment"
            entity_id: ID of the entity
            action: The action performed (CREATE, UPDATE, DELETE)
            changes: The changes made (format depends on action)
            actor_id: Who made the change (defaults to the request's actor)

        Changes format by action:
        - CREATE: {"created": {full entity data}}
        - UPDATE: {"field": {"old": old_val, "new": new_val}, ...}
        - DELETE: {"deleted": {full entity data at deletion}}
        """
        if actor_id is None:
            actor = peek_current_actor()
            actor_id = actor.id if actor else None

        self.postgres.execute(
            """
            INSERT INTO audit_log (id, actor_id, entity_type, entity_id, action, changes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                uuid4(),
                actor_id,
                entity_type,
                entity_id,
                action.value,
                Json(changes),
                now_utc()
            )
        )

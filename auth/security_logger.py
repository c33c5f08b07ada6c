"""Security event logging for the public access-link surface.

Append-only log to the security_events table. Every verification attempt,
lockout, expiry and submission is recorded with the link it concerns, so a
brute-force attempt against one link is visible after the fact.
"""

from enum import Enum
from typing import Any
from uuid import UUID

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc


class SecurityEvent(Enum):
    """Security event types."""

    LINK_CREATED = "link_created"
    LINK_VERIFIED = "link_verified"
    LINK_VERIFY_FAILED = "link_verify_failed"
    LINK_EXPIRED = "link_expired"
    LINK_INACTIVE_ACCESS = "link_inactive_access"
    LINK_CONSUMED = "link_consumed"
    LINK_TOKEN_REJECTED = "link_token_rejected"
    RATE_LIMITED = "rate_limited"


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        link_id: UUID | None = None,
        actor_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event to database."""
        self._db.execute_returning(
            """INSERT INTO security_events
               (event_type, link_id, actor_id, ip_address, user_agent, details, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                event.value,
                link_id,
                actor_id,
                ip_address,
                user_agent,
                Json(details) if details else None,
                now_utc(),
            ),
        )


"""Staff session token lifecycle.

Sessions are stored in Valkey with TTL matching session expiry and carry the
actor's id and role, so ownership checks need no database round trip.
Token format is cryptographically random (secrets.token_urlsafe).
"""

import secrets
from datetime import timedelta
from uuid import UUID

from clients.valkey_client import ValkeyClient
from auth.config import SessionConfig
from auth.types import Session
from auth.exceptions import SessionExpiredError
from core.models.actor import Actor, Role
from utils.timezone import now_utc, parse_iso


class SessionManager:
    """Session token lifecycle management with sliding expiry."""

    KEY_PREFIX = "session:"

    def __init__(self, valkey: ValkeyClient, config: SessionConfig):
        self._valkey = valkey
        self._config = config

    def _key(self, token: str) -> str:
        """Generate Valkey key for session token."""
        return f"{self.KEY_PREFIX}{token}"

    def _store(self, session: Session) -> None:
        actor = session.actor
        self._valkey.set_json(
            self._key(session.token),
            {
                "actor_id": str(actor.id),
                "role": actor.role.value,
                "email": actor.email,
                "name": actor.name,
                "created_at": session.created_at.isoformat(),
                "expires_at": session.expires_at.isoformat(),
                "last_activity_at": session.last_activity_at.isoformat(),
            },
            expire_seconds=self._config.session_expiry_hours * 3600,
        )

    def create_session(self, actor: Actor) -> Session:
        """Create a new session for a signed-in admin or advocate."""
        now = now_utc()
        session = Session(
            token=secrets.token_urlsafe(32),
            actor=actor,
            created_at=now,
            expires_at=now + timedelta(hours=self._config.session_expiry_hours),
            last_activity_at=now,
        )
        self._store(session)
        return session

    def validate_session(self, token: str) -> Session:
        """Validate session token and return the session, extending it.

        Raises SessionExpiredError if token invalid or expired.
        """
        data = self._valkey.get_json(self._key(token))

        if data is None:
            raise SessionExpiredError("Session not found or expired")

        session = Session(
            token=token,
            actor=Actor(
                id=UUID(data["actor_id"]),
                role=Role(data["role"]),
                email=data.get("email"),
                name=data.get("name"),
            ),
            created_at=parse_iso(data["created_at"]),
            expires_at=parse_iso(data["expires_at"]),
            last_activity_at=parse_iso(data["last_activity_at"]),
        )

        now = now_utc()

        # Valkey TTL should already have dropped it
        if now > session.expires_at:
            self._valkey.delete(self._key(token))
            raise SessionExpiredError("Session expired")

        extended = session.model_copy(update={
            "expires_at": now + timedelta(hours=self._config.session_expiry_hours),
            "last_activity_at": now,
        })
        self._store(extended)
        return extended

    def revoke_session(self, token: str) -> None:
        """Revoke session (logout). Safe to call with nonexistent token."""
        self._valkey.delete(self._key(token))

"""Attempt limiting for access-link secret verification.

A six digit secret falls to brute force quickly without a cap, so each link
gets a Valkey counter with a sliding window TTL: every attempt resets the
expiry, and hammering a link only extends its lockout.
"""

from uuid import UUID

from clients.valkey_client import ValkeyClient
from auth.config import AccessLinkConfig
from auth.exceptions import RateLimitedError


class RateLimiter:
    """Per-link verification attempt limiter backed by Valkey."""

    KEY_PREFIX = "ratelimit:link_verify:"

    def __init__(self, valkey: ValkeyClient, config: AccessLinkConfig):
        self._valkey = valkey
        self._config = config
        self._window_seconds = config.verify_window_minutes * 60

    def _key(self, link_id: UUID) -> str:
        return f"{self.KEY_PREFIX}{link_id}"

    def check_rate_limit(self, link_id: UUID) -> None:
        """Count an attempt and reject it if the link is over its limit.

        Raises:
            RateLimitedError: If rate limit exceeded.
        """
        key = self._key(link_id)
        count = self._valkey.incr_with_ttl(key, self._window_seconds)

        if count > self._config.verify_attempts:
            retry_after = max(self._valkey.ttl(key), 1)
            raise RateLimitedError(retry_after_seconds=retry_after)

    def reset_rate_limit(self, link_id: UUID) -> None:
        """Forget counted attempts after a successful verification."""
        self._valkey.delete(self._key(link_id))

    def get_remaining_attempts(self, link_id: UUID) -> int:
        """Attempts left before the link locks."""
        current = self._valkey.get(self._key(link_id))

        if current is None:
            return self._config.verify_attempts

        return max(self._config.verify_attempts - int(current), 0)

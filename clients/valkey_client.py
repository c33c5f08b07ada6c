"""
Valkey (Redis-compatible) client for sessions and access-link attempt counters.

Thin wrapper around redis-py. Connection URL from Vault.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import json
import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        client.set_json("session:abc", {"actor_id": "..."}, expire_seconds=300)
        count = client.incr_with_ttl("verify:attempts:<link>", 900)
    """

    def __init__(self, url: str):
        """
        Connect and verify connectivity immediately.

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """Health check. Raises redis.ConnectionError if unreachable."""
        self._client.ping()
        return True

    def get(self, key: str) -> str | None:
        """Get value by key. Missing key returns None."""
        return self._client.get(key)

    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        """Set key to value, optionally with a TTL in seconds."""
        if expire_seconds is not None:
            self._client.setex(key, expire_seconds, value)
        else:
            self._client.set(key, value)

    def delete(self, key: str) -> bool:
        """Delete key. Returns True if it existed."""
        return self._client.delete(key) > 0

    def ttl(self, key: str) -> int:
        """
        Remaining TTL in seconds.

        Returns -2 if key doesn't exist, -1 if it has no expiration.
        """
        return self._client.ttl(key)

    def incr_with_ttl(self, key: str, expire_seconds: int) -> int:
        """
        Increment a counter and (re)set its TTL in one round trip.

        The TTL is reset on every call, so the window slides with each hit.
        Returns the new counter value.
        """
        pipe = self._client.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, expire_seconds)
        count, _ = pipe.execute()
        return int(count)

    def set_json(self, key: str, value: dict | list, expire_seconds: int | None = None) -> None:
        """Store a JSON-serialized value."""
        self.set(key, json.dumps(value), expire_seconds)

    def get_json(self, key: str) -> dict | list | None:
        """
        Get and deserialize a JSON value.

        Returns None if key doesn't exist.
        Raises ValueError if value is not valid JSON.
        """
        value = self.get(key)
        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in key '{key}': {e}")

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")

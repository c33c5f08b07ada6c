"""Capability tokens for access-link holders.

After the client proves they hold a link's secret they get a signed JWT
scoped to that one link. Every later call on the public surface presents the
token instead of the secret. The token expires with the link itself.
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from uuid import UUID

import jwt

from core.errors import InvalidCapabilityError
from core.models.access_link import AccessLink, CapabilityGrant

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SCOPE = "access_link:submit"


class CapabilityIssuer:
    """Issue and check link-scoped capability tokens."""

    def __init__(self, signing_key: str, issuer: str = "casedesk"):
        if not signing_key:
            raise ValueError("signing_key is required")
        self._key = signing_key
        self._issuer = issuer

    def issue(self, link: AccessLink) -> CapabilityGrant:
        """
        Token for one link, valid until the link's own expiry.

        JWT exp is whole seconds; it is rounded up so the token never lapses
        before its link.
        """
        payload = {
            "sub": str(link.id),
            "scope": SCOPE,
            "iss": self._issuer,
            "exp": math.ceil(link.expires_at.timestamp()),
            "jti": uuid.uuid4().hex,
        }
        token = jwt.encode(payload, self._key, algorithm=ALGORITHM)
        return CapabilityGrant(link_id=link.id, token=token, expires_at=link.expires_at)

    def verify(self, token: str, now: datetime, link_id: UUID | None = None) -> UUID:
        """
        Return the link id the token grants access to.

        Expiry is judged against the caller's clock rather than the wall
        clock so that link expiry and token expiry agree.

        Raises:
            InvalidCapabilityError: Bad signature, wrong scope, expired, or
                scoped to a different link than link_id.
        """
        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=[ALGORITHM],
                issuer=self._issuer,
                options={"verify_exp": False, "require": ["sub", "exp", "scope", "jti"]},
            )
        except jwt.PyJWTError as e:
            logger.info(f"Rejected capability token: {e}")
            raise InvalidCapabilityError("Access token is invalid")

        if payload.get("scope") != SCOPE:
            raise InvalidCapabilityError("Access token does not grant submission")

        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        if now > expires_at:
            raise InvalidCapabilityError("Access token has expired")

        try:
            granted = UUID(payload["sub"])
        except ValueError:
            raise InvalidCapabilityError("Access token is invalid")

        if link_id is not None and granted != link_id:
            raise InvalidCapabilityError("Access token is scoped to a different link")

        return granted

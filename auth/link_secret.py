"""Numeric secrets that gate access links.

The secret is short so a client can type it from an email, which is why it is
stored only as a slow bcrypt hash and why verification attempts are limited
per link (see auth.rate_limiter).
"""

import secrets

import bcrypt


def random_digits(length: int) -> str:
    """Cryptographically random decimal string, leading zeros allowed."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def hash_secret(secret: str, rounds: int) -> str:
    """bcrypt hash of the secret, as text for storage."""
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def check_secret(presented: str, secret_hash: str) -> bool:
    """Constant-time check of a presented secret against a stored hash."""
    if not presented:
        return False
    try:
        return bcrypt.checkpw(presented.encode("utf-8"), secret_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash; treat as a mismatch
        return False

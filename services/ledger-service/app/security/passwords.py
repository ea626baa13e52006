"""Utilities for hashing and verifying account secrets."""

from __future__ import annotations

import hashlib
import hmac
import secrets

from ..config import get_settings

_ALGORITHM = "pbkdf2_sha256"
_SALT_BYTES = 16


def hash_secret(secret: str, *, iterations: int | None = None) -> str:
    """Derive a salted PBKDF2 hash for ``secret``.

    Parameters
    ----------
    secret:
        Plaintext password supplied by the account holder.
    iterations:
        Optional override of the configured PBKDF2 work factor.

    Returns
    -------
    str
        ``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``. A new salt is
        drawn on every call, so hashing the same secret twice yields two
        different strings.
    """

    rounds = iterations or get_settings().password_hash_iterations
    salt = secrets.token_bytes(_SALT_BYTES)
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, rounds)
    return f"{_ALGORITHM}${rounds}${salt.hex()}${digest.hex()}"


def verify_secret(secret: str, encoded: str | None) -> bool:
    """Return ``True`` when ``secret`` matches the stored ``encoded`` hash.

    The comparison runs in constant time. A missing or malformed hash never
    matches.
    """

    if not encoded:
        return False
    try:
        algorithm, rounds, salt_hex, digest_hex = encoded.split("$")
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(digest_hex)
        iterations = int(rounds)
    except ValueError:
        return False
    if algorithm != _ALGORITHM:
        return False
    candidate = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(candidate, expected)

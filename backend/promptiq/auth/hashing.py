"""
Key and password hashing utilities.

Security notes:
  • SHA-256 is used for API-key hashing — acceptable because keys are
    high-entropy random strings. bcrypt would add latency to every
    embed request for no gain.
  • Passwords are low-entropy, so they get bcrypt.
  • generate_api_key() returns the raw key exactly once — callers persist
    only the prefix and the hash.
"""

import hashlib
import secrets
from typing import NamedTuple

import bcrypt

_KEY_NAMESPACE = "spiq_"
_BCRYPT_COST = 12


class GeneratedKey(NamedTuple):
    raw_key: str
    prefix: str
    key_hash: str


def hash_api_key(raw_key: str) -> str:
    """
    Hash a raw API key using SHA-256.

    Returns the hex digest string for storage/lookup.
    """
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> GeneratedKey:
    """
    Generate a new API key of the form ``spiq_<8 hex>_<secret>``.

    The prefix (``spiq_<8 hex>``) is a non-secret display label; the
    secret is 24 random bytes, URL-safe base64.
    """
    prefix = f"{_KEY_NAMESPACE}{secrets.token_hex(4)}"
    secret = secrets.token_urlsafe(24)
    raw_key = f"{prefix}_{secret}"
    return GeneratedKey(raw_key=raw_key, prefix=prefix, key_hash=hash_api_key(raw_key))


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(_BCRYPT_COST)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt check. Empty hashes (external users) never match."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed hash in the table
        return False

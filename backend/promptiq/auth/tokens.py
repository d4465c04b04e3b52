"""JWT helpers (PyJWT, HS256): issue local tokens, verify or decode incoming ones."""

from __future__ import annotations

import datetime
from typing import Any

import jwt

from promptiq.models.user import User

ALGORITHM = "HS256"


def issue_local_token(user: User, secret: str, expires_hours: int) -> str:
    """Sign a session token for a local user.

    The role/plan claims are informational only: the authenticator always
    re-reads the role from the users table.
    """
    now = datetime.datetime.now(datetime.timezone.utc)
    claims = {
        "sub": user.id,
        "userId": user.id,
        "email": user.email,
        "role": user.role,
        "plan": user.plan,
        "iat": now,
        "exp": now + datetime.timedelta(hours=expires_hours),
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def verify_token(token: str, secret: str) -> dict[str, Any] | None:
    """Verify signature and exp (when present). None on any failure.

    Audience is not checked: identity-provider tokens carry an `aud` we do
    not configure.
    """
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={"verify_aud": False},
        )
    except jwt.PyJWTError:
        return None


def decode_unverified(token: str) -> dict[str, Any] | None:
    """Decode WITHOUT checking the signature. Never use outside dev interop."""
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None

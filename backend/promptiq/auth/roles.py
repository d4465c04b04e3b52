"""Role whitelist and the normalisation rule every auth path goes through."""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"


_ALLOWED = {role.value: role for role in Role}


def validate_role(value: object) -> Role:
    """Normalise any claimed/stored role to the whitelist.

    Trim + uppercase, then membership check. Anything else, including
    None and the empty string, collapses to USER.
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return Role.USER
    return _ALLOWED.get(value.strip().upper(), Role.USER)

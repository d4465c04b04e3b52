"""
FastAPI dependencies for bearer-token authentication.

Flow:
  1. Extract the Bearer token from the Authorization header
  2. Resolve it through the app's TokenAuthenticator
  3. Attach the UserPrincipal to request.state and return it

Variants:
  • authenticate          — 401 on missing/invalid credential
  • authenticate_optional — never rejects; None means guest
  • authorize(*roles)     — gate on request.state.principal.role

Security:
  • Same 401 body for every invalid token, whatever the reason
  • Tokens are NEVER logged
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fastapi import Depends, Header, Request, status

from promptiq.auth.authenticator import TokenAuthenticator
from promptiq.auth.errors import (
    AuthError,
    AuthErrorCode,
    internal_auth_error,
    invalid_token,
    no_token,
    not_authenticated,
)
from promptiq.auth.principal import UserPrincipal
from promptiq.auth.roles import Role
from promptiq.services.credential_store import CredentialStore, get_credential_store

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: str | None) -> str | None:
    """Only 'Bearer <token>' counts as a credential."""
    if not authorization:
        return None
    parts = authorization.split(" ", maxsplit=1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def get_token_authenticator(request: Request) -> TokenAuthenticator:
    return request.app.state.token_authenticator


async def authenticate(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    authenticator: TokenAuthenticator = Depends(get_token_authenticator),
    store: CredentialStore = Depends(get_credential_store),
) -> UserPrincipal:
    """
    Mandatory authentication.

    Usage in routers:
        CurrentUser = Annotated[UserPrincipal, Depends(authenticate)]
    """
    token = extract_bearer_token(authorization)
    if token is None:
        raise no_token()

    try:
        principal = await authenticator.resolve(token, store)
    except Exception as exc:
        logger.exception("Token resolution failed")
        raise internal_auth_error(detail=repr(exc)) from exc

    if principal is None:
        raise invalid_token()

    request.state.principal = principal
    return principal


async def authenticate_optional(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    authenticator: TokenAuthenticator = Depends(get_token_authenticator),
    store: CredentialStore = Depends(get_credential_store),
) -> UserPrincipal | None:
    """Guest-friendly authentication: absent or invalid credential → None."""
    request.state.principal = None
    token = extract_bearer_token(authorization)
    if token is None:
        return None
    try:
        principal = await authenticator.resolve(token, store)
    except Exception:
        logger.exception("Token resolution failed, continuing as guest")
        return None
    request.state.principal = principal
    return principal


def authorize(*allowed_roles: Role | str) -> Callable[[Request], Awaitable[UserPrincipal]]:
    """
    Role gate. Must run after authenticate:

        dependencies=[Depends(authenticate), Depends(authorize(Role.ADMIN))]
    """
    # case-insensitive; an unknown name fails at import time
    allowed = frozenset(Role(role.strip().upper()) for role in allowed_roles)

    async def _check_role(request: Request) -> UserPrincipal:
        principal = getattr(request.state, "principal", None)
        if not isinstance(principal, UserPrincipal):
            raise not_authenticated()
        if principal.role not in allowed:
            raise AuthError(
                status.HTTP_403_FORBIDDEN,
                AuthErrorCode.INSUFFICIENT_ROLE,
                "Insufficient permissions",
            )
        return principal

    return _check_role

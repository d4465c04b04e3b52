"""
Bearer-token resolution: token string → UserPrincipal.

Resolution is an ordered list of strategies; the first one that returns a
principal wins. The order is part of the security posture:

  1. dev shortcut tokens   — "demo-token…" / "admin-token…", fixed principals,
                             never persisted. In PRODUCTION such a token is
                             rejected outright (no fall-through).
  2. local token           — HS256 with JWT_SECRET, user looked up by id,
                             role read from the STORED record. Unknown id
                             falls through to 3 (user migrated to the IdP);
                             a deactivated user is rejected.
  3. external IdP token    — HS256 with EXTERNAL_JWT_SECRET (JWT_SECRET is
                             reused only outside production), then
                             find-or-create by email.
  4. unverified decode     — dev interop only: needs the explicit flag AND a
                             non-production mode. Logged as insecure on
                             every use.

A strategy answers None ("not mine, try the next") or raises TokenRejected
("stop, reject").
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from promptiq.auth.errors import UserAlreadyExistsError
from promptiq.auth.principal import UserPrincipal
from promptiq.auth.roles import Role, validate_role
from promptiq.auth.tokens import decode_unverified, verify_token
from promptiq.core.config import DeploymentMode, Settings
from promptiq.models.user import User
from promptiq.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

DEMO_TOKEN_PREFIX = "demo-token"
ADMIN_TOKEN_PREFIX = "admin-token"

DEMO_PRINCIPAL = UserPrincipal(id="demo-user", email="demo@example.com", role=Role.USER)
ADMIN_PRINCIPAL = UserPrincipal(id="admin-user", email="admin@example.com", role=Role.ADMIN)

Strategy = Callable[[str, CredentialStore], Awaitable[UserPrincipal | None]]


class TokenRejected(Exception):
    """Raised by a strategy to stop resolution with a rejection."""


def first_name_from_email(email: str) -> str:
    """'jane.doe+x@corp.io' → 'Jane'."""
    local = email.split("@", 1)[0]
    for sep in ".+_-":
        local = local.split(sep, 1)[0]
    return local.capitalize() or "User"


class TokenAuthenticator:
    """Resolves bearer tokens. Built once at startup from Settings."""

    def __init__(
        self,
        *,
        mode: DeploymentMode,
        jwt_secret: str = "",
        external_jwt_secret: str = "",
        allow_unverified: bool = False,
        new_user_token_balance: int = 0,
    ) -> None:
        self.mode = mode
        self._jwt_secret = jwt_secret
        self._external_secret = external_jwt_secret
        if not external_jwt_secret and jwt_secret and not self.is_production:
            self._external_secret = jwt_secret
        self._allow_unverified = allow_unverified and not self.is_production
        self._new_user_token_balance = new_user_token_balance

        self.strategies: list[Strategy] = [
            self.resolve_dev_shortcut,
            self.resolve_local_token,
            self.resolve_external_token,
        ]
        if self._allow_unverified:
            logger.warning(
                "ALLOW_UNVERIFIED_EXTERNAL_TOKENS is on — bearer tokens will be "
                "accepted WITHOUT signature verification (development only)"
            )
            self.strategies.append(self.resolve_unverified_token)

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenAuthenticator:
        if settings.is_production and not settings.EXTERNAL_JWT_SECRET:
            logger.info("EXTERNAL_JWT_SECRET not set — external identity tokens disabled")
        return cls(
            mode=settings.deployment_mode,
            jwt_secret=settings.JWT_SECRET,
            external_jwt_secret=settings.EXTERNAL_JWT_SECRET,
            allow_unverified=settings.ALLOW_UNVERIFIED_EXTERNAL_TOKENS,
            new_user_token_balance=settings.EXTERNAL_USER_TOKEN_BALANCE,
        )

    @property
    def is_production(self) -> bool:
        return self.mode is DeploymentMode.PRODUCTION

    async def resolve(self, token: str, store: CredentialStore) -> UserPrincipal | None:
        """Run the strategies in order. None means "reject with 401"."""
        if not token:
            return None
        try:
            for strategy in self.strategies:
                principal = await strategy(token, store)
                if principal is not None:
                    return principal
        except TokenRejected as exc:
            logger.warning("Bearer token rejected: %s", exc)
            return None
        return None

    # ── 1. Dev shortcut ─────────────────────────────────────
    async def resolve_dev_shortcut(
        self, token: str, store: CredentialStore
    ) -> UserPrincipal | None:
        if token.startswith(ADMIN_TOKEN_PREFIX):
            principal = ADMIN_PRINCIPAL
        elif token.startswith(DEMO_TOKEN_PREFIX):
            principal = DEMO_PRINCIPAL
        else:
            return None
        if self.is_production:
            raise TokenRejected("dev shortcut token presented in production")
        return principal

    # ── 2. Local token ──────────────────────────────────────
    async def resolve_local_token(
        self, token: str, store: CredentialStore
    ) -> UserPrincipal | None:
        if not self._jwt_secret:
            return None
        claims = verify_token(token, self._jwt_secret)
        if claims is None:
            return None
        user_id = claims.get("userId") or claims.get("sub")
        if not isinstance(user_id, str) or not user_id:
            return None
        user = await store.find_user_by_id(user_id)
        if user is None:
            logger.debug("Local token for unknown user %s, trying external", user_id)
            return None
        _require_active(user)
        return _principal_for(user)

    # ── 3. External identity provider ───────────────────────
    async def resolve_external_token(
        self, token: str, store: CredentialStore
    ) -> UserPrincipal | None:
        if not self._external_secret:
            return None
        claims = verify_token(token, self._external_secret)
        if claims is None:
            return None
        identity = _identity_from_claims(claims)
        if identity is None:
            return None
        subject, email = identity
        user = await self.find_or_create_external_user(
            store, subject=subject, email=email, role=validate_role(claims.get("role"))
        )
        return _principal_for(user)

    # ── 4. Unverified decode ────────────────────────────────
    async def resolve_unverified_token(
        self, token: str, store: CredentialStore
    ) -> UserPrincipal | None:
        if not self._allow_unverified or self.is_production:
            return None
        claims = decode_unverified(token)
        if claims is None:
            return None
        identity = _identity_from_claims(claims)
        if identity is None:
            return None
        subject, email = identity
        logger.warning(
            "INSECURE: accepted bearer token for %s without signature verification",
            email,
        )
        # unverified claims never grant an elevated role
        user = await self.find_or_create_external_user(
            store, subject=subject, email=email, role=Role.USER
        )
        return _principal_for(user)

    # ── Find-or-create ──────────────────────────────────────
    async def find_or_create_external_user(
        self,
        store: CredentialStore,
        *,
        subject: str,
        email: str,
        role: Role,
    ) -> User:
        """Look up by email; insert when absent; on a lost insert race, re-read.

        A deactivated account raises TokenRejected.
        """
        user = await store.find_user_by_email(email)
        if user is not None:
            _require_active(user)
            return user
        try:
            user = await store.create_user(
                id=subject,
                email=email,
                password_hash="",
                first_name=first_name_from_email(email),
                role=role.value,
                token_balance=self._new_user_token_balance,
            )
            logger.info("Provisioned user %s from external identity", user.id)
            return user
        except UserAlreadyExistsError:
            user = await store.find_user_by_email(email)
            if user is None:
                # conflict was on the id, not the email
                raise
            _require_active(user)
            return user


def _identity_from_claims(claims: dict[str, Any]) -> tuple[str, str] | None:
    subject = claims.get("sub")
    email = claims.get("email")
    if not isinstance(subject, str) or not subject:
        return None
    if not isinstance(email, str) or "@" not in email:
        return None
    return subject, email.strip().lower()


def _require_active(user: User) -> None:
    if not user.is_active:
        raise TokenRejected(f"user {user.id} is deactivated")


def _principal_for(user: User) -> UserPrincipal:
    return UserPrincipal(id=user.id, email=user.email, role=validate_role(user.role))

"""
FastAPI dependencies for API-key (service agent) authentication.

Flow, and the rejection emitted at each step:
  1. Key from X-API-Key header, else ?api_key=     → 401 MISSING_API_KEY
  2. SHA-256 it, look up an active, unexpired row  → 401 INVALID_API_KEY
  3. Origin header vs. the key's allow-list        → 403 ORIGIN_NOT_ALLOWED
  4. Minute window, then day window                → 429 RATE_LIMIT_EXCEEDED
  5. Anything unexpected in 1-4                    → 500 AUTH_ERROR
  6. Attach principal + agent, queue the usage bump as a background task

The bump runs after the response is sent and only when the request got
through every gate, including require_permission: FastAPI drops pending
background tasks when a dependency or handler raises.

Order in request pipeline: API KEY → PERMISSION → ROUTER LOGIC.

Raw keys are NEVER logged; only the non-secret prefix is.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import Awaitable, Callable
from fastapi import BackgroundTasks, Depends, Header, Query, Request, status

from promptiq.auth.errors import AuthError, AuthErrorCode, internal_auth_error
from promptiq.auth.hashing import hash_api_key
from promptiq.auth.principal import AgentContext, ServiceAgentPrincipal
from promptiq.models.api_key import DEFAULT_PERMISSIONS, APIKey
from promptiq.services.credential_store import CredentialStore, get_credential_store
from promptiq.services.rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)


def origin_allowed(origin: str | None, allowed_origins: list[str] | None) -> bool:
    """
    Allow-list match for the request Origin.

    Rules:
      • no Origin header, or an empty/unset list → allowed
      • "*"            → everything
      • "*.example.com" → "https://example.com" and any subdomain
                          ("https://a.example.com"), but NOT
                          "https://notexample.com"
      • anything else  → exact string match
    """
    if not origin or not allowed_origins:
        return True
    for allowed in allowed_origins:
        if allowed == "*":
            return True
        if allowed.startswith("*."):
            domain = allowed[2:]
            host = origin.split("://", 1)[-1]
            if host == domain or host.endswith("." + domain):
                return True
            continue
        if origin == allowed:
            return True
    return False


def get_rate_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.rate_limiter


def _is_eligible(api_key: APIKey, now: datetime.datetime) -> bool:
    """Re-check of the SQL filter, for stores that do not apply it."""
    if not api_key.is_active:
        return False
    return api_key.expires_at is None or api_key.expires_at > now


async def _record_usage(store: CredentialStore, api_key_id: uuid.UUID) -> None:
    """Best-effort usage bump. Errors are logged, never raised."""
    try:
        await store.increment_api_key_usage(api_key_id)
    except Exception:
        logger.exception("Failed to update API key usage for %s", api_key_id)


def _agent_context(api_key: APIKey) -> AgentContext:
    agent = api_key.agent
    return AgentContext(
        id=agent.id,
        name=agent.name,
        slug=agent.slug,
        system_prompt=agent.system_prompt,
        provider=agent.provider,
        model=agent.model,
        temperature=agent.temperature,
        max_tokens=agent.max_tokens,
        welcome_message=agent.welcome_message,
        voice_enabled=agent.voice_enabled,
        voice_id=agent.voice_id,
    )


async def authenticate_api_key(
    request: Request,
    background_tasks: BackgroundTasks,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    api_key_param: str | None = Query(default=None, alias="api_key"),
    origin: str | None = Header(default=None, alias="Origin"),
    store: CredentialStore = Depends(get_credential_store),
    limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
) -> ServiceAgentPrincipal:
    """
    Resolve an API key to a ServiceAgentPrincipal.

    Also sets request.state.principal and request.state.agent.
    """
    raw_key = x_api_key or api_key_param
    if not raw_key:
        raise AuthError(
            status.HTTP_401_UNAUTHORIZED,
            AuthErrorCode.MISSING_API_KEY,
            "API key required",
        )

    try:
        now = datetime.datetime.now(datetime.timezone.utc)
        api_key = await store.find_api_key_by_hash(hash_api_key(raw_key), now)
        if api_key is None or not _is_eligible(api_key, now):
            raise AuthError(
                status.HTTP_401_UNAUTHORIZED,
                AuthErrorCode.INVALID_API_KEY,
                "Invalid or expired API key",
            )

        if not origin_allowed(origin, api_key.allowed_origins):
            logger.info("Origin %r refused for key %s", origin, api_key.key_prefix)
            raise AuthError(
                status.HTTP_403_FORBIDDEN,
                AuthErrorCode.ORIGIN_NOT_ALLOWED,
                "Origin not allowed",
            )

        decision = limiter.hit(
            str(api_key.id),
            api_key.rate_limit_per_minute,
            api_key.rate_limit_per_day,
        )
        if not decision.allowed:
            label = "per minute" if decision.window == "minute" else "daily"
            raise AuthError(
                status.HTTP_429_TOO_MANY_REQUESTS,
                AuthErrorCode.RATE_LIMIT_EXCEEDED,
                f"Rate limit exceeded ({label})",
                retry_after=decision.retry_after,
            )

        principal = ServiceAgentPrincipal(
            api_key_id=api_key.id,
            user_id=api_key.user_id,
            agent_id=api_key.agent_id,
            permissions=frozenset(api_key.permissions or DEFAULT_PERMISSIONS),
            rate_limit_per_minute=api_key.rate_limit_per_minute,
            rate_limit_per_day=api_key.rate_limit_per_day,
        )
        agent = _agent_context(api_key)
    except AuthError:
        raise
    except Exception as exc:
        logger.exception("API key authentication error")
        raise internal_auth_error(detail=repr(exc)) from exc

    background_tasks.add_task(_record_usage, store, api_key.id)

    request.state.principal = principal
    request.state.agent = agent
    return principal


def require_permission(permission: str) -> Callable[[Request], Awaitable[ServiceAgentPrincipal]]:
    """
    Permission gate. Must run after authenticate_api_key:

        dependencies=[Depends(authenticate_api_key), Depends(require_permission("chat"))]
    """

    async def _check_permission(request: Request) -> ServiceAgentPrincipal:
        principal = getattr(request.state, "principal", None)
        if not isinstance(principal, ServiceAgentPrincipal):
            raise AuthError(
                status.HTTP_401_UNAUTHORIZED,
                AuthErrorCode.NOT_AUTHENTICATED,
                "Authentication required",
            )
        if permission not in principal.permissions:
            raise AuthError(
                status.HTTP_403_FORBIDDEN,
                AuthErrorCode.PERMISSION_DENIED,
                f"Permission '{permission}' required",
            )
        return principal

    return _check_permission

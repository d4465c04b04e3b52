"""
Auth-specific errors and the JSON rejection envelope.

Every rejection produced by the auth layer has the same wire shape:

    {"success": false, "error": "<message>", "code": "<CODE>"}

with "retryAfter" (whole seconds) added for rate-limit rejections. The
message is deliberately coarse: a client only learns "invalid token",
never whether the user was missing or the signature was bad.
"""

from __future__ import annotations

from enum import Enum

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AuthErrorCode(str, Enum):
    NO_TOKEN = "NO_TOKEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    INSUFFICIENT_ROLE = "INSUFFICIENT_ROLE"
    MISSING_API_KEY = "MISSING_API_KEY"
    INVALID_API_KEY = "INVALID_API_KEY"
    ORIGIN_NOT_ALLOWED = "ORIGIN_NOT_ALLOWED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    AUTH_ERROR = "AUTH_ERROR"


class AuthError(Exception):
    """Raised inside auth dependencies; rendered by auth_error_handler.

    The message is client-facing. Anything diagnostic goes to the log,
    or into `detail`, which is only rendered in DEBUG mode.
    """

    def __init__(
        self,
        status_code: int,
        code: AuthErrorCode,
        message: str,
        retry_after: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.retry_after = retry_after
        self.detail = detail

    def to_body(self, include_detail: bool = False) -> dict:
        body: dict = {
            "success": False,
            "error": self.message,
            "code": self.code.value,
        }
        if self.retry_after is not None:
            body["retryAfter"] = self.retry_after
        if include_detail and self.detail:
            body["detail"] = self.detail
        return body


class UserAlreadyExistsError(Exception):
    """Unique-constraint violation on users.email / users.id.

    The ONLY signal the find-or-create path treats as "someone else won
    the race"; every other store error propagates.
    """


class AgentSlugTakenError(Exception):
    """Unique-constraint violation on agents.slug."""


# ── Common rejections ───────────────────────────────────────
def invalid_token() -> AuthError:
    return AuthError(
        status.HTTP_401_UNAUTHORIZED,
        AuthErrorCode.INVALID_TOKEN,
        "Invalid token",
    )


def no_token() -> AuthError:
    return AuthError(
        status.HTTP_401_UNAUTHORIZED,
        AuthErrorCode.NO_TOKEN,
        "Access denied. No token provided.",
    )


def not_authenticated() -> AuthError:
    return AuthError(
        status.HTTP_401_UNAUTHORIZED,
        AuthErrorCode.NOT_AUTHENTICATED,
        "Authentication required",
    )


def internal_auth_error(detail: str | None = None) -> AuthError:
    return AuthError(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        AuthErrorCode.AUTH_ERROR,
        "Authentication failed",
        detail=detail,
    )


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """FastAPI exception handler — registered in create_app()."""
    include_detail = bool(getattr(request.app.state, "debug", False))
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    elif exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body(include_detail=include_detail),
        headers=headers,
    )

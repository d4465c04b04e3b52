"""
Account router — local email/password accounts.

POST /auth/register  — create a local account, return a session token
POST /auth/login     — verify password, bump last_login_at, return a token
GET  /auth/me        — the stored record behind the current bearer token
GET  /auth/session   — the resolved principal, or null for guests
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from promptiq.auth.dependencies import authenticate, authenticate_optional
from promptiq.auth.errors import UserAlreadyExistsError
from promptiq.auth.hashing import hash_password, verify_password
from promptiq.auth.principal import UserPrincipal
from promptiq.auth.roles import Role
from promptiq.auth.tokens import issue_local_token
from promptiq.core.config import Settings
from promptiq.models.user import User
from promptiq.schemas.auth import (
    LoginRequest,
    PrincipalOut,
    RegisterRequest,
    TokenResponse,
    UserOut,
)
from promptiq.services.credential_store import CredentialStore, get_credential_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


Store = Annotated[CredentialStore, Depends(get_credential_store)]
AppSettings = Annotated[Settings, Depends(get_settings)]
CurrentUser = Annotated[UserPrincipal, Depends(authenticate)]
MaybeUser = Annotated[UserPrincipal | None, Depends(authenticate_optional)]

_INVALID_CREDENTIALS = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid credentials",
)


def _token_response(user: User, settings: Settings) -> TokenResponse:
    if not settings.JWT_SECRET:
        logger.error("JWT_SECRET is not configured — cannot issue tokens")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error",
        )
    token = issue_local_token(user, settings.JWT_SECRET, settings.JWT_EXPIRES_HOURS)
    return TokenResponse(
        token=token,
        expires_in=settings.JWT_EXPIRES_HOURS * 3600,
        user=UserOut.model_validate(user),
    )


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a local account",
)
async def register(payload: RegisterRequest, store: Store, settings: AppSettings) -> TokenResponse:
    email = payload.email.strip().lower()
    if await store.find_user_by_email(email) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

    password_hash = await run_in_threadpool(hash_password, payload.password)
    try:
        user = await store.create_user(
            email=email,
            password_hash=password_hash,
            first_name=payload.first_name,
            last_name=payload.last_name,
            role=Role.USER.value,
            token_balance=0,
        )
    except UserAlreadyExistsError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")

    logger.info("Registered user %s", user.id)
    return _token_response(user, settings)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Exchange email and password for a session token",
)
async def login(payload: LoginRequest, store: Store, settings: AppSettings) -> TokenResponse:
    user = await store.find_user_by_email(payload.email.strip().lower())
    if user is None or not user.is_active:
        raise _INVALID_CREDENTIALS

    if not await run_in_threadpool(verify_password, payload.password, user.password_hash):
        raise _INVALID_CREDENTIALS

    await store.touch_last_login(user)
    return _token_response(user, settings)


@router.get("/me", response_model=UserOut, summary="Current user record")
async def me(principal: CurrentUser, store: Store) -> User:
    user = await store.find_user_by_id(principal.id)
    if user is None:
        # dev shortcut principals have no stored record
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get(
    "/session",
    response_model=PrincipalOut | None,
    summary="Resolved principal for the current request (null for guests)",
)
async def session(principal: MaybeUser) -> PrincipalOut | None:
    if principal is None:
        return None
    return PrincipalOut(id=principal.id, email=principal.email, role=principal.role)

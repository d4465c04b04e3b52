"""
Pydantic v2 schemas for account routes.

The password hash never leaves the server: UserOut is the only user shape
returned to clients.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from promptiq.auth.roles import Role


class RegisterRequest(BaseModel):
    """Payload accepted by POST /auth/register."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str | None
    last_name: str | None
    role: Role
    plan: str
    token_balance: int
    last_login_at: datetime | None = None


class TokenResponse(BaseModel):
    token: str
    expires_in: int = Field(..., description="Seconds until the token expires.")
    user: UserOut


class PrincipalOut(BaseModel):
    """The identity the current request resolved to."""

    id: str
    email: str
    role: Role


class RoleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Role

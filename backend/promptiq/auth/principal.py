"""
Principals — the identity attached to one request after authentication.

Instances are built per request and never cached across requests. Routes
receive them through Depends(...); they are also stored on
``request.state.principal`` so that gate dependencies (authorize,
require_permission) can inspect whatever ran before them.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from promptiq.auth.roles import Role


@dataclass(frozen=True, slots=True)
class UserPrincipal:
    """An authenticated end user.

    Attributes:
        id:    Local user id (may equal an external subject id).
        email: Account email.
        role:  Always a whitelisted Role.
    """

    id: str
    email: str
    role: Role


@dataclass(frozen=True, slots=True)
class ServiceAgentPrincipal:
    """An integration authenticated with an API key."""

    api_key_id: uuid.UUID
    user_id: str
    agent_id: uuid.UUID
    permissions: frozenset[str]
    rate_limit_per_minute: int
    rate_limit_per_day: int


@dataclass(frozen=True, slots=True)
class AgentContext:
    """Public configuration of the agent behind an API key."""

    id: uuid.UUID
    name: str
    slug: str
    system_prompt: str
    provider: str
    model: str
    temperature: float
    max_tokens: int
    welcome_message: str | None
    voice_enabled: bool
    voice_id: str | None

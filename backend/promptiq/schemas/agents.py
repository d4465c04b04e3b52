"""
Pydantic v2 schemas for agents and their API keys.

Separation:
  • APIKeyCreated — returned exactly once, carries the raw key.
  • APIKeySummary — every later view; prefix only, never the raw key.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from promptiq.models.api_key import DEFAULT_RATE_LIMIT_PER_DAY, DEFAULT_RATE_LIMIT_PER_MINUTE


class AgentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=2, max_length=100)
    slug: str = Field(..., min_length=2, max_length=120, pattern=r"^[a-z0-9][a-z0-9-]*$")
    system_prompt: str = Field(default="", max_length=20_000)
    provider: str = Field(default="openai", max_length=50)
    model: str = Field(default="gpt-4o-mini", max_length=100)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1, le=32_000)
    welcome_message: str | None = Field(default=None, max_length=500)
    voice_enabled: bool = False
    voice_id: str | None = Field(default=None, max_length=100)


class AgentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    slug: str
    provider: str
    model: str
    is_active: bool


class APIKeyCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=100)
    permissions: list[str] = Field(default_factory=lambda: ["chat"], min_length=1)
    allowed_origins: list[str] | None = Field(
        default=None,
        examples=[["https://app.example.com", "*.example.com"]],
        description="Origins allowed to use this key. Empty or null allows all.",
    )
    rate_limit_per_minute: int = Field(default=DEFAULT_RATE_LIMIT_PER_MINUTE, ge=1)
    rate_limit_per_day: int = Field(default=DEFAULT_RATE_LIMIT_PER_DAY, ge=1)
    expires_at: datetime | None = None


class APIKeySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    key_prefix: str
    permissions: list[str]
    allowed_origins: list[str] | None
    rate_limit_per_minute: int
    rate_limit_per_day: int
    is_active: bool
    expires_at: datetime | None
    last_used_at: datetime | None
    usage_count: int


class APIKeyCreated(APIKeySummary):
    api_key: str = Field(..., description="Raw key. Shown once, never retrievable again.")


class AgentCreated(BaseModel):
    agent: AgentOut
    api_key: APIKeyCreated


class EmbedConfig(BaseModel):
    """Public agent configuration handed to the embed widget."""

    agent_id: uuid.UUID
    name: str
    slug: str
    provider: str
    model: str
    welcome_message: str | None
    voice_enabled: bool
    voice_id: str | None


class ServicePrincipalOut(BaseModel):
    api_key_id: uuid.UUID
    agent_id: uuid.UUID
    permissions: list[str]
    rate_limit_per_minute: int
    rate_limit_per_day: int

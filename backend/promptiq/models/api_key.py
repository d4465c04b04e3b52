"""
API key model — service credential bound to one agent.

Security notes:
  • Raw API keys are NEVER stored. Only a SHA-256 hash is persisted.
  • `key_prefix` (e.g. "spiq_1a2b3c4d") is the non-secret label shown to
    the owner and in logs.
  • `is_active` allows revocation without deletion (audit trail).
  • `last_used_at` / `usage_count` are bumped best-effort after each
    authorized request and may lag behind reality.
"""

import datetime
import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from promptiq.core.database import Base
from promptiq.models.agent import Agent

DEFAULT_PERMISSIONS = ["chat"]
DEFAULT_RATE_LIMIT_PER_MINUTE = 60
DEFAULT_RATE_LIMIT_PER_DAY = 10_000


class APIKey(Base):
    """Hashed API key belonging to an agent."""

    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="Default API Key")
    key_prefix: Mapped[str] = mapped_column(String(20), nullable=False)
    key_hash: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    # ── Policy ──────────────────────────────────────────────
    permissions: Mapped[list[str]] = mapped_column(
        JSONB,
        nullable=False,
        default=lambda: list(DEFAULT_PERMISSIONS),
    )
    # NULL or [] → every origin is allowed
    allowed_origins: Mapped[list[str] | None] = mapped_column(JSONB, nullable=True)
    rate_limit_per_minute: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_RATE_LIMIT_PER_MINUTE,
    )
    rate_limit_per_day: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_RATE_LIMIT_PER_DAY,
    )

    # ── Lifecycle ───────────────────────────────────────────
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )
    expires_at: Mapped[datetime.datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
    )
    last_used_at: Mapped[datetime.datetime | None] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
    )
    usage_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    agent: Mapped[Agent] = relationship(lazy="raise")

    def __repr__(self) -> str:
        return (
            f"<APIKey id={self.id!s:.8} prefix={self.key_prefix!r} "
            f"active={self.is_active}>"
        )

"""
Credential store — the persistence collaborator of the auth layer.

The authenticators only see the CredentialStore protocol; the concrete
SqlCredentialStore wraps one request-scoped AsyncSession. Tests swap in an
in-memory implementation via FastAPI dependency overrides.

Rules:
  • create_user() turns IntegrityError into UserAlreadyExistsError and
    NOTHING else — other failures propagate untouched.
  • create_agent() turns IntegrityError into AgentSlugTakenError.
  • find_api_key_by_hash() applies the eligibility filter in SQL:
    is_active AND (expires_at IS NULL OR expires_at > now).
  • increment_api_key_usage() opens its own detached session, because it
    runs after the request session may already be closed.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import Any, Protocol

from fastapi import Depends
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from promptiq.auth.errors import AgentSlugTakenError, UserAlreadyExistsError
from promptiq.core.database import detached_session, get_db_session
from promptiq.models.agent import Agent
from promptiq.models.api_key import APIKey
from promptiq.models.user import User

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    async def find_user_by_id(self, user_id: str) -> User | None: ...

    async def find_user_by_email(self, email: str) -> User | None: ...

    async def create_user(self, **fields: Any) -> User: ...

    async def touch_last_login(self, user: User) -> None: ...

    async def set_user_role(self, user_id: str, role: str) -> User | None: ...

    async def find_api_key_by_hash(
        self, key_hash: str, now: datetime.datetime
    ) -> APIKey | None: ...

    async def increment_api_key_usage(self, api_key_id: uuid.UUID) -> None: ...

    async def create_agent(self, **fields: Any) -> Agent: ...

    async def find_agent(self, agent_id: uuid.UUID, owner_id: str) -> Agent | None: ...

    async def create_api_key(self, **fields: Any) -> APIKey: ...

    async def list_api_keys(self, agent_id: uuid.UUID) -> list[APIKey]: ...

    async def deactivate_api_key(
        self, key_id: uuid.UUID, agent_id: uuid.UUID, owner_id: str
    ) -> bool: ...


class SqlCredentialStore:
    """CredentialStore over one AsyncSession (caller owns its lifecycle)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ── Users ───────────────────────────────────────────────
    async def find_user_by_id(self, user_id: str) -> User | None:
        return await self._session.get(User, user_id)

    async def find_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_user(self, **fields: Any) -> User:
        user = User(**fields)
        self._session.add(user)
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise UserAlreadyExistsError(fields.get("email", "")) from exc
        await self._session.refresh(user)
        return user

    async def touch_last_login(self, user: User) -> None:
        user.last_login_at = datetime.datetime.now(datetime.timezone.utc)
        await self._session.commit()

    async def set_user_role(self, user_id: str, role: str) -> User | None:
        user = await self.find_user_by_id(user_id)
        if user is None:
            return None
        user.role = role
        await self._session.commit()
        return user

    # ── API keys ────────────────────────────────────────────
    async def find_api_key_by_hash(
        self, key_hash: str, now: datetime.datetime
    ) -> APIKey | None:
        stmt = (
            select(APIKey)
            .options(selectinload(APIKey.agent))
            .where(
                APIKey.key_hash == key_hash,
                APIKey.is_active.is_(True),
                or_(APIKey.expires_at.is_(None), APIKey.expires_at > now),
            )
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def increment_api_key_usage(self, api_key_id: uuid.UUID) -> None:
        stmt = (
            update(APIKey)
            .where(APIKey.id == api_key_id)
            .values(
                last_used_at=datetime.datetime.now(datetime.timezone.utc),
                usage_count=APIKey.usage_count + 1,
            )
        )
        async with detached_session() as session:
            await session.execute(stmt)

    async def create_api_key(self, **fields: Any) -> APIKey:
        api_key = APIKey(**fields)
        self._session.add(api_key)
        await self._session.commit()
        await self._session.refresh(api_key)
        return api_key

    async def list_api_keys(self, agent_id: uuid.UUID) -> list[APIKey]:
        stmt = (
            select(APIKey)
            .where(APIKey.agent_id == agent_id)
            .order_by(APIKey.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def deactivate_api_key(
        self, key_id: uuid.UUID, agent_id: uuid.UUID, owner_id: str
    ) -> bool:
        stmt = (
            update(APIKey)
            .where(
                APIKey.id == key_id,
                APIKey.agent_id == agent_id,
                APIKey.user_id == owner_id,
                APIKey.is_active.is_(True),
            )
            .values(is_active=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount > 0

    # ── Agents ──────────────────────────────────────────────
    async def create_agent(self, **fields: Any) -> Agent:
        agent = Agent(**fields)
        self._session.add(agent)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            await self._session.rollback()
            raise AgentSlugTakenError(fields.get("slug", "")) from exc
        return agent

    async def find_agent(self, agent_id: uuid.UUID, owner_id: str) -> Agent | None:
        stmt = select(Agent).where(Agent.id == agent_id, Agent.user_id == owner_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


async def get_credential_store(
    session: AsyncSession = Depends(get_db_session),
) -> CredentialStore:
    """FastAPI dependency — overridden in tests."""
    return SqlCredentialStore(session)

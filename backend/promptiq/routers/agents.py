"""
Agents router — agent provisioning and API-key lifecycle.

POST   /agents                          — create agent + default key (409 on a taken slug)
POST   /agents/{agent_id}/api-keys      — issue another key
GET    /agents/{agent_id}/api-keys      — list keys (prefix only)
DELETE /agents/{agent_id}/api-keys/{id} — revoke (deactivate, not delete)

All routes need a bearer token; agents are scoped to their owner.
Raw keys appear in exactly one response each and are never stored.
"""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from promptiq.auth.dependencies import authenticate
from promptiq.auth.errors import AgentSlugTakenError
from promptiq.auth.hashing import generate_api_key
from promptiq.auth.principal import UserPrincipal
from promptiq.models.agent import Agent
from promptiq.models.api_key import APIKey
from promptiq.schemas.agents import (
    AgentCreate,
    AgentCreated,
    AgentOut,
    APIKeyCreate,
    APIKeyCreated,
    APIKeySummary,
)
from promptiq.services.credential_store import CredentialStore, get_credential_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Agents"])

Store = Annotated[CredentialStore, Depends(get_credential_store)]
CurrentUser = Annotated[UserPrincipal, Depends(authenticate)]

DEFAULT_KEY_PERMISSIONS = ["chat", "history", "feedback"]


def _created(api_key: APIKey, raw_key: str) -> APIKeyCreated:
    summary = APIKeySummary.model_validate(api_key)
    return APIKeyCreated(**summary.model_dump(), api_key=raw_key)


async def _owned_agent(store: CredentialStore, agent_id: uuid.UUID, owner: UserPrincipal) -> Agent:
    agent = await store.find_agent(agent_id, owner.id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Agent not found")
    return agent


@router.post(
    "",
    response_model=AgentCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create an agent with its default API key",
)
async def create_agent(payload: AgentCreate, store: Store, principal: CurrentUser) -> AgentCreated:
    try:
        agent = await store.create_agent(user_id=principal.id, **payload.model_dump())
    except AgentSlugTakenError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Slug already in use")
    generated = generate_api_key()
    api_key = await store.create_api_key(
        user_id=principal.id,
        agent_id=agent.id,
        name="Default API Key",
        key_prefix=generated.prefix,
        key_hash=generated.key_hash,
        permissions=list(DEFAULT_KEY_PERMISSIONS),
    )
    logger.info("Created agent %s with key %s", agent.id, generated.prefix)
    return AgentCreated(agent=AgentOut.model_validate(agent), api_key=_created(api_key, generated.raw_key))


@router.post(
    "/{agent_id}/api-keys",
    response_model=APIKeyCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a new API key for an agent",
)
async def create_api_key(
    agent_id: uuid.UUID,
    payload: APIKeyCreate,
    store: Store,
    principal: CurrentUser,
) -> APIKeyCreated:
    agent = await _owned_agent(store, agent_id, principal)
    generated = generate_api_key()
    api_key = await store.create_api_key(
        user_id=principal.id,
        agent_id=agent.id,
        key_prefix=generated.prefix,
        key_hash=generated.key_hash,
        **payload.model_dump(),
    )
    logger.info("Issued key %s for agent %s", generated.prefix, agent.id)
    return _created(api_key, generated.raw_key)


@router.get(
    "/{agent_id}/api-keys",
    response_model=list[APIKeySummary],
    summary="List an agent's API keys",
)
async def list_api_keys(agent_id: uuid.UUID, store: Store, principal: CurrentUser) -> list[APIKey]:
    agent = await _owned_agent(store, agent_id, principal)
    return await store.list_api_keys(agent.id)


@router.delete(
    "/{agent_id}/api-keys/{key_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke an API key",
)
async def revoke_api_key(
    agent_id: uuid.UUID,
    key_id: uuid.UUID,
    store: Store,
    principal: CurrentUser,
) -> None:
    revoked = await store.deactivate_api_key(key_id, agent_id, principal.id)
    if not revoked:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API key not found")
    logger.info("Revoked key %s of agent %s", key_id, agent_id)

"""
Embed router — endpoints called by the widget with an agent API key.

GET /embed/config — agent configuration (needs the "chat" permission)
GET /embed/whoami — the service principal the key resolved to
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from promptiq.auth.api_keys import authenticate_api_key, require_permission
from promptiq.auth.principal import AgentContext, ServiceAgentPrincipal
from promptiq.schemas.agents import EmbedConfig, ServicePrincipalOut

router = APIRouter(tags=["Embed"], dependencies=[Depends(authenticate_api_key)])

ServiceAgent = Annotated[ServiceAgentPrincipal, Depends(authenticate_api_key)]


@router.get(
    "/config",
    response_model=EmbedConfig,
    dependencies=[Depends(require_permission("chat"))],
    summary="Public configuration of the agent behind the API key",
)
async def embed_config(request: Request) -> EmbedConfig:
    agent: AgentContext = request.state.agent
    return EmbedConfig(
        agent_id=agent.id,
        name=agent.name,
        slug=agent.slug,
        provider=agent.provider,
        model=agent.model,
        welcome_message=agent.welcome_message,
        voice_enabled=agent.voice_enabled,
        voice_id=agent.voice_id,
    )


@router.get("/whoami", response_model=ServicePrincipalOut)
async def whoami(principal: ServiceAgent) -> ServicePrincipalOut:
    return ServicePrincipalOut(
        api_key_id=principal.api_key_id,
        agent_id=principal.agent_id,
        permissions=sorted(principal.permissions),
        rate_limit_per_minute=principal.rate_limit_per_minute,
        rate_limit_per_day=principal.rate_limit_per_day,
    )

"""Agent registry endpoints."""

from typing import Any

from fastapi import APIRouter, Body, Query

from llmchat.api.dependencies import AgentServiceDep, ChatProxyDep
from llmchat.api.responses import success_response


router = APIRouter()


def _dump(model: Any) -> Any:
    return model.model_dump(by_alias=True, exclude_none=True)


@router.get("")
async def list_agents(
    agent_service: AgentServiceDep,
    include_inactive: bool = Query(False, alias="includeInactive"),
) -> dict[str, Any]:
    """List active agents, or every agent with ``includeInactive=true``."""
    agents = (
        await agent_service.get_all_agents()
        if include_inactive
        else await agent_service.get_available_agents()
    )
    return success_response([_dump(agent) for agent in agents], total=len(agents))


@router.post("/reload")
async def reload_agents(agent_service: AgentServiceDep) -> dict[str, Any]:
    configs = await agent_service.reload_agents()
    return success_response(
        {
            "totalAgents": len(configs),
            "activeAgents": sum(1 for config in configs if config.is_active),
        },
        message="Agent configuration reloaded",
    )


@router.get("/{agent_id}")
async def get_agent(agent_id: str, agent_service: AgentServiceDep) -> dict[str, Any]:
    config = await agent_service.require_agent(agent_id)
    return success_response(_dump(config.to_public()))


@router.get("/{agent_id}/status")
async def get_agent_status(
    agent_id: str, agent_service: AgentServiceDep
) -> dict[str, Any]:
    health = await agent_service.check_agent_health(agent_id)
    return success_response(_dump(health))


@router.get("/{agent_id}/validate")
async def validate_agent(
    agent_id: str, agent_service: AgentServiceDep, chat_proxy: ChatProxyDep
) -> dict[str, Any]:
    """Report whether the agent's provider accepts its configuration."""
    is_valid = await chat_proxy.validate_agent_config(agent_id)
    config = await agent_service.get_agent(agent_id)
    return success_response(
        {
            "agentId": agent_id,
            "isValid": is_valid,
            "exists": config is not None,
            "isActive": bool(config and config.is_active),
        }
    )


@router.put("/{agent_id}")
@router.post("/{agent_id}/update")
async def update_agent(
    agent_id: str,
    agent_service: AgentServiceDep,
    updates: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    """Merge ``updates`` into the stored agent and persist the agents file."""
    updated = await agent_service.update_agent(agent_id, updates)
    return success_response(_dump(updated.to_public()))

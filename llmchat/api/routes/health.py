"""Health check endpoints for the LLMChat gateway.

- /health/live: liveness probe (process is up)
- /health/ready: readiness probe (agent registry can be loaded)
- /health: detailed diagnostics including the event dispatcher

Responses follow the IETF Health Check Response Format draft.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Response, status

from llmchat import __version__
from llmchat.api.dependencies import AgentServiceDep, DispatcherDep
from llmchat.core.errors import ConfigurationError
from llmchat.core.logging import get_logger
from llmchat.services.agent_config import AgentConfigService


router = APIRouter()
logger = get_logger(__name__)

SERVICE_ID = "llmchat-gateway"


def _health_headers(response: Response) -> None:
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    response.headers["Content-Type"] = "application/health+json"


async def _check_agents(agent_service: AgentConfigService) -> dict[str, Any]:
    now = datetime.now(UTC).isoformat()
    try:
        agents = await agent_service.load_agents()
    except ConfigurationError as e:
        return {
            "componentId": "agent-registry",
            "componentType": "datastore",
            "status": "fail",
            "time": now,
            "output": e.message,
        }
    return {
        "componentId": "agent-registry",
        "componentType": "datastore",
        "status": "pass",
        "time": now,
        "observedValue": sum(1 for agent in agents if agent.is_active),
        "observedUnit": "active_agents",
    }


@router.get("/health/live")
async def liveness_probe(response: Response) -> dict[str, Any]:
    """Liveness probe: only verifies the process is serving requests."""
    _health_headers(response)
    logger.debug("liveness_probe_request")
    return {
        "status": "pass",
        "version": __version__,
        "output": "Application process is running",
    }


@router.get("/health/ready")
async def readiness_probe(
    response: Response, agent_service: AgentServiceDep
) -> dict[str, Any]:
    """Readiness probe: the agent registry must be readable."""
    _health_headers(response)
    logger.debug("readiness_probe_request")

    check = await _check_agents(agent_service)
    if check["status"] == "fail":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {
            "status": "fail",
            "version": __version__,
            "output": check["output"],
        }
    return {
        "status": "pass",
        "version": __version__,
        "output": "Service is ready to accept traffic",
    }


@router.get("/health")
async def detailed_health_check(
    response: Response,
    agent_service: AgentServiceDep,
    dispatcher: DispatcherDep,
) -> dict[str, Any]:
    """Detailed diagnostics for the agent registry and event export."""
    _health_headers(response)
    logger.debug("detailed_health_check_request")

    current_time = datetime.now(UTC).isoformat()
    agents_check = await _check_agents(agent_service)
    dispatcher_stats = dispatcher.stats()

    # Failed export batches degrade the service but do not fail it
    overall_status = "pass"
    if agents_check["status"] == "fail":
        overall_status = "fail"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif dispatcher_stats["failed_batches"]:
        overall_status = "warn"

    return {
        "status": overall_status,
        "version": __version__,
        "serviceId": SERVICE_ID,
        "description": "LLMChat gateway",
        "time": current_time,
        "checks": {
            "agents:registry": [agents_check],
            "observability:dispatcher": [
                {
                    "componentId": "observability-dispatcher",
                    "componentType": "component",
                    "status": "warn" if dispatcher_stats["failed_batches"] else "pass",
                    "time": current_time,
                    "output": "enabled"
                    if dispatcher_stats["enabled"]
                    else "disabled",
                    "details": dispatcher_stats,
                }
            ],
        },
    }

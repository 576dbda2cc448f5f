"""Shared dependencies for the LLMChat gateway API."""

from typing import Annotated, Any

from fastapi import Depends, Request

from llmchat.config.settings import Settings
from llmchat.core.errors import ServiceUnavailableError
from llmchat.core.logging import get_logger
from llmchat.observability.dispatcher import ObservabilityDispatcher
from llmchat.services.agent_config import AgentConfigService
from llmchat.services.chat_init import ChatInitService
from llmchat.services.chat_proxy import ChatProxyService
from llmchat.services.fastgpt_session import FastGPTSessionService


logger = get_logger(__name__)


def _from_state(request: Request, name: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        logger.error("service_missing_on_app_state", service=name, category="lifecycle")
        raise ServiceUnavailableError(f"{name} is not initialized")
    return service


def get_cached_settings(request: Request) -> Settings:
    """Get the settings the application was created with."""
    settings: Settings = _from_state(request, "settings")
    return settings


def get_agent_service(request: Request) -> AgentConfigService:
    service: AgentConfigService = _from_state(request, "agent_service")
    return service


def get_chat_proxy(request: Request) -> ChatProxyService:
    service: ChatProxyService = _from_state(request, "chat_proxy")
    return service


def get_chat_init(request: Request) -> ChatInitService:
    service: ChatInitService = _from_state(request, "chat_init")
    return service


def get_session_service(request: Request) -> FastGPTSessionService:
    service: FastGPTSessionService = _from_state(request, "session_service")
    return service


def get_dispatcher(request: Request) -> ObservabilityDispatcher:
    dispatcher: ObservabilityDispatcher = _from_state(request, "dispatcher")
    return dispatcher


SettingsDep = Annotated[Settings, Depends(get_cached_settings)]
AgentServiceDep = Annotated[AgentConfigService, Depends(get_agent_service)]
ChatProxyDep = Annotated[ChatProxyService, Depends(get_chat_proxy)]
ChatInitDep = Annotated[ChatInitService, Depends(get_chat_init)]
SessionServiceDep = Annotated[FastGPTSessionService, Depends(get_session_service)]
DispatcherDep = Annotated[ObservabilityDispatcher, Depends(get_dispatcher)]

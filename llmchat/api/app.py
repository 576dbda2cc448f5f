"""FastAPI application factory for the LLMChat gateway."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing_extensions import TypedDict

from llmchat import __version__
from llmchat.api.middleware.errors import setup_error_handlers
from llmchat.api.middleware.request_id import RequestIDMiddleware
from llmchat.api.routes.agents import router as agents_router
from llmchat.api.routes.chat import router as chat_router
from llmchat.api.routes.health import router as health_router
from llmchat.api.routes.history import router as history_router
from llmchat.config.settings import Settings, get_settings
from llmchat.core.errors import ConfigurationError
from llmchat.core.http_client import HTTPClientFactory
from llmchat.core.logging import get_logger, setup_logging
from llmchat.observability.chat_log import ChatLogService
from llmchat.observability.dispatcher import ObservabilityDispatcher
from llmchat.services.agent_config import AgentConfigService
from llmchat.services.chat_init import ChatInitService
from llmchat.services.chat_proxy import ChatProxyService
from llmchat.services.fastgpt_session import FastGPTSessionService


logger = get_logger(__name__)


class LifecycleComponent(TypedDict):
    name: str
    startup: Callable[[FastAPI, Settings], Awaitable[None]] | None
    shutdown: Callable[[FastAPI], Awaitable[None]] | None


async def setup_dispatcher_startup(app: FastAPI, settings: Settings) -> None:
    """Create and start the observability event dispatcher."""
    dispatcher = ObservabilityDispatcher.from_settings(settings.observability)
    await dispatcher.start()
    app.state.dispatcher = dispatcher


async def setup_dispatcher_shutdown(app: FastAPI) -> None:
    """Drain queued events and close the exporter client."""
    dispatcher: ObservabilityDispatcher | None = getattr(app.state, "dispatcher", None)
    if dispatcher is not None:
        await dispatcher.shutdown()


async def setup_http_client_startup(app: FastAPI, settings: Settings) -> None:
    app.state.http_client = HTTPClientFactory.create_upstream_client(settings)


async def setup_http_client_shutdown(app: FastAPI) -> None:
    client = getattr(app.state, "http_client", None)
    if client is not None:
        await client.aclose()
        logger.debug("http_client_shutdown_completed", category="lifecycle")


async def setup_services_startup(app: FastAPI, settings: Settings) -> None:
    """Wire the chat log, agent registry and chat services onto ``app.state``."""
    chat_log = ChatLogService(
        settings.logging, dispatcher=getattr(app.state, "dispatcher", None)
    )
    agent_service = AgentConfigService.from_settings(settings.agents)
    app.state.chat_log = chat_log
    app.state.agent_service = agent_service
    app.state.chat_proxy = ChatProxyService(
        agent_service,
        app.state.http_client,
        chat_log=chat_log,
        request_timeout=settings.http.request_timeout,
    )
    app.state.chat_init = ChatInitService(
        agent_service,
        app.state.http_client,
        settings.chat,
        request_timeout=settings.http.request_timeout,
    )
    app.state.session_service = FastGPTSessionService(
        agent_service,
        app.state.http_client,
        settings.chat,
        request_timeout=settings.http.request_timeout,
    )


async def load_agents_startup(app: FastAPI, settings: Settings) -> None:
    """Warm the agent cache; a broken agents file is reported, not fatal."""
    agent_service: AgentConfigService = app.state.agent_service
    try:
        agents = await agent_service.load_agents()
    except ConfigurationError as e:
        logger.warning(
            "agents_load_failed",
            config_path=str(agent_service.config_path),
            error=e.message,
            category="config",
        )
        return
    logger.info(
        "agent_registry_ready",
        total=len(agents),
        active=sum(1 for agent in agents if agent.is_active),
        category="config",
    )


# Startup runs in order, shutdown in reverse
LIFECYCLE_COMPONENTS: list[LifecycleComponent] = [
    {
        "name": "Observability Dispatcher",
        "startup": setup_dispatcher_startup,
        "shutdown": setup_dispatcher_shutdown,
    },
    {
        "name": "HTTP Client",
        "startup": setup_http_client_startup,
        "shutdown": setup_http_client_shutdown,
    },
    {
        "name": "Chat Services",
        "startup": setup_services_startup,
        "shutdown": None,
    },
    {
        "name": "Agent Registry",
        "startup": load_agents_startup,
        "shutdown": None,
    },
]


def _component_key(name: str) -> str:
    return name.lower().replace(" ", "_")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager using component-based approach."""
    settings: Settings = getattr(app.state, "settings", None) or get_settings()
    app.state.settings = settings

    logger.info(
        "server_start",
        host=settings.server.host,
        port=settings.server.port,
        url=settings.server_url,
        category="lifecycle",
    )

    for component in LIFECYCLE_COMPONENTS:
        if component["startup"]:
            logger.debug(
                f"starting_{_component_key(component['name'])}", category="lifecycle"
            )
            await component["startup"](app, settings)

    yield

    logger.debug("server_stop", category="lifecycle")

    for component in reversed(LIFECYCLE_COMPONENTS):
        if component["shutdown"]:
            component_key = _component_key(component["name"])
            try:
                logger.debug(f"stopping_{component_key}", category="lifecycle")
                await component["shutdown"](app)
            except Exception as e:
                logger.error(
                    f"{component_key}_shutdown_failed",
                    error=str(e),
                    component=component["name"],
                    exc_info=e,
                    category="lifecycle",
                )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override. If None, uses get_settings().

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    if not structlog.is_configured():
        setup_logging(
            json_logs=settings.logging.format == "json",
            log_level_name=settings.logging.level,
            log_file=settings.logging.file,
            show_path=settings.logging.show_path,
            console_width=settings.logging.console_width,
        )

    app = FastAPI(
        title="LLMChat Gateway",
        description="Streaming chat gateway for FastGPT, OpenAI and Anthropic agents",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestIDMiddleware)
    # CORS is added last so it wraps every other middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins,
        allow_credentials=settings.cors.credentials,
        allow_methods=settings.cors.methods,
        allow_headers=settings.cors.headers,
        expose_headers=["x-request-id"],
    )
    setup_error_handlers(app, debug_errors=settings.server.debug_errors)

    app.include_router(health_router, tags=["health"])
    app.include_router(agents_router, prefix="/api/agents", tags=["agents"])
    app.include_router(chat_router, prefix="/api/chat", tags=["chat"])
    app.include_router(history_router, prefix="/api/chat", tags=["history"])

    return app


def get_app() -> FastAPI:
    """Application factory for ``uvicorn --factory``."""
    return create_app(get_settings())


__all__ = ["create_app", "get_app"]

"""Chat completion and chat init endpoints."""

from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from llmchat.api.dependencies import AgentServiceDep, ChatInitDep, ChatProxyDep
from llmchat.api.responses import event_stream_response, success_response
from llmchat.core.errors import LLMChatError, ValidationError
from llmchat.core.logging import get_logger
from llmchat.models.chat import ChatMessage, ChatOptions, ChatRequest
from llmchat.observability.events import utc_timestamp
from llmchat.services.chat_init import ChatInitService, extract_welcome_text
from llmchat.services.chat_proxy import ChatProxyService
from llmchat.services.providers import generate_id
from llmchat.streaming.events import get_normalized_event_key
from llmchat.streaming.sse import format_sse_event


router = APIRouter()
logger = get_logger(__name__)


@router.post("/completions", response_model=None)
async def chat_completions(
    request: ChatRequest, chat_proxy: ChatProxyDep
) -> dict[str, Any] | StreamingResponse:
    """Send a chat request to an agent.

    With ``stream: true`` the reply is relayed as browser SSE events;
    otherwise the normalized completion is returned in the success envelope.
    """
    options = request.effective_options()
    session_id = options.chat_id or generate_id()
    options = options.model_copy(update={"chat_id": session_id})

    logger.info(
        "chat_completion_request",
        agent_id=request.agent_id,
        stream=request.stream,
        messages=len(request.messages),
        chat_id=session_id,
        category="request",
    )

    if request.stream:
        # Agent errors must surface as JSON before the event stream starts
        await chat_proxy.resolve_agent(request.agent_id, streaming=True)
        return event_stream_response(
            _relay_chat_stream(
                chat_proxy, request.agent_id, request.messages, options, session_id
            )
        )

    response = await chat_proxy.send_message(
        request.agent_id, request.messages, options
    )
    return success_response({**response.model_dump(), "chatId": session_id})


async def _relay_chat_stream(
    chat_proxy: ChatProxyService,
    agent_id: str,
    messages: list[ChatMessage],
    options: ChatOptions,
    session_id: str,
) -> AsyncIterator[str]:
    yield format_sse_event("chatId", {"chatId": session_id})
    yield format_sse_event(
        "start", {"id": generate_id(), "timestamp": utc_timestamp(), "agentId": agent_id}
    )

    try:
        async with aclosing(
            chat_proxy.stream_message(agent_id, messages, options)
        ) as updates:
            async for update in updates:
                if update.kind == "chunk":
                    yield format_sse_event("chunk", {"content": update.content})
                elif update.kind == "status" and update.status is not None:
                    yield format_sse_event("status", update.status.to_wire())
                    if update.is_terminal:
                        yield format_sse_event("end", {"timestamp": utc_timestamp()})
                        return
                elif update.name:
                    if _already_sent(update.name, update.data, session_id):
                        continue
                    yield format_sse_event(update.name, update.data)
    except LLMChatError as e:
        logger.warning(
            "chat_stream_error",
            agent_id=agent_id,
            error_type=e.error_type,
            error=e.message,
            category="streaming",
        )
        yield _stream_error(e.message)
    except Exception as e:
        logger.error(
            "chat_stream_unexpected_error",
            agent_id=agent_id,
            error=str(e),
            exc_info=e,
            category="streaming",
        )
        yield _stream_error(str(e) or "Stream response error")


def _already_sent(name: str, data: Any, session_id: str) -> bool:
    # The route opens with the session chat id and closes with its own ``end``
    if name == "chatId":
        return isinstance(data, dict) and data.get("chatId") == session_id
    return get_normalized_event_key(name) == "end"


def _stream_error(message: str) -> str:
    return format_sse_event(
        "error",
        {"code": "STREAM_ERROR", "message": message, "timestamp": utc_timestamp()},
    )


@router.get("/init", response_model=None)
async def chat_init(
    agent_service: AgentServiceDep,
    chat_init_service: ChatInitDep,
    app_id: str = Query(..., alias="appId", min_length=1),
    chat_id: str | None = Query(None, alias="chatId"),
    stream: bool = Query(False),
) -> dict[str, Any] | StreamingResponse:
    """Fetch an agent's FastGPT init data, optionally streaming the welcome text."""
    agent = await agent_service.require_agent(app_id)
    if not agent.is_active:
        raise ValidationError(f"Agent is inactive: {app_id}")

    logger.info(
        "chat_init_requested",
        agent_id=app_id,
        chat_id=chat_id,
        stream=stream,
        category="request",
    )

    if stream:
        return event_stream_response(
            _stream_init(chat_init_service, app_id, chat_id)
        )

    init_data = await chat_init_service.get_init_data(app_id, chat_id)
    return success_response(init_data)


async def _stream_init(
    service: ChatInitService, app_id: str, chat_id: str | None
) -> AsyncIterator[str]:
    yield format_sse_event(
        "start",
        {
            "id": generate_id(),
            "timestamp": utc_timestamp(),
            "appId": app_id,
            "type": "init",
        },
    )

    try:
        init_data = await service.get_init_data(app_id, chat_id)
        async for char in service.stream_welcome_text(extract_welcome_text(init_data)):
            yield format_sse_event("chunk", {"content": char})
        yield format_sse_event(
            "complete", {"data": init_data, "timestamp": utc_timestamp()}
        )
    except LLMChatError as e:
        logger.warning(
            "chat_init_stream_error",
            agent_id=app_id,
            error_type=e.error_type,
            error=e.message,
            category="streaming",
        )
        yield format_sse_event("error", {"error": e.message, "timestamp": utc_timestamp()})

    yield format_sse_event("end", {"timestamp": utc_timestamp()})

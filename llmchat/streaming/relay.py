"""Translation of upstream SSE events into browser relay updates.

Each upstream event is classified by name and mapped to at most one action,
in a fixed priority order:

1. ``[DONE]`` data: stream complete
2. chat id events
3. interactive events
4. ``flowResponses``
5. status events (``flowNodeStatus``)
6. ``answer`` content and inline reasoning
7. reasoning events
8. dataset, summary and tool events
9. usage events
10. end events
11. provider-specific content chunks, passing other named events through

Every emitted update is recorded through the chat log service.
"""

from dataclasses import dataclass
from typing import Any, Literal

from llmchat.core.logging import get_logger
from llmchat.models.chat import StreamStatus
from llmchat.observability.chat_log import ChatLogService
from llmchat.services.providers import ProviderAdapter

from .events import (
    get_normalized_event_key,
    is_chat_id_event,
    is_chunk_like_event,
    is_dataset_event,
    is_end_event,
    is_interactive_event,
    is_reasoning_event,
    is_status_event,
    is_summary_event,
    is_tool_event,
    is_usage_event,
)
from .sse import SSEEvent, decode_sse_data


logger = get_logger(__name__)

_FLOW_RESPONSES_KEY = get_normalized_event_key("flowResponses")
_ANSWER_KEY = get_normalized_event_key("answer")
_STATUS_VALUES = ("running", "completed", "error")


@dataclass(frozen=True)
class StreamUpdate:
    """One unit of relay output: a content chunk, a status change or a named event."""

    kind: Literal["chunk", "status", "event"]
    content: str | None = None
    status: StreamStatus | None = None
    name: str | None = None
    data: Any = None

    @classmethod
    def chunk(cls, content: str) -> "StreamUpdate":
        return cls(kind="chunk", content=content)

    @classmethod
    def status_update(cls, status: StreamStatus) -> "StreamUpdate":
        return cls(kind="status", status=status)

    @classmethod
    def event(cls, name: str, data: Any) -> "StreamUpdate":
        return cls(kind="event", name=name, data=data)

    @property
    def is_terminal(self) -> bool:
        return self.status is not None and self.status.is_terminal


@dataclass(frozen=True)
class RelayContext:
    agent_id: str
    provider: str | None = None
    endpoint: str | None = None
    chat_id: str | None = None


def _get(payload: Any, key: str) -> Any:
    return payload.get(key) if isinstance(payload, dict) else None


def _first_choice_delta(payload: Any) -> dict[str, Any]:
    choices = _get(payload, "choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        delta = choices[0].get("delta")
        if isinstance(delta, dict):
            return delta
    return {}


def extract_reasoning(payload: Any) -> Any:
    """Reasoning text carried inline by an answer payload, if any."""
    delta = _get(payload, "delta")
    return (
        _first_choice_delta(payload).get("reasoning_content")
        or (delta.get("reasoning_content") if isinstance(delta, dict) else None)
        or _get(payload, "reasoning_content")
        or _get(payload, "reasoning")
        or None
    )


class StreamRelay:
    """Stateful translator for a single upstream stream."""

    def __init__(
        self,
        provider: ProviderAdapter,
        context: RelayContext,
        chat_log: ChatLogService | None = None,
    ) -> None:
        self.provider = provider
        self.context = context
        self.chat_log = chat_log
        self.finished = False

    async def handle_event(self, sse: SSEEvent) -> list[StreamUpdate]:
        """Translate one parsed upstream SSE block."""
        if self.finished or not sse.data:
            return []

        if sse.data.strip() == "[DONE]":
            return await self.finish({"done": True})

        payload = decode_sse_data(sse.data)
        return await self.dispatch(sse.event, payload)

    async def finish(self, marker: dict[str, Any] | None = None) -> list[StreamUpdate]:
        """Complete the stream once; later calls produce nothing."""
        if self.finished:
            return []
        self.finished = True
        await self._record("complete", marker or {"ended": True})
        return [
            StreamUpdate.status_update(StreamStatus(type="complete", status="completed"))
        ]

    async def announce_chat_id(self) -> list[StreamUpdate]:
        """Tell the client which chat id the upstream request uses."""
        if not self.context.chat_id:
            return []
        data = {"chatId": self.context.chat_id}
        await self._record("chatId", data)
        return [StreamUpdate.event("chatId", data)]

    async def record_failure(self, message: str) -> None:
        """Record a transport failure; the caller raises."""
        self.finished = True
        await self._record("error", {"message": message})

    async def dispatch(self, event_name: str, payload: Any) -> list[StreamUpdate]:
        payload_event = _get(payload, "event")
        resolved = (
            event_name or (payload_event if isinstance(payload_event, str) else "") or ""
        ).strip()
        key = get_normalized_event_key(resolved or "message")

        if is_chat_id_event(resolved):
            await self._record("chatId", payload)
            return [StreamUpdate.event("chatId", payload)]

        if is_interactive_event(resolved):
            await self._record("interactive", payload)
            return [StreamUpdate.event("interactive", payload)]

        if key == _FLOW_RESPONSES_KEY:
            await self._record("flowResponses", payload)
            return [
                StreamUpdate.status_update(
                    StreamStatus(
                        type="progress",
                        status="completed",
                        module_name="Execution complete",
                    )
                ),
                StreamUpdate.event(resolved or "flowResponses", payload),
            ]

        if is_status_event(resolved):
            status = _get(payload, "status")
            module_name = (
                _get(payload, "name")
                or _get(payload, "moduleName")
                or _get(payload, "id")
                or "Unknown module"
            )
            await self._record("flowNodeStatus", payload)
            return [
                StreamUpdate.status_update(
                    StreamStatus(
                        type="flowNodeStatus",
                        status=status if status in _STATUS_VALUES else "running",
                        module_name=str(module_name),
                    )
                ),
                StreamUpdate.event(resolved or "flowNodeStatus", payload),
            ]

        if key == _ANSWER_KEY:
            updates: list[StreamUpdate] = []
            content = _first_choice_delta(payload).get("content")
            if content is None:
                content = _get(payload, "content")
            if content:
                await self._record("answer", payload)
                updates.append(StreamUpdate.chunk(str(content)))

            reasoning = extract_reasoning(payload)
            if reasoning:
                await self._record("reasoning", reasoning)
                updates.append(
                    StreamUpdate.event(
                        "reasoning", {"event": resolved or "reasoning", "data": reasoning}
                    )
                )
            return updates

        if is_reasoning_event(resolved):
            await self._record("reasoning", payload)
            return [
                StreamUpdate.event(
                    "reasoning", {"event": resolved or "reasoning", "data": payload}
                )
            ]

        if (
            is_dataset_event(resolved)
            or is_summary_event(resolved)
            or is_tool_event(resolved)
        ):
            await self._record(resolved or "event", payload)
            return [StreamUpdate.event(resolved or "event", payload)]

        if is_usage_event(resolved):
            await self._record("usage", payload)
            return [StreamUpdate.event("usage", payload)]

        if is_end_event(resolved):
            await self._record(resolved or "end", payload)
            self.finished = True
            # Emitted before the complete status, after which the browser stream closes
            return [
                StreamUpdate.event(resolved or "end", payload),
                StreamUpdate.status_update(
                    StreamStatus(type="complete", status="completed")
                ),
            ]

        updates = []
        transformed = self.provider.transform_stream_chunk(payload)
        if transformed:
            await self._record("chunk", transformed)
            updates.append(StreamUpdate.chunk(transformed))

        if resolved and not is_chunk_like_event(resolved):
            updates.append(StreamUpdate.event(resolved, payload))

        if not updates:
            logger.debug(
                "stream_event_ignored",
                event_name=resolved or None,
                agent_id=self.context.agent_id,
                category="streaming",
            )
        return updates

    async def _record(self, event_type: str, data: Any) -> None:
        if self.chat_log is None:
            return
        await self.chat_log.log_stream_event(
            agent_id=self.context.agent_id,
            event_type=event_type,
            data=data,
            provider=self.context.provider,
            endpoint=self.context.endpoint,
            chat_id=self.context.chat_id,
        )

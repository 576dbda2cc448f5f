"""Incremental server-sent events parsing and browser-side SSE framing."""

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from llmchat.core.logging import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class SSEEvent:
    """One parsed SSE block."""

    event: str
    data: str
    id: str | None = None
    retry: int | None = None


def _next_boundary(buffer: str) -> tuple[int, int] | None:
    """Locate the earliest blank-line separator as ``(index, length)``."""
    lf = buffer.find("\n\n")
    crlf = buffer.find("\r\n\r\n")
    if lf == -1 and crlf == -1:
        return None
    if lf == -1:
        return crlf, 4
    if crlf == -1:
        return lf, 2
    return (crlf, 4) if crlf < lf else (lf, 2)


def parse_event_block(raw_block: str) -> SSEEvent | None:
    """Parse a single SSE block.

    Comment lines (``:``) and unknown fields are ignored. Multiple ``data``
    lines are joined with newlines. Blocks carrying neither an event name nor
    data produce ``None``.
    """
    event = ""
    data_lines: list[str] = []
    event_id: str | None = None
    retry: int | None = None

    for line in raw_block.replace("\r", "").split("\n"):
        if not line or line.startswith(":"):
            continue

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "event":
            event = value.strip()
        elif field == "data":
            data_lines.append(value)
        elif field == "id":
            event_id = value.strip()
        elif field == "retry":
            try:
                retry = int(value)
            except ValueError:
                # Invalid retry values are ignored
                pass

    data = "\n".join(data_lines)
    if not event and not data:
        return None
    return SSEEvent(event=event, data=data, id=event_id, retry=retry)


class SSEParser:
    """Split a text stream into :class:`SSEEvent` objects.

    Feed decoded text as it arrives; complete blocks are returned as soon as
    their terminating blank line is seen. Call :meth:`flush` at end of stream
    to parse a trailing block that was never terminated.
    """

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, text: str) -> list[SSEEvent]:
        self._buffer += text
        events: list[SSEEvent] = []
        while (boundary := _next_boundary(self._buffer)) is not None:
            index, length = boundary
            raw_block = self._buffer[:index]
            self._buffer = self._buffer[index + length :]
            if not raw_block.strip():
                continue
            parsed = parse_event_block(raw_block)
            if parsed is not None:
                events.append(parsed)
        return events

    def flush(self) -> list[SSEEvent]:
        remaining, self._buffer = self._buffer, ""
        if not remaining.strip():
            return []
        parsed = parse_event_block(remaining)
        return [parsed] if parsed is not None else []


async def iter_sse_events(chunks: AsyncIterator[str]) -> AsyncIterator[SSEEvent]:
    """Parse an async stream of text chunks into SSE events."""
    parser = SSEParser()
    async for chunk in chunks:
        for event in parser.feed(chunk):
            yield event
    for event in parser.flush():
        yield event


def decode_sse_data(data: str) -> Any:
    """Decode JSON-looking data, keeping the raw string when it is not valid JSON."""
    trimmed = data.strip()
    if not trimmed.startswith(("{", "[")):
        return data
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError as e:
        logger.warning(
            "sse_data_decode_failed",
            error=str(e),
            data_preview=trimmed[:200],
            category="streaming",
        )
        return data


def format_sse_event(event: str, data: Any) -> str:
    """Frame one browser SSE event as ``event: <name>\\ndata: <json>\\n\\n``."""
    payload = json.dumps(data, ensure_ascii=False, default=str)
    return f"event: {event}\ndata: {payload}\n\n"

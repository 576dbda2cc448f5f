"""Response envelopes and SSE helpers shared by the routes."""

from typing import Any

from fastapi.responses import StreamingResponse

from llmchat.observability.events import utc_timestamp


SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def success_response(data: Any, **extra: Any) -> dict[str, Any]:
    """Wrap ``data`` in the ``{success, data, timestamp}`` envelope."""
    return {"success": True, "data": data, **extra, "timestamp": utc_timestamp()}


def event_stream_response(content: Any) -> StreamingResponse:
    return StreamingResponse(
        content,
        media_type="text/event-stream; charset=utf-8",
        headers=SSE_HEADERS,
    )

"""Recording of chat completions and stream events.

Each record is appended as one JSON line to ``chat-YYYYMMDD.log`` and
forwarded to the :class:`ObservabilityDispatcher` for export.
"""

import asyncio
import json
from collections.abc import Callable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles

from llmchat.config.core import LoggingSettings
from llmchat.core.logging import get_logger

from .dispatcher import ObservabilityDispatcher
from .events import ObservabilityEvent, utc_timestamp


logger = get_logger(__name__)


def _as_payload(data: Any) -> Mapping[str, Any] | None:
    if data is None:
        return None
    if isinstance(data, Mapping):
        return data
    return {"data": data}


class ChatLogService:
    """Write chat traffic to daily JSON-lines files and the event dispatcher."""

    def __init__(
        self,
        settings: LoggingSettings,
        dispatcher: ObservabilityDispatcher | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings = settings
        self.dispatcher = dispatcher
        self.log_dir = Path(settings.dir)
        self._now = now
        self._write_lock = asyncio.Lock()

    def log_file_path(self) -> Path:
        return self.log_dir / f"chat-{self._now().strftime('%Y%m%d')}.log"

    async def log_completion(
        self,
        agent_id: str,
        provider: str,
        endpoint: str,
        request_meta: dict[str, Any] | None = None,
        raw_response: Any = None,
        normalized_response: Any = None,
    ) -> None:
        """Record a non-streaming completion."""
        if not self.settings.record_normal:
            return

        timestamp = utc_timestamp()
        raw = raw_response if self.settings.include_raw else None
        normalized = normalized_response if self.settings.include_normalized else None

        entry: dict[str, Any] = {
            "timestamp": timestamp,
            "type": "normal",
            "agentId": agent_id,
            "provider": provider,
            "endpoint": endpoint,
        }
        if request_meta is not None:
            entry["requestMeta"] = request_meta
        if raw is not None:
            entry["rawResponse"] = raw
        if normalized is not None:
            entry["normalizedResponse"] = normalized

        await self._append(entry)
        self._push(
            ObservabilityEvent(
                timestamp=timestamp,
                channel="normal",
                level="INFO",
                agent_id=agent_id,
                provider=provider,
                endpoint=endpoint,
                payload={
                    "requestMeta": request_meta,
                    "rawResponse": raw,
                    "normalizedResponse": normalized,
                },
            )
        )

    async def log_stream_event(
        self,
        agent_id: str,
        event_type: str,
        data: Any,
        provider: str | None = None,
        endpoint: str | None = None,
        chat_id: str | None = None,
    ) -> None:
        """Record one relayed stream event."""
        if not self.settings.record_stream:
            return

        timestamp = utc_timestamp()
        entry: dict[str, Any] = {
            "timestamp": timestamp,
            "type": "stream",
            "agentId": agent_id,
            "eventType": event_type,
            "data": data,
        }
        if provider:
            entry["provider"] = provider
        if endpoint:
            entry["endpoint"] = endpoint
        if chat_id:
            entry["chatId"] = chat_id

        await self._append(entry)
        self._push(
            ObservabilityEvent(
                timestamp=timestamp,
                channel="stream",
                level="ERROR" if event_type == "error" else "INFO",
                agent_id=agent_id,
                provider=provider,
                endpoint=endpoint,
                chat_id=chat_id,
                event_type=event_type,
                payload=_as_payload(data),
            )
        )

    def _push(self, event: ObservabilityEvent) -> None:
        if self.dispatcher is not None:
            self.dispatcher.enqueue(event)

    async def _append(self, entry: dict[str, Any]) -> None:
        if not self.settings.enabled:
            return

        line = json.dumps(entry, ensure_ascii=False, default=str) + "\n"
        path = self.log_file_path()
        try:
            async with self._write_lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(path, "a", encoding="utf-8") as f:
                    await f.write(line)
        except OSError as e:
            logger.warning(
                "chat_log_write_failed",
                path=str(path),
                error=str(e),
                category="observability",
            )

"""Best-effort batched export of chat events to external sinks.

Events are queued in memory and flushed either when the queue reaches the
smallest exporter batch size or when a single-shot timer fires. Each flush
drains the whole queue and hands it to every enabled exporter concurrently,
sliced by that exporter's own batch size. Delivery is at-most-once: failed
slices are logged and dropped.
"""

import asyncio
import json
from collections import deque
from collections.abc import Iterator, Sequence
from typing import Any
from urllib.parse import quote

import httpx

from llmchat.config.observability import (
    DEFAULT_BATCH_SIZE,
    ExporterSettings,
    ObservabilitySettings,
)
from llmchat.core.http_client import HTTPClientFactory
from llmchat.core.logging import get_logger

from .events import ObservabilityEvent


logger = get_logger(__name__)

DEFAULT_ELASTIC_INDEX = "fastgpt-events"
DEFAULT_CLICKHOUSE_TABLE = "fastgpt_events"
DEFAULT_MAX_QUEUE_SIZE = 10_000
DEFAULT_REQUEST_TIMEOUT = 10.0

_DROP_LOG_EVERY = 1000


def _chunked(
    items: Sequence[ObservabilityEvent], size: int
) -> Iterator[Sequence[ObservabilityEvent]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _dumps(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=str)


class ObservabilityDispatcher:
    """Queue chat events and export them in batches without blocking callers."""

    def __init__(
        self,
        exporters: Sequence[ExporterSettings] = (),
        *,
        client: httpx.AsyncClient | None = None,
        max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.exporters: tuple[ExporterSettings, ...] = tuple(
            exporter for exporter in exporters if exporter.enabled
        )
        self.max_queue_size = max(1, max_queue_size)
        self.request_timeout = request_timeout

        self.min_batch_size = (
            min(exporter.batch_size for exporter in self.exporters)
            if self.exporters
            else DEFAULT_BATCH_SIZE
        )
        self.min_flush_interval = (
            min(exporter.flush_interval_ms for exporter in self.exporters) / 1000
            if self.exporters
            else 0.0
        )

        self._client = client
        self._owns_client = False
        self._queue: deque[ObservabilityEvent] = deque()
        self._closed = False
        self._flushing = False
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._dropped = 0
        self._failed_batches = 0
        self._exported = 0

    @classmethod
    def from_settings(
        cls,
        settings: ObservabilitySettings,
        client: httpx.AsyncClient | None = None,
    ) -> "ObservabilityDispatcher":
        return cls(
            settings.resolved_exporters(),
            client=client,
            max_queue_size=settings.max_queue_size,
            request_timeout=settings.request_timeout,
        )

    def is_enabled(self) -> bool:
        return bool(self.exporters)

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    # === Lifecycle ===

    async def start(self) -> None:
        """Create the HTTP client unless one was injected."""
        if self._client is None and self.is_enabled():
            self._client = HTTPClientFactory.create_exporter_client(
                timeout=self.request_timeout
            )
            self._owns_client = True
        logger.info(
            "observability_dispatcher_started",
            exporters=[exporter.type for exporter in self.exporters],
            min_batch_size=self.min_batch_size,
            flush_interval_seconds=self.min_flush_interval,
            category="observability",
        )

    async def shutdown(self) -> None:
        """Cancel the timer, wait for running flushes, drain, and close the client."""
        self._cancel_timer()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.flush()
        self._closed = True
        self._cancel_timer()

        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

        logger.info(
            "observability_dispatcher_stopped",
            exported=self._exported,
            dropped=self._dropped,
            failed_batches=self._failed_batches,
            category="observability",
        )

    def stats(self) -> dict[str, Any]:
        return {
            "enabled": self.is_enabled(),
            "exporters": len(self.exporters),
            "queue_size": len(self._queue),
            "dropped": self._dropped,
            "exported": self._exported,
            "failed_batches": self._failed_batches,
            "flushing": self._flushing,
            "closed": self._closed,
        }

    # === Queueing ===

    def enqueue(self, event: ObservabilityEvent) -> None:
        """Queue an event for export. Never blocks and never raises."""
        if not self.is_enabled() or self._closed:
            return

        if len(self._queue) >= self.max_queue_size:
            self._queue.popleft()
            self._dropped += 1
            if self._dropped == 1 or self._dropped % _DROP_LOG_EVERY == 0:
                logger.warning(
                    "observability_queue_full",
                    max_queue_size=self.max_queue_size,
                    dropped=self._dropped,
                    category="observability",
                )

        self._queue.append(event)

        if len(self._queue) >= self.min_batch_size:
            self._flush_soon()
        else:
            self._schedule_flush()

    def _running_loop(self) -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            # Outside the loop the queue is drained by the next flush or shutdown
            return None

    def _flush_soon(self) -> None:
        loop = self._running_loop()
        if loop is None:
            return
        task = loop.create_task(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _schedule_flush(self) -> None:
        if self._timer is not None or not self.is_enabled() or self._closed:
            return
        loop = self._running_loop()
        if loop is None:
            return
        self._timer = loop.call_later(self.min_flush_interval, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._flush_soon()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # === Flushing ===

    async def flush(self) -> None:
        """Drain the queue and deliver it to every exporter."""
        if self._flushing or not self._queue or not self.is_enabled():
            return

        self._flushing = True
        batch = list(self._queue)
        self._queue.clear()
        try:
            await asyncio.gather(
                *(self._deliver(exporter, batch) for exporter in self.exporters)
            )
        finally:
            self._flushing = False
            if self._queue:
                self._schedule_flush()
            else:
                self._cancel_timer()

    async def _deliver(
        self, exporter: ExporterSettings, batch: Sequence[ObservabilityEvent]
    ) -> None:
        for events in _chunked(batch, exporter.batch_size):
            try:
                await self.send_to_exporter(exporter, events)
            except (httpx.HTTPError, OSError) as e:
                self._failed_batches += 1
                logger.warning(
                    "observability_export_failed",
                    exporter=exporter.type,
                    endpoint=exporter.endpoint,
                    batch_size=len(events),
                    error=str(e),
                    error_type=type(e).__name__,
                    category="observability",
                )
            except Exception as e:
                self._failed_batches += 1
                logger.error(
                    "observability_export_unexpected_error",
                    exporter=exporter.type,
                    endpoint=exporter.endpoint,
                    batch_size=len(events),
                    error=str(e),
                    exc_info=e,
                    category="observability",
                )
            else:
                self._exported += len(events)

    # === Sinks ===

    async def send_to_exporter(
        self, exporter: ExporterSettings, events: Sequence[ObservabilityEvent]
    ) -> None:
        if not events or not exporter.endpoint:
            return

        if exporter.type == "elasticsearch":
            await self.send_to_elastic(exporter, events)
        elif exporter.type == "clickhouse":
            await self.send_to_clickhouse(exporter, events)
        else:
            await self.send_to_http(exporter, events)

    async def send_to_http(
        self, exporter: ExporterSettings, events: Sequence[ObservabilityEvent]
    ) -> None:
        """POST ``{"events": [...]}`` to the endpoint."""
        body = _dumps({"events": [event.to_dict() for event in events]})
        headers = {"Content-Type": "application/json", **exporter.headers}
        await self._post(str(exporter.endpoint), body, headers, exporter)

    async def send_to_elastic(
        self, exporter: ExporterSettings, events: Sequence[ObservabilityEvent]
    ) -> None:
        """Index events through the Elasticsearch bulk API."""
        index = exporter.index or DEFAULT_ELASTIC_INDEX
        action = _dumps({"index": {"_index": index}})
        lines: list[str] = []
        for event in events:
            lines.append(action)
            lines.append(_dumps(event.to_dict()))
        body = "\n".join(lines) + "\n"

        headers = {"Content-Type": "application/x-ndjson", **exporter.headers}
        if exporter.api_key:
            headers["Authorization"] = f"ApiKey {exporter.api_key}"

        url = f"{str(exporter.endpoint).rstrip('/')}/_bulk"
        await self._post(url, body, headers, exporter)

    async def send_to_clickhouse(
        self, exporter: ExporterSettings, events: Sequence[ObservabilityEvent]
    ) -> None:
        """Insert events as JSONEachRow rows."""
        table = exporter.table or DEFAULT_CLICKHOUSE_TABLE
        query = quote(f"INSERT INTO {table} FORMAT JSONEachRow", safe="")
        body = "\n".join(_dumps(event.to_dict()) for event in events)
        headers = {"Content-Type": "application/json", **exporter.headers}
        endpoint = str(exporter.endpoint)
        separator = "&" if "?" in endpoint else "?"
        url = f"{endpoint}{separator}query={query}"
        await self._post(url, body, headers, exporter)

    async def _post(
        self,
        url: str,
        body: str,
        headers: dict[str, str],
        exporter: ExporterSettings,
    ) -> None:
        auth: tuple[str, str] | None = None
        if exporter.username or exporter.password:
            auth = (exporter.username or "", exporter.password or "")

        client = self._get_client()
        request_kwargs: dict[str, Any] = {
            "content": body.encode("utf-8"),
            "headers": headers,
            "timeout": self.request_timeout,
        }
        if auth is not None:
            request_kwargs["auth"] = auth
        response = await client.post(url, **request_kwargs)
        response.raise_for_status()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = HTTPClientFactory.create_exporter_client(
                timeout=self.request_timeout
            )
            self._owns_client = True
        return self._client

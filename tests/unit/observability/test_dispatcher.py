"""Unit tests for batched event export."""

import asyncio
import json
from collections import defaultdict
from urllib.parse import unquote

import httpx
import pytest
from pytest_httpx import HTTPXMock

from llmchat.config.observability import ExporterSettings
from llmchat.observability.dispatcher import ObservabilityDispatcher
from llmchat.observability.events import ObservabilityEvent


pytestmark = pytest.mark.unit


def make_event(index: int = 0, **overrides) -> ObservabilityEvent:
    fields = {
        "channel": "stream",
        "level": "INFO",
        "agent_id": "fastgpt-assistant",
        "event_type": "answer",
        "payload": {"index": index},
        "timestamp": "2024-01-01T00:00:00.000Z",
    }
    fields.update(overrides)
    return ObservabilityEvent(**fields)


def http_exporter(endpoint: str = "https://sink.example.com/events", **kwargs):
    return ExporterSettings(type="http", endpoint=endpoint, **kwargs)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


class GatedDispatcher(ObservabilityDispatcher):
    """Records payload indices per endpoint; the ``slow`` sink waits on a gate."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.received: dict[str, list[int]] = defaultdict(list)
        self.gate = asyncio.Event()
        self.slow_started = asyncio.Event()

    async def send_to_exporter(self, exporter, events):
        endpoint = str(exporter.endpoint)
        if "slow" in endpoint:
            self.slow_started.set()
            await self.gate.wait()
        self.received[endpoint].extend(event.payload["index"] for event in events)


class TestObservabilityEvent:
    def test_to_dict_omits_unset_fields(self):
        event = ObservabilityEvent(
            channel="normal",
            level="INFO",
            agent_id="a",
            timestamp="2024-01-01T00:00:00.000Z",
        )
        assert event.to_dict() == {
            "timestamp": "2024-01-01T00:00:00.000Z",
            "channel": "normal",
            "level": "INFO",
            "agentId": "a",
            "payload": None,
        }

    def test_default_timestamp_is_utc_millis(self):
        event = ObservabilityEvent(channel="stream", level="INFO", agent_id="a")
        timestamp = event.timestamp
        assert timestamp.endswith("Z")
        assert len(timestamp.split(".")[1]) == 4


class TestDispatcherQueue:
    def test_disabled_dispatcher_ignores_events(self):
        dispatcher = ObservabilityDispatcher()

        dispatcher.enqueue(make_event())

        assert not dispatcher.is_enabled()
        assert dispatcher.queue_size == 0
        assert dispatcher.stats()["enabled"] is False

    def test_disabled_exporters_are_filtered(self):
        dispatcher = ObservabilityDispatcher([http_exporter(enabled=False)])
        assert not dispatcher.is_enabled()

    def test_bounded_queue_drops_oldest(self):
        dispatcher = ObservabilityDispatcher(
            [http_exporter(batch_size=100)], max_queue_size=2
        )

        for index in range(3):
            dispatcher.enqueue(make_event(index))

        assert dispatcher.queue_size == 2
        assert dispatcher.stats()["dropped"] == 1
        assert [e.payload["index"] for e in dispatcher._queue] == [1, 2]

    def test_batch_and_interval_use_smallest_exporter_values(self):
        dispatcher = ObservabilityDispatcher(
            [
                http_exporter(batch_size=50, flush_interval_ms=5000),
                http_exporter("https://other.example.com", batch_size=10),
            ]
        )
        assert dispatcher.min_batch_size == 10
        assert dispatcher.min_flush_interval == 2.0


class TestDispatcherExport:
    @pytest.mark.asyncio
    async def test_http_envelope(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url="https://sink.example.com/events", json={})
        exporter = http_exporter(headers={"X-Token": "t"})

        async with httpx.AsyncClient() as client:
            dispatcher = ObservabilityDispatcher([exporter], client=client)
            dispatcher.enqueue(make_event())
            await dispatcher.flush()
            await dispatcher.shutdown()

        request = httpx_mock.get_requests()[0]
        assert request.headers["X-Token"] == "t"
        assert request.headers["Content-Type"] == "application/json"
        body = json.loads(request.content)
        assert body["events"][0]["agentId"] == "fastgpt-assistant"
        assert body["events"][0]["payload"] == {"index": 0}
        assert dispatcher.stats()["exported"] == 1

    @pytest.mark.asyncio
    async def test_batch_size_flushes_in_slices(self, httpx_mock: HTTPXMock):
        for _ in range(3):
            httpx_mock.add_response(url="https://sink.example.com/events", json={})

        async with httpx.AsyncClient() as client:
            dispatcher = ObservabilityDispatcher(
                [http_exporter(batch_size=2)], client=client
            )
            for index in range(5):
                dispatcher.enqueue(make_event(index))
            await dispatcher.shutdown()

        sizes = [len(json.loads(r.content)["events"]) for r in httpx_mock.get_requests()]
        assert sizes == [2, 2, 1]
        assert dispatcher.queue_size == 0

    @pytest.mark.asyncio
    async def test_elasticsearch_bulk(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url="https://es.example.com/_bulk", json={})
        exporter = ExporterSettings(
            type="elasticsearch", endpoint="https://es.example.com/", api_key="secret"
        )

        async with httpx.AsyncClient() as client:
            dispatcher = ObservabilityDispatcher([exporter], client=client)
            await dispatcher.send_to_exporter(exporter, [make_event(0), make_event(1)])

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "ApiKey secret"
        assert request.headers["Content-Type"] == "application/x-ndjson"
        lines = request.content.decode().split("\n")
        assert lines[-1] == ""
        assert json.loads(lines[0]) == {"index": {"_index": "fastgpt-events"}}
        assert json.loads(lines[1])["payload"] == {"index": 0}
        assert json.loads(lines[3])["payload"] == {"index": 1}

    @pytest.mark.asyncio
    async def test_clickhouse_insert(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(json={})
        exporter = ExporterSettings(
            type="clickhouse",
            endpoint="https://ch.example.com/?database=logs",
            table="events",
            username="default",
            password="pw",
        )

        async with httpx.AsyncClient() as client:
            dispatcher = ObservabilityDispatcher([exporter], client=client)
            await dispatcher.send_to_exporter(exporter, [make_event(0), make_event(1)])

        request = httpx_mock.get_request()
        assert request.url.params["database"] == "logs"
        assert unquote(request.url.params["query"]) == (
            "INSERT INTO events FORMAT JSONEachRow"
        )
        assert request.headers["Authorization"].startswith("Basic ")
        rows = request.content.decode().split("\n")
        assert len(rows) == 2
        assert json.loads(rows[1])["payload"] == {"index": 1}

    @pytest.mark.asyncio
    async def test_failing_exporter_does_not_affect_others(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url="https://broken.example.com/events", status_code=500)
        httpx_mock.add_response(url="https://sink.example.com/events", json={})

        async with httpx.AsyncClient() as client:
            dispatcher = ObservabilityDispatcher(
                [
                    http_exporter("https://broken.example.com/events"),
                    http_exporter(),
                ],
                client=client,
            )
            dispatcher.enqueue(make_event())
            await dispatcher.flush()
            await dispatcher.shutdown()

        stats = dispatcher.stats()
        assert stats["failed_batches"] == 1
        assert stats["exported"] == 1
        assert stats["queue_size"] == 0

    @pytest.mark.asyncio
    async def test_exporter_without_endpoint_is_skipped(self):
        exporter = ExporterSettings(type="http")
        dispatcher = ObservabilityDispatcher([exporter])

        await dispatcher.send_to_exporter(exporter, [make_event()])

        assert dispatcher.stats()["failed_batches"] == 0


class TestDispatcherScheduling:
    @pytest.mark.asyncio
    async def test_timer_flushes_partial_batch(self, httpx_mock: HTTPXMock):
        httpx_mock.add_response(url="https://sink.example.com/events", json={})

        async with httpx.AsyncClient() as client:
            dispatcher = ObservabilityDispatcher(
                [http_exporter(batch_size=10, flush_interval_ms=250)], client=client
            )
            dispatcher.enqueue(make_event())

            assert httpx_mock.get_requests() == []
            await wait_until(lambda: len(httpx_mock.get_requests()) == 1)

            assert dispatcher.queue_size == 0
            assert dispatcher.stats()["exported"] == 1
            await dispatcher.shutdown()

    @pytest.mark.asyncio
    async def test_events_queued_during_flush_go_out_next_cycle_in_order(self):
        slow = "https://slow.example.com/events"
        fast = "https://fast.example.com/events"
        dispatcher = GatedDispatcher(
            [
                http_exporter(slow, batch_size=2, flush_interval_ms=250),
                http_exporter(fast, batch_size=3, flush_interval_ms=250),
            ]
        )

        for index in range(3):
            dispatcher.enqueue(make_event(index))
        await asyncio.wait_for(dispatcher.slow_started.wait(), timeout=1)
        assert dispatcher.stats()["flushing"] is True

        dispatcher.enqueue(make_event(3))
        dispatcher.enqueue(make_event(4))
        assert dispatcher.queue_size == 2

        dispatcher.gate.set()
        await wait_until(
            lambda: len(dispatcher.received[slow]) == 5
            and len(dispatcher.received[fast]) == 5
        )

        assert dispatcher.received[slow] == [0, 1, 2, 3, 4]
        assert dispatcher.received[fast] == [0, 1, 2, 3, 4]
        assert dispatcher.stats()["exported"] == 10
        assert dispatcher.queue_size == 0
        await dispatcher.shutdown()

    @pytest.mark.asyncio
    async def test_enqueue_after_shutdown_is_ignored(self):
        dispatcher = ObservabilityDispatcher([http_exporter(flush_interval_ms=250)])
        await dispatcher.start()
        await dispatcher.shutdown()

        dispatcher.enqueue(make_event())

        assert dispatcher.queue_size == 0
        assert dispatcher._timer is None
        assert dispatcher._client is None
        assert dispatcher.stats()["closed"] is True

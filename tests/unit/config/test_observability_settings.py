"""Unit tests for exporter configuration."""

import pytest

from llmchat.config.observability import (
    ExporterSettings,
    ObservabilitySettings,
    resolve_exporters_from_env,
)


pytestmark = pytest.mark.unit


class TestExporterSettings:
    def test_camel_case_aliases(self):
        exporter = ExporterSettings.model_validate(
            {"type": "http", "batchSize": 5, "flushIntervalMs": 1000, "apiKey": "k"}
        )
        assert exporter.batch_size == 5
        assert exporter.flush_interval_ms == 1000
        assert exporter.api_key == "k"

    def test_values_are_clamped(self):
        exporter = ExporterSettings(type="http", batch_size=0, flush_interval_ms=10)
        assert exporter.batch_size == 1
        assert exporter.flush_interval_ms == 250

    def test_null_values_use_defaults(self):
        exporter = ExporterSettings(type="http", batch_size=None, flush_interval_ms=None)
        assert exporter.batch_size == 20
        assert exporter.flush_interval_ms == 2000


class TestEnvironmentExporters:
    def test_no_endpoint_means_no_exporter(self):
        assert resolve_exporters_from_env({}) == []

    def test_full_configuration(self):
        [exporter] = resolve_exporters_from_env(
            {
                "LOG_EXPORT_HTTP_ENDPOINT": "https://collector.example.com/ingest",
                "LOG_EXPORT_HTTP_HEADERS": '{"X-Api-Key": "abc", "X-Retry": 3}',
                "LOG_EXPORT_HTTP_BATCH": "50",
                "LOG_EXPORT_HTTP_INTERVAL": "500",
            }
        )

        assert exporter.type == "http"
        assert exporter.endpoint == "https://collector.example.com/ingest"
        assert exporter.headers == {"X-Api-Key": "abc", "X-Retry": "3"}
        assert exporter.batch_size == 50
        assert exporter.flush_interval_ms == 500

    def test_defaults(self):
        [exporter] = resolve_exporters_from_env(
            {"LOG_EXPORT_HTTP_ENDPOINT": "https://collector.example.com"}
        )
        assert exporter.batch_size == 25
        assert exporter.flush_interval_ms == 2000
        assert exporter.headers == {}

    @pytest.mark.parametrize("headers", ["{broken", '["not", "an", "object"]'])
    def test_invalid_headers_are_ignored(self, headers):
        [exporter] = resolve_exporters_from_env(
            {
                "LOG_EXPORT_HTTP_ENDPOINT": "https://collector.example.com",
                "LOG_EXPORT_HTTP_HEADERS": headers,
            }
        )
        assert exporter.headers == {}

    def test_invalid_batch_falls_back(self):
        [exporter] = resolve_exporters_from_env(
            {
                "LOG_EXPORT_HTTP_ENDPOINT": "https://collector.example.com",
                "LOG_EXPORT_HTTP_BATCH": "lots",
            }
        )
        assert exporter.batch_size == 25


class TestObservabilitySettings:
    def test_resolved_exporters_combine_config_and_env(self, monkeypatch):
        monkeypatch.setenv("LOG_EXPORT_HTTP_ENDPOINT", "https://collector.example.com")
        settings = ObservabilitySettings(
            exporters=[
                {"type": "clickhouse", "endpoint": "http://ch:8123"},
                {"type": "http", "endpoint": "http://off", "enabled": False},
            ]
        )

        types = [exporter.type for exporter in settings.resolved_exporters()]

        assert types == ["clickhouse", "http"]

    def test_disabled_master_switch(self):
        settings = ObservabilitySettings(
            enabled=False, exporters=[{"type": "http", "endpoint": "http://x"}]
        )
        assert settings.resolved_exporters({}) == []

    def test_exporters_without_type_are_dropped(self):
        settings = ObservabilitySettings(
            exporters=[{"endpoint": "http://x"}, {"type": "http", "endpoint": "http://y"}]
        )
        assert [e.endpoint for e in settings.exporters] == ["http://y"]

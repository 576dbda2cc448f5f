"""Observability exporter configuration."""

import json
import os
from collections.abc import Mapping
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from llmchat.core.logging import get_logger


logger = get_logger(__name__)

ExporterType = Literal["http", "elasticsearch", "clickhouse"]

DEFAULT_BATCH_SIZE = 20
DEFAULT_FLUSH_INTERVAL_MS = 2000
MIN_FLUSH_INTERVAL_MS = 250

ENV_BATCH_SIZE = 25
ENV_FLUSH_INTERVAL_MS = 2000


class ExporterSettings(BaseModel):
    """A single event sink."""

    type: ExporterType = Field(description="Exporter kind")
    enabled: bool = Field(default=True)
    endpoint: str | None = Field(default=None, description="Sink base URL")
    index: str | None = Field(
        default=None, description="Elasticsearch index (default fastgpt-events)"
    )
    table: str | None = Field(
        default=None, description="ClickHouse table (default fastgpt_events)"
    )
    headers: dict[str, str] = Field(default_factory=dict)
    api_key: str | None = Field(default=None, alias="apiKey")
    username: str | None = None
    password: str | None = None
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, alias="batchSize")
    flush_interval_ms: int = Field(
        default=DEFAULT_FLUSH_INTERVAL_MS, alias="flushIntervalMs"
    )

    model_config = {"populate_by_name": True, "frozen": True}

    @field_validator("batch_size", mode="before")
    @classmethod
    def clamp_batch_size(cls, v: object) -> int:
        if v is None:
            return DEFAULT_BATCH_SIZE
        return max(1, int(v))  # type: ignore[call-overload]

    @field_validator("flush_interval_ms", mode="before")
    @classmethod
    def clamp_flush_interval(cls, v: object) -> int:
        if v is None:
            return DEFAULT_FLUSH_INTERVAL_MS
        return max(MIN_FLUSH_INTERVAL_MS, int(v))  # type: ignore[call-overload]


class ObservabilitySettings(BaseModel):
    """Event export configuration."""

    enabled: bool = Field(
        default=True,
        description="Master switch for event export",
    )

    exporters: list[ExporterSettings] = Field(
        default_factory=list,
        description="Configured sinks; environment-derived exporters are appended",
    )

    max_queue_size: int = Field(
        default=10_000,
        description="Bound of the in-memory event queue; the oldest events are dropped when full",
        ge=1,
    )

    request_timeout: float = Field(
        default=10.0,
        description="Timeout in seconds for each exporter request",
        gt=0,
    )

    @field_validator("exporters", mode="before")
    @classmethod
    def drop_typeless_exporters(cls, v: object) -> object:
        if isinstance(v, list):
            return [item for item in v if not isinstance(item, dict) or item.get("type")]
        return v

    def resolved_exporters(
        self, environ: Mapping[str, str] | None = None
    ) -> list[ExporterSettings]:
        """Enabled exporters from config plus those derived from the environment."""
        if not self.enabled:
            return []
        combined = [*self.exporters, *resolve_exporters_from_env(environ)]
        return [exporter for exporter in combined if exporter.enabled]


def resolve_exporters_from_env(
    environ: Mapping[str, str] | None = None,
) -> list[ExporterSettings]:
    """Build exporters from ``LOG_EXPORT_HTTP_*`` variables.

    ``LOG_EXPORT_HTTP_ENDPOINT`` enables an HTTP exporter. Batch size, flush
    interval and a JSON object of headers can be supplied through
    ``LOG_EXPORT_HTTP_BATCH``, ``LOG_EXPORT_HTTP_INTERVAL`` and
    ``LOG_EXPORT_HTTP_HEADERS``. Invalid header JSON is logged and ignored.
    """
    env = os.environ if environ is None else environ

    endpoint = env.get("LOG_EXPORT_HTTP_ENDPOINT")
    if not endpoint:
        return []

    headers: dict[str, str] = {}
    raw_headers = env.get("LOG_EXPORT_HTTP_HEADERS")
    if raw_headers:
        try:
            parsed = json.loads(raw_headers)
        except json.JSONDecodeError as e:
            logger.warning(
                "exporter_env_headers_invalid",
                error=str(e),
                category="config",
            )
        else:
            if isinstance(parsed, dict):
                headers = {str(k): str(v) for k, v in parsed.items()}
            else:
                logger.warning(
                    "exporter_env_headers_not_object",
                    value_type=type(parsed).__name__,
                    category="config",
                )

    return [
        ExporterSettings(
            type="http",
            enabled=True,
            endpoint=endpoint,
            headers=headers,
            batch_size=_env_int(env, "LOG_EXPORT_HTTP_BATCH", ENV_BATCH_SIZE),
            flush_interval_ms=_env_int(
                env, "LOG_EXPORT_HTTP_INTERVAL", ENV_FLUSH_INTERVAL_MS
            ),
        )
    ]


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            "exporter_env_value_invalid", variable=name, value=raw, category="config"
        )
        return default

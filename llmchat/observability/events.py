"""Observability event record exported to external sinks."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal


Channel = Literal["normal", "stream"]
Level = Literal["INFO", "WARN", "ERROR"]


def utc_timestamp() -> str:
    """Current time as ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ObservabilityEvent:
    """One chat event, immutable once constructed."""

    channel: Channel
    level: Level
    agent_id: str
    payload: Mapping[str, Any] | None = None
    provider: str | None = None
    endpoint: str | None = None
    chat_id: str | None = None
    event_type: str | None = None
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> dict[str, Any]:
        """Wire representation; unset optional fields are omitted."""
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "channel": self.channel,
            "level": self.level,
            "agentId": self.agent_id,
        }
        if self.provider:
            data["provider"] = self.provider
        if self.endpoint:
            data["endpoint"] = self.endpoint
        if self.chat_id:
            data["chatId"] = self.chat_id
        if self.event_type:
            data["eventType"] = self.event_type
        data["payload"] = dict(self.payload) if self.payload is not None else None
        return data

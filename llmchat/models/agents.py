"""Agent configuration models.

The agents file uses camelCase keys (``apiKey``, ``isActive``...). Models
accept both spellings and serialize back to camelCase with ``by_alias=True``.
"""

from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


ProviderName = Literal["fastgpt", "openai", "anthropic", "custom"]
AgentStatus = Literal["active", "inactive", "error", "loading"]

SUPPORTED_PROVIDERS: tuple[str, ...] = ("fastgpt", "openai", "anthropic", "custom")


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class CamelModel(BaseModel):
    """Base model accepting snake_case or camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class StreamingConfig(CamelModel):
    enabled: bool = True
    endpoint: Literal["same", "different"] = "same"
    status_events: bool = True
    flow_node_status: bool = True


class AgentFeatures(CamelModel):
    supports_chat_id: bool = False
    supports_stream: bool = True
    supports_detail: bool = False
    supports_files: bool = False
    supports_images: bool = False
    streaming_config: StreamingConfig = Field(default_factory=StreamingConfig)


class RateLimit(CamelModel):
    requests_per_minute: int
    tokens_per_minute: int


class AgentConfig(CamelModel):
    """Full agent definition, including upstream credentials."""

    id: Annotated[str, Field(min_length=1, description="Unique agent identifier")]
    name: Annotated[str, Field(min_length=1)]
    description: str
    endpoint: Annotated[str, Field(description="Upstream chat completions URL")]
    api_key: Annotated[str, Field(min_length=1)]
    model: str
    provider: ProviderName
    app_id: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    system_prompt: str | None = None
    capabilities: list[str] = Field(default_factory=list)
    rate_limit: RateLimit | None = None
    is_active: bool = True
    features: AgentFeatures = Field(default_factory=AgentFeatures)
    created_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)

    def to_public(self) -> "Agent":
        """Public view without secrets."""
        return Agent(
            id=self.id,
            name=self.name,
            description=self.description,
            model=self.model,
            status="active" if self.is_active else "inactive",
            capabilities=list(self.capabilities),
            provider=self.provider,
        )

    def to_file_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Agent(CamelModel):
    """Agent as exposed to clients."""

    id: str
    name: str
    description: str
    model: str
    status: AgentStatus
    capabilities: list[str] = Field(default_factory=list)
    provider: str


class AgentHealthStatus(CamelModel):
    agent_id: str
    status: AgentStatus
    response_time: float | None = None
    last_checked: str = Field(default_factory=_now_iso)
    error: str | None = None

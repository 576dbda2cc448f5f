"""Chat request, response and streaming models."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from .agents import CamelModel


class ChatMessage(CamelModel):
    id: str | None = None
    role: Literal["user", "assistant", "system"]
    content: str
    metadata: dict[str, Any] | None = None


class ChatOptions(CamelModel):
    stream: bool | None = None
    chat_id: str | None = None
    detail: bool | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    variables: dict[str, Any] | None = None
    response_chat_item_id: str | None = None


class ChatRequest(CamelModel):
    """Body of ``POST /api/chat/completions``."""

    agent_id: Annotated[str, Field(min_length=1)]
    messages: Annotated[list[ChatMessage], Field(min_length=1)]
    stream: bool = False
    options: ChatOptions | None = None

    # FastGPT clients send these at the top level instead of under ``options``
    chat_id: str | None = None
    detail: bool | None = None
    temperature: Annotated[float | None, Field(ge=0, le=2)] = None
    max_tokens: Annotated[int | None, Field(ge=1, le=32768)] = None
    variables: dict[str, Any] | None = None
    response_chat_item_id: str | None = None

    def effective_options(self) -> ChatOptions:
        """Merge ``options`` with top-level overrides; top-level values win."""
        merged = self.options.model_dump(exclude_none=True) if self.options else {}
        for field in (
            "chat_id",
            "detail",
            "temperature",
            "max_tokens",
            "variables",
            "response_chat_item_id",
        ):
            value = getattr(self, field)
            if value is not None:
                merged[field] = value
        return ChatOptions(**merged)


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: str | None = "stop"


class ChatUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponse(BaseModel):
    """OpenAI-shaped chat completion."""

    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: list[ChatChoice]
    usage: ChatUsage | None = None


class StreamStatus(CamelModel):
    type: Literal["flowNodeStatus", "progress", "error", "complete"]
    status: Literal["running", "completed", "error"]
    module_name: str | None = None
    progress: float | None = None
    error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @property
    def is_terminal(self) -> bool:
        return self.type in ("complete", "error")

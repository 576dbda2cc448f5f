"""FastGPT chat history and feedback models."""

from typing import Annotated, Any, Literal

from pydantic import Field

from .agents import CamelModel


class ChatHistorySummary(CamelModel):
    chat_id: str
    app_id: str | None = None
    title: str
    created_at: str
    updated_at: str
    message_count: int = 0
    tags: list[str] | None = None
    raw: dict[str, Any] | None = None


class ChatHistoryMessage(CamelModel):
    id: str | None = None
    data_id: str | None = None
    role: Literal["user", "assistant", "system"]
    content: str
    feedback: Literal["good", "bad"] | None = None
    raw: dict[str, Any] | None = None


class ChatHistoryDetail(CamelModel):
    chat_id: str
    app_id: str | None = None
    title: str | None = None
    messages: list[ChatHistoryMessage] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class FeedbackRequest(CamelModel):
    """Body of ``POST /api/chat/feedback``.

    Sending neither feedback field clears the rating of the message.
    """

    agent_id: Annotated[str, Field(min_length=1)]
    chat_id: Annotated[str, Field(min_length=1)]
    data_id: Annotated[str, Field(min_length=1)]
    user_good_feedback: str | None = None
    user_bad_feedback: str | None = None

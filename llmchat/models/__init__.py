"""Pydantic models for agents and chat traffic."""

from .agents import Agent, AgentConfig, AgentFeatures, AgentHealthStatus, StreamingConfig
from .chat import (
    ChatChoice,
    ChatMessage,
    ChatOptions,
    ChatRequest,
    ChatResponse,
    ChatUsage,
    StreamStatus,
)
from .history import (
    ChatHistoryDetail,
    ChatHistoryMessage,
    ChatHistorySummary,
    FeedbackRequest,
)


__all__ = [
    "Agent",
    "AgentConfig",
    "AgentFeatures",
    "AgentHealthStatus",
    "StreamingConfig",
    "ChatChoice",
    "ChatMessage",
    "ChatOptions",
    "ChatRequest",
    "ChatResponse",
    "ChatUsage",
    "StreamStatus",
    "ChatHistoryDetail",
    "ChatHistoryMessage",
    "ChatHistorySummary",
    "FeedbackRequest",
]

"""Provider adapters translating between the gateway and upstream chat APIs."""

import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from llmchat.models.agents import AgentConfig
from llmchat.models.chat import (
    ChatChoice,
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatUsage,
)


DEFAULT_TEMPERATURE = 0.7
ANTHROPIC_DEFAULT_MAX_TOKENS = 4096
ANTHROPIC_VERSION = "2023-06-01"


def generate_id() -> str:
    return uuid.uuid4().hex


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _messages(messages: Sequence[ChatMessage]) -> list[dict[str, str]]:
    return [{"role": message.role, "content": message.content} for message in messages]


def _stream_enabled(config: AgentConfig, stream: bool) -> bool:
    return stream and config.features.streaming_config.enabled


class ProviderAdapter(ABC):
    """Translate requests and responses for one upstream API family."""

    name: str = "base"

    @abstractmethod
    def transform_request(
        self,
        messages: Sequence[ChatMessage],
        config: AgentConfig,
        stream: bool = False,
        options: ChatOptions | None = None,
    ) -> dict[str, Any]:
        """Build the upstream request body."""

    @abstractmethod
    def transform_response(self, response: dict[str, Any]) -> ChatResponse:
        """Normalize an upstream completion into a :class:`ChatResponse`."""

    @abstractmethod
    def transform_stream_chunk(self, chunk: Any) -> str:
        """Extract text content from one decoded stream payload, or ``""``."""

    @abstractmethod
    def validate_config(self, config: AgentConfig) -> bool:
        """Whether the agent definition looks usable with this provider."""

    def build_headers(self, config: AgentConfig) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {config.api_key}",
        }


class FastGPTProvider(ProviderAdapter):
    name = "fastgpt"

    def transform_request(
        self,
        messages: Sequence[ChatMessage],
        config: AgentConfig,
        stream: bool = False,
        options: ChatOptions | None = None,
    ) -> dict[str, Any]:
        options = options or ChatOptions()
        request: dict[str, Any] = {
            "chatId": options.chat_id or f"chat_{int(time.time() * 1000)}",
            "stream": _stream_enabled(config, stream),
            "detail": _first(options.detail, config.features.supports_detail, False),
            "messages": _messages(messages),
        }
        if options.variables:
            request["variables"] = options.variables
        if options.response_chat_item_id:
            request["responseChatItemId"] = options.response_chat_item_id
        if config.system_prompt:
            request["messages"].insert(
                0, {"role": "system", "content": config.system_prompt}
            )
        return request

    def transform_response(self, response: dict[str, Any]) -> ChatResponse:
        choices = response.get("choices") or []
        first = choices[0] if choices else {}
        message = first.get("message") or {}
        return ChatResponse(
            id=response.get("id") or generate_id(),
            object=response.get("object") or "chat.completion",
            created=response.get("created") or int(time.time()),
            model=response.get("model") or "fastgpt",
            choices=[
                ChatChoice(
                    index=choice.get("index", index),
                    message=ChatMessage(
                        role=(choice.get("message") or {}).get("role", "assistant"),
                        content=(choice.get("message") or {}).get("content") or "",
                    ),
                    finish_reason=choice.get("finish_reason") or "stop",
                )
                for index, choice in enumerate(choices)
            ]
            or [
                ChatChoice(
                    message=ChatMessage(
                        role="assistant", content=message.get("content") or ""
                    ),
                    finish_reason=first.get("finish_reason") or "stop",
                )
            ],
            usage=ChatUsage(**response["usage"]) if response.get("usage") else None,
        )

    def transform_stream_chunk(self, chunk: Any) -> str:
        return _openai_delta_content(chunk)

    def validate_config(self, config: AgentConfig) -> bool:
        return (
            config.provider == "fastgpt"
            and config.api_key.startswith("fastgpt-")
            and "/chat/completions" in config.endpoint
        )


class OpenAIProvider(ProviderAdapter):
    name = "openai"

    def transform_request(
        self,
        messages: Sequence[ChatMessage],
        config: AgentConfig,
        stream: bool = False,
        options: ChatOptions | None = None,
    ) -> dict[str, Any]:
        options = options or ChatOptions()
        request: dict[str, Any] = {
            "model": config.model,
            "messages": _messages(messages),
            "stream": _stream_enabled(config, stream),
            "temperature": _first(
                options.temperature, config.temperature, DEFAULT_TEMPERATURE
            ),
        }
        max_tokens = _first(options.max_tokens, config.max_tokens)
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        return request

    def transform_response(self, response: dict[str, Any]) -> ChatResponse:
        return ChatResponse(
            id=response.get("id") or generate_id(),
            object=response.get("object") or "chat.completion",
            created=response.get("created") or int(time.time()),
            model=response.get("model") or "",
            choices=[
                ChatChoice(
                    index=choice.get("index", index),
                    message=ChatMessage(
                        role=choice["message"].get("role", "assistant"),
                        content=choice["message"].get("content") or "",
                    ),
                    finish_reason=choice.get("finish_reason"),
                )
                for index, choice in enumerate(response.get("choices") or [])
            ],
            usage=ChatUsage(**response["usage"]) if response.get("usage") else None,
        )

    def transform_stream_chunk(self, chunk: Any) -> str:
        return _openai_delta_content(chunk)

    def validate_config(self, config: AgentConfig) -> bool:
        return (
            config.provider == "openai"
            and config.api_key.startswith("sk-")
            and "openai.com" in config.endpoint
        )


class AnthropicProvider(ProviderAdapter):
    name = "anthropic"

    def transform_request(
        self,
        messages: Sequence[ChatMessage],
        config: AgentConfig,
        stream: bool = False,
        options: ChatOptions | None = None,
    ) -> dict[str, Any]:
        options = options or ChatOptions()
        return {
            "model": config.model,
            "max_tokens": _first(
                options.max_tokens, config.max_tokens, ANTHROPIC_DEFAULT_MAX_TOKENS
            ),
            "messages": _messages(messages),
            "stream": _stream_enabled(config, stream),
            "temperature": _first(
                options.temperature, config.temperature, DEFAULT_TEMPERATURE
            ),
        }

    def transform_response(self, response: dict[str, Any]) -> ChatResponse:
        content = response.get("content") or []
        text = "".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type", "text") == "text"
        )
        usage = response.get("usage") or {}
        input_tokens = usage.get("input_tokens") or 0
        output_tokens = usage.get("output_tokens") or 0
        return ChatResponse(
            id=response.get("id") or generate_id(),
            created=int(time.time()),
            model=response.get("model") or "",
            choices=[
                ChatChoice(
                    message=ChatMessage(role="assistant", content=text),
                    finish_reason=response.get("stop_reason") or "stop",
                )
            ],
            usage=ChatUsage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
            ),
        )

    def transform_stream_chunk(self, chunk: Any) -> str:
        if isinstance(chunk, dict) and chunk.get("type") == "content_block_delta":
            delta = chunk.get("delta") or {}
            return delta.get("text") or ""
        return ""

    def validate_config(self, config: AgentConfig) -> bool:
        return (
            config.provider == "anthropic"
            and config.api_key.startswith("sk-ant-")
            and "anthropic.com" in config.endpoint
        )

    def build_headers(self, config: AgentConfig) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }


def _openai_delta_content(chunk: Any) -> str:
    if not isinstance(chunk, dict):
        return ""
    choices = chunk.get("choices")
    if choices and isinstance(choices[0], dict):
        delta = choices[0].get("delta")
        if isinstance(delta, dict):
            return delta.get("content") or ""
    return ""


class ProviderRegistry:
    """Lookup of adapters by provider name."""

    def __init__(self, providers: Sequence[ProviderAdapter] | None = None) -> None:
        self._providers: dict[str, ProviderAdapter] = {}
        for provider in providers or (
            FastGPTProvider(),
            OpenAIProvider(),
            AnthropicProvider(),
        ):
            self.register(provider)

    def register(self, provider: ProviderAdapter) -> None:
        self._providers[provider.name.lower()] = provider

    def get(self, name: str) -> ProviderAdapter | None:
        return self._providers.get(name.lower())

    def names(self) -> list[str]:
        return sorted(self._providers)

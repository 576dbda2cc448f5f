"""Chat completion proxying to upstream agent providers."""

from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from llmchat.core.errors import (
    UpstreamError,
    UpstreamStreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from llmchat.core.logging import get_logger
from llmchat.models.agents import AgentConfig
from llmchat.models.chat import ChatMessage, ChatOptions, ChatResponse
from llmchat.observability.chat_log import ChatLogService
from llmchat.streaming.relay import RelayContext, StreamRelay, StreamUpdate
from llmchat.streaming.sse import SSEParser

from .agent_config import AgentConfigService
from .providers import ProviderAdapter, ProviderRegistry


logger = get_logger(__name__)


class ChatProxyService:
    """Send chat requests to the agent's provider, plain or streaming."""

    def __init__(
        self,
        agent_service: AgentConfigService,
        client: httpx.AsyncClient,
        chat_log: ChatLogService | None = None,
        providers: ProviderRegistry | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        self.agent_service = agent_service
        self.client = client
        self.chat_log = chat_log
        self.providers = providers or ProviderRegistry()
        self.request_timeout = request_timeout

    async def resolve_agent(
        self, agent_id: str, streaming: bool = False
    ) -> tuple[AgentConfig, ProviderAdapter]:
        """Look up an active agent and its provider adapter.

        Raises:
            AgentNotFoundError: Unknown agent id
            ValidationError: Inactive agent, unsupported provider, or streaming
                requested for an agent without streaming support
        """
        config = await self.agent_service.require_agent(agent_id)
        if not config.is_active:
            raise ValidationError(f"Agent is inactive: {agent_id}")
        if streaming and not config.features.streaming_config.enabled:
            raise ValidationError(f"Agent does not support streaming: {agent_id}")

        provider = self.providers.get(config.provider)
        if provider is None:
            raise ValidationError(f"Unsupported provider: {config.provider}")
        return config, provider

    async def send_message(
        self,
        agent_id: str,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        config, provider = await self.resolve_agent(agent_id)
        request_data = provider.transform_request(messages, config, False, options)
        headers = provider.build_headers(config)

        logger.info(
            "chat_request_started",
            agent_id=agent_id,
            provider=config.provider,
            messages=len(messages),
            stream=False,
            category="http",
        )

        try:
            response = await self.client.post(
                config.endpoint,
                json=request_data,
                headers=headers,
                timeout=self.request_timeout,
            )
            response.raise_for_status()
            raw: Any = response.json()
        except httpx.TimeoutException as e:
            logger.warning("chat_request_timeout", agent_id=agent_id, category="http")
            raise UpstreamTimeoutError(f"Agent request timed out: {agent_id}") from e
        except httpx.HTTPStatusError as e:
            logger.warning(
                "chat_request_upstream_error",
                agent_id=agent_id,
                status_code=e.response.status_code,
                category="http",
            )
            raise UpstreamError(
                f"Agent request failed with status {e.response.status_code}",
                upstream_status=e.response.status_code,
                details={"body": e.response.text[:500]},
            ) from e
        except httpx.HTTPError as e:
            logger.warning(
                "chat_request_failed", agent_id=agent_id, error=str(e), category="http"
            )
            raise UpstreamError(f"Agent request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError("Agent returned a non-JSON response") from e

        try:
            normalized = provider.transform_response(raw)
        except (KeyError, TypeError, AttributeError, IndexError) as e:
            raise UpstreamError(
                f"Agent returned an unexpected response shape: {e}"
            ) from e

        if self.chat_log is not None:
            await self.chat_log.log_completion(
                agent_id=agent_id,
                provider=config.provider,
                endpoint=config.endpoint,
                request_meta={
                    "messagesCount": len(messages),
                    "chatId": request_data.get("chatId"),
                },
                raw_response=raw,
                normalized_response=normalized.model_dump(exclude_none=True),
            )
        return normalized

    async def stream_message(
        self,
        agent_id: str,
        messages: Sequence[ChatMessage],
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamUpdate]:
        """Relay an upstream stream as :class:`StreamUpdate` objects.

        The stream always ends with a complete status unless the transport
        fails, in which case :class:`UpstreamStreamError` is raised after the
        failure has been recorded.
        """
        config, provider = await self.resolve_agent(agent_id, streaming=True)
        request_data = provider.transform_request(messages, config, True, options)
        headers = provider.build_headers(config)

        relay = StreamRelay(
            provider,
            RelayContext(
                agent_id=agent_id,
                provider=config.provider,
                endpoint=config.endpoint,
                chat_id=request_data.get("chatId"),
            ),
            self.chat_log,
        )

        for update in await relay.announce_chat_id():
            yield update

        logger.info(
            "chat_stream_started",
            agent_id=agent_id,
            provider=config.provider,
            messages=len(messages),
            category="streaming",
        )

        parser = SSEParser()
        try:
            async with self.client.stream(
                "POST", config.endpoint, json=request_data, headers=headers
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise UpstreamError(
                        f"Agent stream failed with status {response.status_code}",
                        upstream_status=response.status_code,
                        details={"body": body[:500]},
                    )

                async for text in response.aiter_text():
                    for sse in parser.feed(text):
                        for update in await relay.handle_event(sse):
                            yield update
                        if relay.finished:
                            break
                    if relay.finished:
                        break

                if not relay.finished:
                    for sse in parser.flush():
                        for update in await relay.handle_event(sse):
                            yield update
        except UpstreamError as e:
            await relay.record_failure(e.message)
            raise
        except httpx.HTTPError as e:
            message = str(e) or type(e).__name__
            await relay.record_failure(message)
            logger.warning(
                "chat_stream_failed",
                agent_id=agent_id,
                error=message,
                error_type=type(e).__name__,
                category="streaming",
            )
            raise UpstreamStreamError(f"Agent stream failed: {message}") from e

        for update in await relay.finish():
            yield update

        logger.info("chat_stream_completed", agent_id=agent_id, category="streaming")

    async def validate_agent_config(self, agent_id: str) -> bool:
        """Whether the agent exists and its provider accepts the configuration."""
        config = await self.agent_service.get_agent(agent_id)
        if config is None:
            return False
        provider = self.providers.get(config.provider)
        if provider is None:
            return False
        return provider.validate_config(config)

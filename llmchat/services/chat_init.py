"""FastGPT chat initialization data and welcome text streaming."""

import asyncio
import re
from collections.abc import AsyncIterator
from typing import Any

import httpx

from llmchat.cache import AdaptiveTTLCache, AdaptiveTtlPolicy
from llmchat.config.chat import ChatSettings
from llmchat.core.errors import UpstreamError, UpstreamTimeoutError, ValidationError
from llmchat.core.logging import get_logger

from .agent_config import AgentConfigService


logger = get_logger(__name__)

_APP_ID = re.compile(r"^[a-fA-F0-9]{24}$")
_COMPLETIONS_PATH = "/api/v1/chat/completions"
_INIT_PATH = "/api/core/chat/init"


def normalize_welcome_text(text: str) -> str:
    """Turn real and literal (backslash-escaped) line breaks into ``\\n``."""
    if not text:
        return ""
    return (
        text.replace("\r\n", "\n")
        .replace("\\r\\n", "\n")
        .replace("\\n", "\n")
        .replace("\r", "\n")
        .replace("\\r", "\n")
    )


def extract_welcome_text(init_data: dict[str, Any]) -> str:
    app = init_data.get("app") or {}
    chat_config = app.get("chatConfig") or {}
    return chat_config.get("welcomeText") or ""


class ChatInitService:
    """Fetch and cache FastGPT ``/api/core/chat/init`` responses."""

    def __init__(
        self,
        agent_service: AgentConfigService,
        client: httpx.AsyncClient,
        settings: ChatSettings | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        settings = settings or ChatSettings()
        self.agent_service = agent_service
        self.client = client
        self.request_timeout = request_timeout
        self.welcome_char_delay = settings.welcome_char_delay
        self.cache: AdaptiveTTLCache[dict[str, Any]] = AdaptiveTTLCache(
            AdaptiveTtlPolicy(
                initial_ttl=settings.init_cache_initial_ttl,
                min_ttl=settings.init_cache_min_ttl,
                max_ttl=settings.init_cache_max_ttl,
                step=settings.init_cache_step,
                sample_size=settings.init_cache_sample_size,
                adjust_interval=settings.init_cache_adjust_interval,
            ),
            name="chat_init",
        )

    async def get_init_data(self, agent_id: str, chat_id: str | None = None) -> dict[str, Any]:
        """Init data for an agent, served from cache while fresh.

        Raises:
            AgentNotFoundError: Unknown agent id
            ValidationError: Agent is not FastGPT or lacks a valid ``app_id``
            UpstreamError: FastGPT call failed or replied with a non-200 code
        """
        cache_key = f"{agent_id}_{chat_id or 'default'}"
        return await self.cache.get_or_fetch(
            cache_key, lambda: self._fetch_init_data(agent_id, chat_id)
        )

    async def stream_welcome_text(self, text: str) -> AsyncIterator[str]:
        """Yield the normalized welcome text one character at a time."""
        chars = list(normalize_welcome_text(text))
        for index, char in enumerate(chars):
            yield char
            if index < len(chars) - 1 and self.welcome_char_delay > 0:
                await asyncio.sleep(self.welcome_char_delay)

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("chat_init_cache_cleared", category="cache")

    def clear_expired_cache(self) -> int:
        return self.cache.purge_expired()

    async def _fetch_init_data(
        self, agent_id: str, chat_id: str | None
    ) -> dict[str, Any]:
        agent = await self.agent_service.require_agent(agent_id)
        if agent.provider != "fastgpt":
            raise ValidationError(
                f"Agent {agent_id} is not a FastGPT agent; init data is unavailable"
            )
        if not agent.app_id or not _APP_ID.match(agent.app_id):
            raise ValidationError(f"FastGPT agent {agent_id} has no valid appId")

        base_url = agent.endpoint.replace(_COMPLETIONS_PATH, "")
        params = {"appId": agent.app_id}
        if chat_id:
            params["chatId"] = chat_id

        logger.info(
            "chat_init_request",
            agent_id=agent_id,
            url=f"{base_url}{_INIT_PATH}",
            category="http",
        )
        try:
            response = await self.client.get(
                f"{base_url}{_INIT_PATH}",
                params=params,
                headers={"Authorization": f"Bearer {agent.api_key}"},
                timeout=self.request_timeout,
            )
            body: Any = response.json()
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError("FastGPT init request timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"FastGPT init request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError(
                "FastGPT init returned a non-JSON response",
                upstream_status=response.status_code,
            ) from e

        if not isinstance(body, dict) or body.get("code") != 200:
            message = body.get("message") if isinstance(body, dict) else None
            raise UpstreamError(
                f"FastGPT API error: {message or 'unknown error'}",
                upstream_status=response.status_code,
            )

        data = body.get("data")
        return data if isinstance(data, dict) else {}

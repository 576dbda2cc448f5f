"""FastGPT chat history and message feedback.

FastGPT deployments expose the history API under a few different prefixes
depending on version. Each call walks the candidate paths in order and moves
on only when a path answers 404. History lists and details are served through
their own adaptive caches; writes invalidate the affected entries.
"""

import json
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

import httpx

from llmchat.cache import AdaptiveTTLCache, AdaptiveTtlPolicy
from llmchat.config.chat import ChatSettings
from llmchat.core.errors import UpstreamError, UpstreamTimeoutError, ValidationError
from llmchat.core.logging import get_logger
from llmchat.models.agents import AgentConfig
from llmchat.models.history import (
    ChatHistoryDetail,
    ChatHistoryMessage,
    ChatHistorySummary,
    FeedbackRequest,
)
from llmchat.observability.events import utc_timestamp

from .agent_config import AgentConfigService


logger = get_logger(__name__)

HISTORY_PATH_BASES = (
    "/api/core/chat/history",
    "/api/v1/core/chat/history",
    "/api/chat/history",
    "/api/v1/chat/history",
)
FEEDBACK_PATH_BASES = (
    "/api/core/chat/feedback",
    "/api/v1/core/chat/feedback",
    "/api/chat/feedback",
    "/api/v1/chat/feedback",
)

UNTITLED_CHAT = "Untitled chat"

_APP_ID = re.compile(r"^[a-fA-F0-9]{24}$")
_COMPLETIONS_PATH = "/api/v1/chat/completions"

Attempt = tuple[str, str]


def fastgpt_base_url(endpoint: str) -> str:
    """Strip stray backticks/whitespace and the completions path from an endpoint."""
    cleaned = re.sub(r"[`\s]+", "", endpoint).rstrip("/")
    if cleaned.endswith(_COMPLETIONS_PATH):
        return cleaned[: -len(_COMPLETIONS_PATH)]
    return cleaned


def build_attempts(
    method: str, bases: Iterable[str], suffixes: Iterable[str]
) -> list[Attempt]:
    """Every ``base/suffix`` combination once, in order."""
    attempts: list[Attempt] = []
    suffixes = tuple(suffixes)
    for base in bases:
        for suffix in suffixes:
            path = re.sub(r"/+", "/", f"{base}/{suffix.lstrip('/')}")
            if (method, path) not in attempts:
                attempts.append((method, path))
    return attempts


def _first(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = mapping.get(key)
        if value:
            return value
    return None


def _timestamp(value: Any) -> str:
    # FastGPT sends either ISO strings or epoch milliseconds
    if isinstance(value, int | float) and not isinstance(value, bool):
        moment = datetime.fromtimestamp(value / 1000, UTC)
        return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return str(value)


def _count(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def normalize_history_summary(item: Mapping[str, Any]) -> ChatHistorySummary:
    chat_id = _first(item, "chatId", "id", "_id", "historyId", "history_id") or ""
    title = (
        _first(item, "title", "name", "latestQuestion", "latest_question")
        or UNTITLED_CHAT
    )
    created_at = (
        _first(item, "createTime", "create_time", "createdAt", "created_at", "time")
        or utc_timestamp()
    )
    updated_at = (
        _first(
            item,
            "updateTime",
            "update_time",
            "updatedAt",
            "updated_at",
            "lastUpdateTime",
            "last_update_time",
        )
        or created_at
    )
    tags = item.get("tags")

    return ChatHistorySummary(
        chat_id=str(chat_id),
        app_id=_first(item, "appId", "app_id"),
        title=str(title),
        created_at=_timestamp(created_at),
        updated_at=_timestamp(updated_at),
        message_count=_count(
            _first(item, "messageCount", "msgCount", "totalMessages", "total")
        ),
        tags=[str(tag) for tag in tags] if isinstance(tags, list) else None,
        raw=dict(item),
    )


def normalize_history_message(entry: Mapping[str, Any]) -> ChatHistoryMessage:
    data_id = _first(entry, "dataId", "data_id", "_id", "id")
    raw_role = _first(entry, "role", "obj", "type")
    role_key = raw_role.lower() if isinstance(raw_role, str) else ""

    if "system" in role_key:
        role = "system"
    elif any(marker in role_key for marker in ("assistant", "ai", "bot")):
        role = "assistant"
    else:
        role = "user"

    value = next(
        (
            entry[key]
            for key in ("value", "content", "answer", "text")
            if entry.get(key) is not None
        ),
        "",
    )
    if isinstance(value, list):
        content = "\n".join(
            part if isinstance(part, str) else json.dumps(part, ensure_ascii=False)
            for part in value
        )
    else:
        content = str(value)

    feedback = None
    if entry.get("userGoodFeedback"):
        feedback = "good"
    elif entry.get("userBadFeedback"):
        feedback = "bad"

    return ChatHistoryMessage(
        id=str(data_id) if data_id else None,
        data_id=str(data_id) if data_id else None,
        role=role,
        content=content,
        feedback=feedback,
        raw=dict(entry),
    )


def normalize_history_detail(body: Mapping[str, Any]) -> ChatHistoryDetail:
    data = body.get("data")
    if not isinstance(data, Mapping):
        data = body

    entries = _first(data, "list", "messages", "history", "chatHistoryList", "detail")
    messages = (
        [normalize_history_message(e) for e in entries if isinstance(e, Mapping)]
        if isinstance(entries, list)
        else []
    )
    chat_id = _first(data, "chatId", "historyId", "id", "chat_id", "history_id")
    title = _first(data, "title", "historyName", "history_title")

    return ChatHistoryDetail(
        chat_id=str(chat_id) if chat_id else "",
        app_id=_first(data, "appId", "app_id"),
        title=str(title) if title else None,
        messages=messages,
        metadata={"total": data.get("total"), "hasMore": data.get("hasMore")},
    )


def _history_list(body: Mapping[str, Any]) -> list[Any]:
    data = body.get("data")
    candidates = (
        data.get("list") if isinstance(data, Mapping) else None,
        data,
        body.get("historyList"),
        body.get("list"),
    )
    return next((c for c in candidates if isinstance(c, list)), [])


def _policy(settings: ChatSettings, prefix: str) -> AdaptiveTtlPolicy:
    return AdaptiveTtlPolicy(
        initial_ttl=getattr(settings, f"{prefix}_initial_ttl"),
        min_ttl=getattr(settings, f"{prefix}_min_ttl"),
        max_ttl=getattr(settings, f"{prefix}_max_ttl"),
        step=getattr(settings, f"{prefix}_step"),
        sample_size=getattr(settings, f"{prefix}_sample_size"),
        adjust_interval=getattr(settings, f"{prefix}_adjust_interval"),
    )


class FastGPTSessionService:
    """List, read, delete and rate FastGPT chat sessions of an agent."""

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
        self.list_cache: AdaptiveTTLCache[list[ChatHistorySummary]] = AdaptiveTTLCache(
            _policy(settings, "history_list_cache"), name="history_list"
        )
        self.detail_cache: AdaptiveTTLCache[ChatHistoryDetail] = AdaptiveTTLCache(
            _policy(settings, "history_detail_cache"), name="history_detail"
        )

    async def list_histories(
        self, agent_id: str, page: int | None = None, page_size: int | None = None
    ) -> list[ChatHistorySummary]:
        """Chat sessions of an agent, newest first as FastGPT returns them.

        Raises:
            AgentNotFoundError: Unknown agent id
            ValidationError: Agent is not FastGPT or lacks a valid ``app_id``
            UpstreamError: Every candidate path failed or FastGPT reported an error
        """
        agent = await self._require_fastgpt_agent(agent_id)
        params: dict[str, Any] = {"appId": agent.app_id}
        if page is not None:
            params["page"] = page
        if page_size is not None:
            params["pageSize"] = page_size

        async def fetch() -> list[ChatHistorySummary]:
            body = await self._request(
                agent,
                build_attempts(
                    "GET", HISTORY_PATH_BASES, ("list", "getHistoryList", "getHistories")
                ),
                action="history list",
                params=params,
            )
            return [
                normalize_history_summary(item)
                for item in _history_list(body)
                if isinstance(item, Mapping)
            ]

        key = f"{agent_id}::list:{page or 1}:{page_size or 'default'}"
        return await self.list_cache.get_or_fetch(key, fetch)

    async def get_history_detail(self, agent_id: str, chat_id: str) -> ChatHistoryDetail:
        agent = await self._require_fastgpt_agent(agent_id)

        async def fetch() -> ChatHistoryDetail:
            body = await self._request(
                agent,
                build_attempts(
                    "GET", HISTORY_PATH_BASES, ("detail", "getHistory", "messages")
                ),
                action="history detail",
                params={"appId": agent.app_id, "chatId": chat_id},
            )
            return normalize_history_detail(body)

        return await self.detail_cache.get_or_fetch(f"{agent_id}::detail:{chat_id}", fetch)

    async def delete_history(self, agent_id: str, chat_id: str) -> None:
        agent = await self._require_fastgpt_agent(agent_id)
        await self._request(
            agent,
            build_attempts(
                "POST", HISTORY_PATH_BASES, ("delete", "removeHistory", "delHistory")
            ),
            action="history delete",
            payload={"appId": agent.app_id, "chatId": chat_id},
        )
        self.invalidate(agent_id, chat_id)

    async def clear_histories(self, agent_id: str) -> None:
        agent = await self._require_fastgpt_agent(agent_id)
        attempts = build_attempts(
            "POST", HISTORY_PATH_BASES, ("clear", "clearHistories")
        ) + build_attempts("DELETE", HISTORY_PATH_BASES, ("clear",))
        await self._request(
            agent, attempts, action="history clear", payload={"appId": agent.app_id}
        )
        self.invalidate(agent_id)

    async def update_user_feedback(self, feedback: FeedbackRequest) -> None:
        """Rate (or un-rate) one assistant message of a chat.

        Unlike the history calls, FastGPT must answer with ``code == 200``.
        """
        agent = await self._require_fastgpt_agent(feedback.agent_id)
        payload: dict[str, Any] = {
            "appId": agent.app_id,
            "chatId": feedback.chat_id,
            "dataId": feedback.data_id,
        }
        if feedback.user_good_feedback:
            payload["userGoodFeedback"] = feedback.user_good_feedback
        if feedback.user_bad_feedback:
            payload["userBadFeedback"] = feedback.user_bad_feedback

        await self._request(
            agent,
            build_attempts("POST", FEEDBACK_PATH_BASES, ("updateUserFeedback",)),
            action="feedback",
            payload=payload,
            require_code=True,
        )
        self.detail_cache.invalidate(key=f"{feedback.agent_id}::detail:{feedback.chat_id}")

    def invalidate(self, agent_id: str, chat_id: str | None = None) -> None:
        """Drop cached lists of an agent and one (or every) cached detail."""
        self.list_cache.invalidate(prefix=f"{agent_id}::list")
        if chat_id:
            self.detail_cache.invalidate(key=f"{agent_id}::detail:{chat_id}")
        else:
            self.detail_cache.invalidate(prefix=f"{agent_id}::detail")

    async def _require_fastgpt_agent(self, agent_id: str) -> AgentConfig:
        agent = await self.agent_service.require_agent(agent_id)
        if agent.provider != "fastgpt":
            raise ValidationError(
                f"Agent {agent_id} is not a FastGPT agent; chat history is unavailable"
            )
        if not agent.app_id or not _APP_ID.match(agent.app_id):
            raise ValidationError(f"FastGPT agent {agent_id} has no valid appId")
        return agent

    async def _request(
        self,
        agent: AgentConfig,
        attempts: list[Attempt],
        *,
        action: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
        require_code: bool = False,
    ) -> dict[str, Any]:
        base_url = fastgpt_base_url(agent.endpoint)
        headers = {
            "Authorization": f"Bearer {agent.api_key}",
            "Content-Type": "application/json",
        }

        for method, path in attempts:
            url = f"{base_url}{path}"
            logger.debug(
                "fastgpt_session_request",
                agent_id=agent.id,
                action=action,
                method=method,
                url=url,
                category="http",
            )
            try:
                response = await self.client.request(
                    method,
                    url,
                    params=params,
                    json=payload,
                    headers=headers,
                    timeout=self.request_timeout,
                )
            except httpx.TimeoutException as e:
                raise UpstreamTimeoutError(f"FastGPT {action} request timed out") from e
            except httpx.HTTPError as e:
                raise UpstreamError(f"FastGPT {action} request failed: {e}") from e

            if response.status_code == 404:
                continue
            if response.status_code >= 400:
                raise UpstreamError(
                    f"FastGPT {action} failed with status {response.status_code}",
                    upstream_status=response.status_code,
                )

            try:
                body: Any = response.json()
            except ValueError as e:
                raise UpstreamError(
                    f"FastGPT {action} returned a non-JSON response",
                    upstream_status=response.status_code,
                ) from e
            if not isinstance(body, dict):
                body = {"data": body}

            code = body.get("code")
            if (require_code and code != 200) or (code and code != 200):
                raise UpstreamError(
                    f"FastGPT API error: {body.get('message') or f'{action} failed'}",
                    upstream_status=response.status_code,
                )

            logger.info(
                "fastgpt_session_response",
                agent_id=agent.id,
                action=action,
                url=url,
                category="http",
            )
            return body

        logger.warning(
            "fastgpt_session_endpoint_not_found",
            agent_id=agent.id,
            action=action,
            tried=len(attempts),
            category="http",
        )
        raise UpstreamError(f"FastGPT {action} endpoint not found", upstream_status=404)

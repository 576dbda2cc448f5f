"""Agent registry backed by a JSON file and an adaptive TTL cache."""

import asyncio
import json
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import aiofiles
import aiofiles.os
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from llmchat.cache import AdaptiveTTLCache, AdaptiveTtlPolicy
from llmchat.config.chat import AgentsSettings
from llmchat.core.errors import AgentNotFoundError, ConfigurationError, ValidationError
from llmchat.core.logging import get_logger
from llmchat.models.agents import (
    SUPPORTED_PROVIDERS,
    Agent,
    AgentConfig,
    AgentHealthStatus,
)
from llmchat.utils.jsonc import loads_jsonc


logger = get_logger(__name__)

REQUIRED_FIELDS = ("id", "name", "description", "endpoint", "apiKey", "model", "provider")

_CACHE_KEY = "agents"


def _camel_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {to_camel(key) if "_" in key else key: value for key, value in data.items()}


def validate_agent_data(data: Any, existing_ids: Iterable[str] = ()) -> list[str]:
    """Return the problems found in a raw (camelCase) agent definition.

    An empty list means the definition is acceptable.
    """
    if not isinstance(data, dict):
        return ["agent definition must be an object"]

    problems = [
        f"missing required field: {field}"
        for field in REQUIRED_FIELDS
        if not data.get(field)
    ]
    if problems:
        return problems

    if data["id"] in set(existing_ids):
        problems.append(f"duplicate agent id: {data['id']}")

    if data["provider"] not in SUPPORTED_PROVIDERS:
        problems.append(f"unsupported provider: {data['provider']}")

    endpoint = urlparse(str(data["endpoint"]))
    if endpoint.scheme not in ("http", "https") or not endpoint.netloc:
        problems.append(f"invalid endpoint URL: {data['endpoint']}")

    return problems


class AgentConfigService:
    """Load, validate, cache and update agent definitions."""

    def __init__(
        self,
        config_path: Path | str,
        cache: AdaptiveTTLCache[dict[str, AgentConfig]] | None = None,
    ) -> None:
        self.config_path = Path(config_path)
        self.cache: AdaptiveTTLCache[dict[str, AgentConfig]] = cache or AdaptiveTTLCache(
            AdaptiveTtlPolicy(initial_ttl=300.0, min_ttl=60.0, max_ttl=900.0, step=60.0),
            name="agents",
        )
        self._update_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: AgentsSettings) -> "AgentConfigService":
        policy = AdaptiveTtlPolicy(
            initial_ttl=settings.cache_initial_ttl,
            min_ttl=settings.cache_min_ttl,
            max_ttl=settings.cache_max_ttl,
            step=settings.cache_step,
        )
        return cls(settings.config_path, AdaptiveTTLCache(policy, name="agents"))

    async def load_agents(self) -> list[AgentConfig]:
        agents = await self.cache.get_or_fetch(_CACHE_KEY, self._read_agents)
        return list(agents.values())

    async def get_agent(self, agent_id: str) -> AgentConfig | None:
        agents = await self.cache.get_or_fetch(_CACHE_KEY, self._read_agents)
        return agents.get(agent_id)

    async def require_agent(self, agent_id: str) -> AgentConfig:
        """Like :meth:`get_agent` but raises :class:`AgentNotFoundError`."""
        agent = await self.get_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    async def get_available_agents(self) -> list[Agent]:
        return [agent.to_public() for agent in await self.load_agents() if agent.is_active]

    async def get_all_agents(self) -> list[Agent]:
        return [agent.to_public() for agent in await self.load_agents()]

    async def check_agent_health(self, agent_id: str) -> AgentHealthStatus:
        started = time.perf_counter()
        agent = await self.get_agent(agent_id)
        if agent is None:
            return AgentHealthStatus(
                agent_id=agent_id, status="error", error="Agent not found"
            )
        return AgentHealthStatus(
            agent_id=agent_id,
            status="active" if agent.is_active else "inactive",
            response_time=round((time.perf_counter() - started) * 1000, 3),
        )

    async def reload_agents(self) -> list[AgentConfig]:
        """Drop the cached registry and read the file again."""
        self.cache.invalidate(_CACHE_KEY)
        agents = await self.load_agents()
        logger.info("agents_reloaded", count=len(agents), category="config")
        return agents

    async def update_agent(self, agent_id: str, updates: dict[str, Any]) -> AgentConfig:
        """Merge ``updates`` into an agent, validate, persist and invalidate the cache.

        Raises:
            AgentNotFoundError: Unknown agent id
            ValidationError: The merged definition is invalid
            ConfigurationError: The agents file cannot be written
        """
        async with self._update_lock:
            agents = dict(await self.cache.get_or_fetch(_CACHE_KEY, self._read_agents))
            current = agents.get(agent_id)
            if current is None:
                raise AgentNotFoundError(agent_id)

            changes = _camel_keys(updates)
            if changes.get("id", agent_id) != agent_id:
                raise ValidationError("Agent id cannot be changed")

            merged = {**current.to_file_dict(), **changes}
            merged["id"] = agent_id
            merged.pop("updatedAt", None)

            other_ids = [other for other in agents if other != agent_id]
            problems = validate_agent_data(merged, other_ids)
            if problems:
                raise ValidationError(
                    "Updated agent configuration is invalid", details={"problems": problems}
                )
            try:
                updated = AgentConfig.model_validate(merged)
            except PydanticValidationError as e:
                raise ValidationError(
                    "Updated agent configuration is invalid",
                    details={"problems": [err["msg"] for err in e.errors()]},
                ) from e

            agents[agent_id] = updated
            await self._write_agents(agents.values())
            self.cache.invalidate(_CACHE_KEY)

        logger.info(
            "agent_updated", agent_id=agent_id, fields=sorted(changes), category="config"
        )
        return updated

    async def _read_agents(self) -> dict[str, AgentConfig]:
        try:
            async with aiofiles.open(self.config_path, encoding="utf-8") as f:
                raw = await f.read()
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read agents file {self.config_path}: {e}"
            ) from e

        try:
            document = loads_jsonc(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in agents file {self.config_path}: {e}"
            ) from e

        if not isinstance(document, dict) or not isinstance(document.get("agents"), list):
            raise ConfigurationError(
                f"Agents file {self.config_path} must contain an 'agents' array"
            )

        agents: dict[str, AgentConfig] = {}
        for item in document["agents"]:
            problems = validate_agent_data(item, agents)
            if not problems:
                try:
                    agent = AgentConfig.model_validate(item)
                except PydanticValidationError as e:
                    problems = [err["msg"] for err in e.errors()]
                else:
                    agents[agent.id] = agent
                    continue

            logger.warning(
                "agent_config_invalid",
                agent_id=item.get("id") if isinstance(item, dict) else None,
                problems=problems,
                category="config",
            )

        logger.info(
            "agents_loaded",
            path=str(self.config_path),
            count=len(agents),
            ttl_seconds=self.cache.policy.get_ttl(),
            category="config",
        )
        return agents

    async def _write_agents(self, agents: Iterable[AgentConfig]) -> None:
        document = {"agents": [agent.to_file_dict() for agent in agents]}
        # Sibling temp file, then an atomic rename over the original
        tmp_path = self.config_path.with_name(f".{self.config_path.name}.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(document, ensure_ascii=False, indent=2) + "\n")
            await aiofiles.os.replace(tmp_path, self.config_path)
        except OSError as e:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            logger.error(
                "agents_file_write_failed",
                path=str(self.config_path),
                error=str(e),
                category="config",
            )
            raise ConfigurationError(f"Cannot save agents file: {e}") from e

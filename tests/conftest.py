"""Shared test fixtures for the LLMChat gateway tests.

Fixtures build real components (settings, services, the FastAPI app) on top
of a temporary agents file; upstream providers are mocked with pytest-httpx.
"""

import json
from collections.abc import AsyncGenerator, Generator
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from llmchat.api.app import create_app
from llmchat.config.settings import Settings, reset_settings
from llmchat.core.logging import setup_logging
from llmchat.services.agent_config import AgentConfigService


FASTGPT_APP_ID = "6708e788c6ba48baa62419a5"
FASTGPT_ENDPOINT = "https://fastgpt.example.com/api/v1/chat/completions"
OPENAI_ENDPOINT = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_ENDPOINT = "https://api.anthropic.com/v1/messages"


def pytest_configure(config: pytest.Config) -> None:
    """Route test logging through the application pipeline."""
    setup_logging(json_logs=False, log_level_name="DEBUG")


def make_agent(agent_id: str, **overrides: Any) -> dict[str, Any]:
    """Raw camelCase agent definition as stored in the agents file."""
    agent: dict[str, Any] = {
        "id": agent_id,
        "name": f"Agent {agent_id}",
        "description": "Test agent",
        "endpoint": FASTGPT_ENDPOINT,
        "apiKey": "fastgpt-test-key",
        "model": "FastAI-4k",
        "provider": "fastgpt",
        "appId": FASTGPT_APP_ID,
        "isActive": True,
        "capabilities": ["chat"],
        "features": {
            "supportsChatId": True,
            "supportsStream": True,
            "supportsDetail": True,
            "streamingConfig": {"enabled": True},
        },
    }
    agent.update(overrides)
    return agent


@pytest.fixture
def agents_data() -> list[dict[str, Any]]:
    return [
        make_agent("fastgpt-assistant"),
        make_agent(
            "openai-gpt",
            endpoint=OPENAI_ENDPOINT,
            apiKey="sk-test",
            model="gpt-4o-mini",
            provider="openai",
            appId=None,
        ),
        make_agent(
            "claude",
            endpoint=ANTHROPIC_ENDPOINT,
            apiKey="sk-ant-test",
            model="claude-3-5-sonnet-20241022",
            provider="anthropic",
            appId=None,
        ),
        make_agent("retired", isActive=False),
    ]


@pytest.fixture
def agents_file(tmp_path: Path, agents_data: list[dict[str, Any]]) -> Path:
    path = tmp_path / "agents.json"
    agents = [{k: v for k, v in agent.items() if v is not None} for agent in agents_data]
    path.write_text(json.dumps({"agents": agents}, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def agent_service(agents_file: Path) -> AgentConfigService:
    return AgentConfigService(agents_file)


@pytest.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def test_settings(tmp_path: Path, agents_file: Path) -> Settings:
    """Settings isolated from the developer's environment and config files."""
    return Settings(
        agents={"config_path": str(agents_file)},
        logging={"enabled": False, "dir": str(tmp_path / "log")},
        observability={"enabled": False},
        chat={"welcome_char_delay": 0},
    )


@pytest.fixture
def client(test_settings: Settings) -> Generator[TestClient, None, None]:
    """TestClient running the full application lifespan."""
    reset_settings()
    app = create_app(test_settings)
    with TestClient(app) as test_client:
        yield test_client
    reset_settings()

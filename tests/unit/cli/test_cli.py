"""Unit tests for the command line interface."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from llmchat._version import __version__
from llmchat.cli.commands import serve as serve_module
from llmchat.cli.helpers import validate_log_level, validate_port
from llmchat.cli.main import app


pytestmark = pytest.mark.unit


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("CONFIG_FILE", "SERVER__HOST", "SERVER__PORT", "LOGGING__LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.jsonc"
    path.write_text(
        """{
  // test config
  "server": {"port": 4100},
  "observability": {
    "exporters": [{"type": "http", "endpoint": "http://x", "headers": {"X-Key": "v"}}]
  }
}""",
        encoding="utf-8",
    )
    return path


class TestMainApp:
    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help_lists_commands(self, runner):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "serve" in result.stdout
        assert "config" in result.stdout


class TestConfigShow:
    def test_json_output_masks_secrets(self, runner, config_file):
        result = runner.invoke(app, ["config", "show", "--config", str(config_file), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["server"]["port"] == 4100
        assert data["observability"]["exporters"][0]["headers"] == {"X-Key": "***"}

    def test_table_output(self, runner, config_file):
        result = runner.invoke(app, ["config", "show", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "server.port" in result.stdout
        assert "4100" in result.stdout

    def test_invalid_config_exits_with_error(self, runner, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{nope", encoding="utf-8")

        result = runner.invoke(app, ["config", "show", "--config", str(bad)])

        assert result.exit_code == 1


class TestServe:
    def test_serve_passes_overrides_to_uvicorn(self, runner, config_file, monkeypatch):
        calls = []
        monkeypatch.setattr(
            serve_module.uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs))
        )

        result = runner.invoke(
            app, ["--config", str(config_file), "serve", "--port", "4200"]
        )

        assert result.exit_code == 0, result.output
        [(args, kwargs)] = calls
        assert kwargs["port"] == 4200
        assert kwargs["host"] == "127.0.0.1"

    def test_serve_rejects_bad_port(self, runner):
        result = runner.invoke(app, ["serve", "--port", "70000"])
        assert result.exit_code != 0


class TestValidators:
    def test_validate_port(self):
        assert validate_port(None, None, 8080) == 8080  # type: ignore[arg-type]
        assert validate_port(None, None, None) is None  # type: ignore[arg-type]

    def test_validate_log_level(self):
        assert validate_log_level(None, None, "debug") == "DEBUG"  # type: ignore[arg-type]

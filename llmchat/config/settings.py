import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from llmchat.core.errors import ConfigurationError
from llmchat.core.logging import get_logger
from llmchat.utils.jsonc import loads_jsonc

from .chat import AgentsSettings, ChatSettings
from .core import CORSSettings, HTTPSettings, LoggingSettings, ServerSettings
from .observability import ObservabilitySettings


__all__ = ["Settings", "get_settings", "reset_settings", "find_config_file"]

CONFIG_FILE_CANDIDATES = (
    Path("config/config.jsonc"),
    Path("config/config.json"),
    Path("llmchat.toml"),
)


def find_config_file(base_dir: Path | None = None) -> Path | None:
    """Return the first existing default config file, if any."""
    root = base_dir or Path.cwd()
    for candidate in CONFIG_FILE_CANDIDATES:
        path = root / candidate
        if path.is_file():
            return path
    return None


class Settings(BaseSettings):
    """
    Configuration settings for the LLMChat gateway.

    Values are layered, lowest precedence first:
    1. Field defaults
    2. Config file (``CONFIG_FILE`` or config/config.jsonc, config/config.json, llmchat.toml)
    3. .env file and environment variables (``SERVER__PORT=8080``)
    4. Explicit CLI overrides
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    server: ServerSettings = Field(
        default_factory=ServerSettings,
        description="Server configuration settings",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Application logging and chat event recording",
    )

    cors: CORSSettings = Field(
        default_factory=CORSSettings,
        description="CORS configuration settings",
    )

    http: HTTPSettings = Field(
        default_factory=HTTPSettings,
        description="HTTP client configuration settings",
    )

    agents: AgentsSettings = Field(
        default_factory=AgentsSettings,
        description="Agent registry settings",
    )

    chat: ChatSettings = Field(
        default_factory=ChatSettings,
        description="Chat relay settings",
    )

    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings,
        description="Event export settings",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Init kwargs carry config file data, so the environment wins over them.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def server_url(self) -> str:
        """Get the complete server URL."""
        return f"http://{self.server.host}:{self.server.port}"

    def model_dump_safe(self) -> dict[str, Any]:
        """Dump settings with secrets masked."""
        data = self.model_dump(mode="json")
        for exporter in data.get("observability", {}).get("exporters", []):
            for secret in ("api_key", "password"):
                if exporter.get(secret):
                    exporter[secret] = "***"
            if exporter.get("headers"):
                exporter["headers"] = {k: "***" for k in exporter["headers"]}
        return data

    @classmethod
    def load_config_file(cls, config_path: Path) -> dict[str, Any]:
        """Load configuration from a file based on its extension."""
        suffix = config_path.suffix.lower()

        try:
            if suffix == ".toml":
                with config_path.open("rb") as f:
                    data: Any = tomllib.load(f)
            elif suffix in (".json", ".jsonc"):
                data = loads_jsonc(config_path.read_text(encoding="utf-8"))
            else:
                raise ConfigurationError(
                    f"Unsupported config file format: {suffix}. "
                    "Use .jsonc, .json or .toml."
                )
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read config file {config_path}: {e}"
            ) from e
        except (ValueError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(
                f"Invalid syntax in config file {config_path}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file {config_path} must contain an object at the top level"
            )
        return data

    @classmethod
    def from_config(
        cls,
        config_path: Path | str | None = None,
        cli_context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> "Settings":
        """Create a Settings instance from a config file, the environment and overrides."""
        if config_path is None:
            config_path_env = os.environ.get("CONFIG_FILE")
            if config_path_env:
                config_path = Path(config_path_env)

        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_config_file()

        config_data: dict[str, Any] = {}
        if config_path and config_path.exists():
            config_data = cls.load_config_file(config_path)
            get_logger(__name__).info(
                "config_file_loaded",
                path=str(config_path),
                category="config",
            )

        settings = cls(**config_data)

        def _apply_overrides(target: Any, overrides: dict[str, Any]) -> None:
            for k, v in overrides.items():
                if (
                    isinstance(v, dict)
                    and hasattr(target, k)
                    and isinstance(getattr(target, k), BaseModel)
                ):
                    _apply_overrides(getattr(target, k), v)
                else:
                    setattr(target, k, v)

        if kwargs:
            _apply_overrides(settings, kwargs)

        if cli_context:
            # Only override when a value is explicitly provided
            server_overrides: dict[str, Any] = {}
            for key in ("host", "port", "reload"):
                if cli_context.get(key) is not None:
                    server_overrides[key] = cli_context[key]

            logging_overrides: dict[str, Any] = {}
            if cli_context.get("log_level") is not None:
                logging_overrides["level"] = str(cli_context["log_level"]).upper()
            if cli_context.get("log_file") is not None:
                logging_overrides["file"] = cli_context["log_file"]

            if server_overrides:
                _apply_overrides(settings, {"server": server_overrides})
            if logging_overrides:
                _apply_overrides(settings, {"logging": logging_overrides})

        return settings


_settings: Settings | None = None


def get_settings(config_path: Path | str | None = None) -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None or config_path is not None:
        _settings = Settings.from_config(config_path=config_path)
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next ``get_settings`` reloads them."""
    global _settings
    _settings = None

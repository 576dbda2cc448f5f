"""``llmchat serve``: run the gateway with uvicorn."""

import os
from pathlib import Path
from typing import Annotated

import typer
import uvicorn
from click import get_current_context

from llmchat.api.app import create_app
from llmchat.cli.helpers import (
    get_rich_toolkit,
    validate_log_level,
    validate_port,
    warning,
)
from llmchat.config.settings import Settings
from llmchat.core.errors import ConfigurationError
from llmchat.core.logging import get_logger, setup_logging


def get_config_path_from_context() -> Path | None:
    """Get config path from typer context if available."""
    try:
        ctx = get_current_context()
    except RuntimeError:
        return None
    if ctx.obj and ctx.obj.get("config_path") is not None:
        return Path(ctx.obj["config_path"])
    return None


def _export_for_factory(settings: Settings, config: Path | None) -> None:
    # The factory runs in a fresh process and reads settings from the environment
    os.environ["SERVER__HOST"] = settings.server.host
    os.environ["SERVER__PORT"] = str(settings.server.port)
    os.environ["LOGGING__LEVEL"] = settings.logging.level
    if settings.logging.file:
        os.environ["LOGGING__FILE"] = settings.logging.file
    if config is not None:
        os.environ["CONFIG_FILE"] = str(config)


def _run_local_server(settings: Settings, config: Path | None) -> None:
    toolkit = get_rich_toolkit()
    logger = get_logger(__name__)

    toolkit.print_title("Starting LLMChat gateway", tag="server")
    toolkit.print(f"Listening on {settings.server_url}", tag="server")

    logger.debug(
        "server_starting",
        host=settings.server.host,
        port=settings.server.port,
        url=settings.server_url,
        category="lifecycle",
    )

    # Reload and multiple workers need an import string, not an app instance
    if settings.server.reload or settings.server.workers > 1:
        if settings.server.reload:
            toolkit.print(warning("Auto-reload enabled"), tag="warning")
        _export_for_factory(settings, config)
        uvicorn.run(
            app="llmchat.api.app:get_app",
            factory=True,
            host=settings.server.host,
            port=settings.server.port,
            reload=settings.server.reload,
            workers=None if settings.server.reload else settings.server.workers,
            reload_includes=["llmchat"] if settings.server.reload else None,
            log_config=None,
            access_log=False,
            server_header=False,
        )
        return

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
        access_log=False,
        server_header=False,
    )


def serve(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (JSON, JSONC or TOML)",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            rich_help_panel="Configuration",
        ),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option(
            "--port",
            "-p",
            help="Port to run the server on",
            callback=validate_port,
            rich_help_panel="Server Settings",
        ),
    ] = None,
    host: Annotated[
        str | None,
        typer.Option(
            "--host",
            "-h",
            help="Host to bind the server to",
            rich_help_panel="Server Settings",
        ),
    ] = None,
    reload: Annotated[
        bool | None,
        typer.Option(
            "--reload/--no-reload",
            help="Enable auto-reload for development",
            rich_help_panel="Server Settings",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
            callback=validate_log_level,
            rich_help_panel="Server Settings",
        ),
    ] = None,
    log_file: Annotated[
        str | None,
        typer.Option(
            "--log-file",
            help="Path to JSON log file",
            rich_help_panel="Server Settings",
        ),
    ] = None,
) -> None:
    """Start the LLMChat gateway server."""
    toolkit = get_rich_toolkit()
    try:
        if config is None:
            config = get_config_path_from_context()

        cli_context = {
            "port": port,
            "host": host,
            "reload": reload,
            "log_level": log_level,
            "log_file": log_file,
        }
        settings = Settings.from_config(config_path=config, cli_context=cli_context)

        setup_logging(
            json_logs=settings.logging.format == "json",
            log_level_name=settings.logging.level,
            log_file=settings.logging.file,
            show_path=settings.logging.show_path,
            console_width=settings.logging.console_width,
        )
        get_logger(__name__).debug(
            "configuration_loaded",
            host=settings.server.host,
            port=settings.server.port,
            log_level=settings.logging.level,
            agents_config=settings.agents.config_path,
            category="config",
        )

        _run_local_server(settings, config)

    except ConfigurationError as e:
        toolkit.print(f"Configuration error: {e.message}", tag="error")
        raise typer.Exit(1) from e
    except OSError as e:
        toolkit.print(f"Server startup failed: {e}", tag="error")
        raise typer.Exit(1) from e

"""``llmchat config``: inspect the effective configuration."""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from llmchat.cli.helpers import get_rich_toolkit
from llmchat.config.settings import Settings, find_config_file
from llmchat.core.errors import ConfigurationError


app = typer.Typer(
    name="config", help="Inspect gateway configuration.", no_args_is_help=True
)


def _flatten(data: dict[str, Any], prefix: str = "") -> list[tuple[str, Any]]:
    rows: list[tuple[str, Any]] = []
    for key, value in data.items():
        name = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and value:
            rows.extend(_flatten(value, name))
        else:
            rows.append((name, value))
    return rows


def _format_value(value: Any) -> str:
    if value is None:
        return "[dim]unset[/dim]"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


@app.command("show")
def show(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (JSON, JSONC or TOML)",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    as_json: Annotated[
        bool, typer.Option("--json", help="Print the configuration as JSON")
    ] = False,
) -> None:
    """Show the effective configuration with secrets masked."""
    try:
        settings = Settings.from_config(config_path=config)
    except ConfigurationError as e:
        get_rich_toolkit().print(f"Configuration error: {e.message}", tag="error")
        raise typer.Exit(1) from e

    data = settings.model_dump_safe()
    console = Console()

    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    source = config or find_config_file()
    table = Table(
        title="LLMChat configuration",
        caption=f"Config file: {source}" if source else "No config file found",
    )
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value")
    for name, value in _flatten(data):
        table.add_row(name, _format_value(value))
    console.print(table)

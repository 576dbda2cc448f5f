"""CLI helper utilities for the LLMChat gateway."""

import typer
from rich_toolkit import RichToolkit, RichToolkitTheme
from rich_toolkit.styles import TaggedStyle


def get_rich_toolkit() -> RichToolkit:
    theme = RichToolkitTheme(
        style=TaggedStyle(tag_width=11),
        theme={
            "tag.title": "white on #2f6feb",
            "tag": "white on #1f4fb8",
            "placeholder": "grey85",
            "text": "white",
            "selected": "#1f4fb8",
            "result": "grey85",
            "progress": "on #1f4fb8",
            "error": "bold red",
            "success": "bold green",
            "warning": "bold yellow",
            "info": "blue",
            "version": "cyan",
            "config": "cyan",
            "server": "green",
            "agents": "magenta",
            "env": "bright_blue",
        },
    )

    return RichToolkit(theme=theme)


def warning(text: str) -> str:
    return f"[yellow]{text}[/yellow]"


def validate_port(
    ctx: typer.Context, param: typer.CallbackParam, value: int | None
) -> int | None:
    """Validate port number."""
    if value is None:
        return None

    if value < 1 or value > 65535:
        raise typer.BadParameter("Port must be between 1 and 65535")

    return value


def validate_log_level(
    ctx: typer.Context, param: typer.CallbackParam, value: str | None
) -> str | None:
    """Validate log level."""
    if value is None:
        return None

    valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
    if value.upper() not in valid_levels:
        raise typer.BadParameter(f"Log level must be one of: {', '.join(valid_levels)}")

    return value.upper()

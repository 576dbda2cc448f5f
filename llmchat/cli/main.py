"""Main entry point for the LLMChat gateway CLI."""

from pathlib import Path

import typer

from llmchat._version import __version__
from llmchat.cli.helpers import get_rich_toolkit

from .commands.config import app as config_app
from .commands.serve import serve


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        get_rich_toolkit().print(f"llmchat {__version__}", tag="version")
        raise typer.Exit()


app = typer.Typer(
    rich_markup_mode="rich",
    add_completion=True,
    no_args_is_help=False,
    pretty_exceptions_enable=False,
)


@app.callback()
def app_main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file (JSON, JSONC or TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """LLMChat gateway - streaming chat proxy for FastGPT, OpenAI and Anthropic agents."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config


app.add_typer(config_app)
app.command(name="serve")(serve)


def main() -> None:
    app()


if __name__ == "__main__":
    main()

"""Unified CLI entry point for TabPilot.

Config precedence: settings.default.toml -> settings.{env}.toml -> settings.local.toml -> env vars (TABPILOT_* with
double underscores) -> CLI flags.
"""

from __future__ import annotations

import logging
import sys

import typer

from tabpilot import __version__
from tabpilot.cli.relay_cmd import relay_app
from tabpilot.cli.run_cmd import register_run_commands
from tabpilot.cli.settings_cmd import settings_app

APP_HELP = (
    "tabpilot - local browser agent. "
    "Plans, acts in one browser tab and verifies every step. "
    "Config precedence: settings.default.toml -> settings.local.toml -> env vars (TABPILOT_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

register_run_commands(app)
app.add_typer(relay_app, name="relay")
app.add_typer(settings_app, name="settings")


def configure_logging(verbose: bool = False) -> None:
    """Configure process logging for CLI commands."""
    from tabpilot.settings import get_settings

    level = logging.DEBUG if verbose or get_settings().debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        stream=sys.stderr,
    )
    # Quieten noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"tabpilot {__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()
    configure_logging(verbose)


if __name__ == "__main__":
    app()

"""CLI commands for inspecting and validating TabPilot settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate TabPilot configuration.")
console = Console()

_SECRET_FIELDS = ("api_key", "auth_token")


def _redact(data: dict) -> dict:
    for key, value in data.items():
        if isinstance(value, dict):
            _redact(value)
        elif key in _SECRET_FIELDS and value:
            data[key] = "***"
    return data


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings (secrets redacted)."""
    from tabpilot.settings import get_settings

    settings = get_settings()
    console.print_json(json.dumps(_redact(settings.model_dump(mode="json")), indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from tabpilot.settings import get_settings

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Environment: {settings.env}")
    console.print(f"  LLM: {settings.llm.provider} / {settings.llm.model}")
    console.print(f"  Store: {settings.store.backend} ({settings.store.sqlite_path})")
    console.print(f"  Max steps: {settings.agent.max_steps}  Approval: {settings.agent.approval_mode}")
    if not settings.llm.api_key:
        console.print("[yellow]⚠[/yellow] llm.api_key is empty; model calls will be rejected by most endpoints.")
    if not settings.relay.endpoint:
        console.print("  Relay: not configured")

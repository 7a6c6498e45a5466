"""CLI commands for the remote task relay."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console

relay_app = typer.Typer(help="Receive goals from a remote task relay.")
console = Console()


async def _listen(once: bool) -> None:
    from tabpilot.agent.factory import build_orchestrator
    from tabpilot.browser.playwright_host import PlaywrightHost
    from tabpilot.cli.run_cmd import ConsoleLogSink
    from tabpilot.monitoring.event_bus import EventBus
    from tabpilot.relay.client import RelayWorker, TaskRelayClient

    client = TaskRelayClient.from_settings()
    bus = EventBus()
    bus.add_sink(ConsoleLogSink(console))
    try:
        async with PlaywrightHost.from_settings() as host:
            worker = RelayWorker.for_orchestrator(client, build_orchestrator(host, bus=bus))
            if once:
                outcome = await worker.run_once()
                console.print(f"Relay round finished: {outcome}")
            else:
                await worker.listen()
    finally:
        await client.aclose()


@relay_app.command("listen")
def listen(
    once: bool = typer.Option(False, "--once", help="Handle a single long-poll round and exit."),
) -> None:
    """Long-poll the relay and run each delivered goal."""
    from tabpilot.settings import get_settings

    relay = get_settings().relay
    if not relay.endpoint:
        console.print("[red]✗[/red] relay.endpoint is not configured (TABPILOT_RELAY__ENDPOINT).")
        raise typer.Exit(code=1)
    console.print(f"Listening for tasks at {relay.endpoint} as device {relay.device_id or '(unnamed)'}")
    try:
        asyncio.run(_listen(once))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped listening.[/yellow]")

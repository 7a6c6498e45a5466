"""CLI commands that drive the agent: run, status, stop, serve."""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tabpilot.models.runtime import LogEntry, PendingPlan, RunResult, RuntimeState
from tabpilot.models.states import RunMode, RunStatus
from tabpilot.monitoring.event_bus import Event, EventType

console = Console()

_KIND_STYLES = {
    "user": "bold",
    "plan": "magenta",
    "planner": "cyan",
    "observation": "dim",
    "action": "blue",
    "verify": "green",
    "done": "bold green",
    "system": "yellow",
    "error": "bold red",
}


class ConsoleLogSink:
    """Prints new runtime log entries as they are published."""

    def __init__(self, out: Console | None = None) -> None:
        self._console = out or console
        self._seen: set[str] = set()

    async def handle_event(self, event: Event) -> None:
        if event.event_type != EventType.RUNTIME_UPDATE:
            return
        for raw in event.data.get("logs", []):
            entry = LogEntry.model_validate(raw)
            if entry.id in self._seen:
                continue
            self._seen.add(entry.id)
            print_log_entry(entry, self._console)


def print_log_entry(entry: LogEntry, out: Console | None = None) -> None:
    style = _KIND_STYLES.get(entry.kind.value, "")
    (out or console).print(
        f"[dim]{entry.at:%H:%M:%S}[/dim] [{style}]{entry.kind.value:<11}[/{style}] {entry.message}",
        highlight=False,
    )


def print_plan(plan: PendingPlan) -> None:
    table = Table(title="Proposed plan", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Step")
    table.add_column("Details")
    for i, step in enumerate(plan.steps, 1):
        table.add_row(str(i), step.title, step.details)
    console.print(Panel(plan.summary or "(no summary)", title=f"Goal: {plan.goal}", border_style="blue"))
    console.print(table)
    for risk in plan.risks:
        console.print(f"[yellow]⚠[/yellow] Risk: {risk}")
    for item in plan.requires_confirmation_before:
        console.print(f"[red]![/red] Confirm before: {item}")


def print_result(result: RunResult) -> None:
    if result.status == RunStatus.COMPLETED:
        summary = result.result.summary if result.result else result.message
        console.print(f"\n[green]✓[/green] Completed in {result.step} step(s): {summary}")
        if result.result and result.result.blocked:
            console.print("[yellow]⚠[/yellow] The agent reported that it is blocked.")
    elif result.status == RunStatus.PAUSED_MAX_STEPS:
        console.print(f"\n[yellow]⏸[/yellow] {result.message}")
        console.print("  Resume with: tabpilot run GOAL --mode continue")
    elif result.status == RunStatus.STOPPED:
        console.print(f"\n[yellow]■[/yellow] Stopped at step {result.step}.")
    else:
        console.print(f"\n[red]✗[/red] Run ended as {result.status.value}: {result.error or result.message}")
    console.print(f"  Session: {result.session_id}  Tab: {result.tab_id}")


def print_state(state: RuntimeState, log_tail: int = 15) -> None:
    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Status", state.status.value)
    table.add_row("Running", "yes" if state.is_running else "no")
    table.add_row("Goal", state.goal or "-")
    table.add_row("Session", state.session_id or "-")
    table.add_row("Tab", state.tab_id or "-")
    table.add_row("Step", str(state.step))
    if state.started_at:
        table.add_row("Started", state.started_at.isoformat(timespec="seconds"))
    if state.ended_at:
        table.add_row("Ended", state.ended_at.isoformat(timespec="seconds"))
    if state.last_error:
        table.add_row("Last error", f"[red]{state.last_error}[/red]")
    if state.last_result:
        table.add_row("Last result", str(state.last_result.get("summary", "")))
    if state.pending_plan:
        table.add_row("Pending plan", state.pending_plan.summary or f"{len(state.pending_plan.steps)} step(s)")
    console.print(table)
    if log_tail > 0 and state.logs:
        console.print()
        for entry in state.logs[-log_tail:]:
            print_log_entry(entry)


async def _run_async(goal: str, mode: RunMode, max_steps: int | None, with_plan: bool) -> RunResult | None:
    from tabpilot.agent.factory import build_orchestrator
    from tabpilot.browser.playwright_host import PlaywrightHost
    from tabpilot.exceptions import RunFailedError
    from tabpilot.monitoring.event_bus import EventBus

    bus = EventBus()
    bus.add_sink(ConsoleLogSink())
    async with PlaywrightHost.from_settings() as host:
        orchestrator = build_orchestrator(host, bus=bus)
        try:
            if with_plan:
                plan = await orchestrator.generate_plan(goal, mode, max_steps)
                print_plan(plan)
                if not typer.confirm("Approve this plan and start the run?", default=True):
                    return None
                return await orchestrator.approve_plan()
            return await orchestrator.run(goal, mode, max_steps)
        except RunFailedError as exc:
            return RunResult(
                status=RunStatus.FAILED,
                session_id=getattr(exc.state, "session_id", ""),
                tab_id=getattr(exc.state, "tab_id", ""),
                step=getattr(exc.state, "step", 0),
                error=exc.last_error,
            )


def run(
    goal: str = typer.Argument(..., help="What the agent should accomplish."),
    mode: RunMode = typer.Option(RunMode.NEW, "--mode", "-m", help="new: fresh tab; continue: resume the last session."),
    max_steps: Optional[int] = typer.Option(None, "--max-steps", "-n", help="Step budget (1-200)."),
    plan: Optional[bool] = typer.Option(
        None, "--plan/--no-plan", help="Review a plan before acting (default from agent.approval_mode)."
    ),
) -> None:
    """Run the agent on GOAL in a browser tab."""
    from tabpilot.exceptions import RunAlreadyActiveError
    from tabpilot.settings import get_settings

    with_plan = plan if plan is not None else get_settings().agent.approval_mode == "ask_first"
    console.print(Panel(f"[bold]Goal:[/bold] {goal}", title="TabPilot", border_style="blue"))
    try:
        result = asyncio.run(_run_async(goal, mode, max_steps, with_plan))
    except RunAlreadyActiveError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=2)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise typer.Exit(code=130)

    if result is None:
        console.print("[yellow]Plan not approved; nothing was executed.[/yellow]")
        raise typer.Exit(code=1)
    print_result(result)
    if result.status == RunStatus.FAILED:
        raise typer.Exit(code=1)


def status(
    logs: int = typer.Option(15, "--logs", "-l", help="Number of recent log entries to show."),
) -> None:
    """Show the persisted runtime state."""
    from tabpilot.agent.factory import build_state_store

    print_state(build_state_store(recover_interrupted=False).snapshot(), log_tail=logs)


def stop() -> None:
    """Ask the active run (in any process) to stop."""
    from tabpilot.agent.factory import build_state_store

    store = build_state_store(recover_interrupted=False)
    state = store.snapshot()
    if not state.is_running:
        console.print("No run is active.")
        return
    store.write_cancel_request(state.session_id)
    console.print(f"[green]✓[/green] Stop requested for session {state.session_id}.")


def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default api.host)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default api.port)."),
) -> None:
    """Serve the HTTP/WebSocket API."""
    import uvicorn

    from tabpilot.api.app import create_app
    from tabpilot.settings import get_settings

    api = get_settings().api
    uvicorn.run(create_app(), host=host or api.host, port=port or api.port)


def register_run_commands(app: typer.Typer) -> None:
    """Attach the top-level agent commands to ``app``."""
    app.command("run")(run)
    app.command("status")(status)
    app.command("stop")(stop)
    app.command("serve")(serve)

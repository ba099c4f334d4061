"""CLI commands for agentflow.

Single entry point: orchestrate, status, frameworks, health and the session
command group. Every command opens the SQLite store named in config.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from agentflow import __version__
from agentflow.cli.logging_utils import configure_logging
from agentflow.config.access import get_config
from agentflow.runtime import Runtime, build_runtime
from agentflow.utils.exceptions import AgentflowError

T = TypeVar("T")

app = typer.Typer(
    name="agentflow",
    help="agentflow - multi-agent collaboration and orchestration",
    no_args_is_help=True,
)
session_app = typer.Typer(help="Inspect collaboration sessions")
app.add_typer(session_app, name="session")

console = Console()

_state: dict[str, Any] = {"config_path": None, "db_path": None}


@app.callback()
def main(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.json"),
    db: Optional[Path] = typer.Option(None, "--db", help="Override the SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    _state["config_path"] = config
    _state["db_path"] = db
    configure_logging(get_config(config_path=config).logging, verbose=verbose)


def _run(fn: Callable[[Runtime], Awaitable[T]]) -> T:
    """Build the runtime, run fn inside an event loop, always close."""
    cfg = get_config(config_path=_state["config_path"])

    async def _main() -> T:
        runtime = build_runtime(cfg, db_path=_state["db_path"])
        runtime.start()
        try:
            return await fn(runtime)
        finally:
            await runtime.close()

    try:
        return asyncio.run(_main())
    except AgentflowError as e:
        console.print(f"[red]{e.code}[/red]: {e.message}")
        raise typer.Exit(1) from e


def _print_json(data: Any) -> None:
    console.print_json(json.dumps(data, default=str))


@app.command()
def version() -> None:
    """Show version."""
    console.print(f"agentflow v{__version__}")


@app.command()
def orchestrate(
    user: str = typer.Option(..., "--user", "-u", help="Owner user id"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result"),
) -> None:
    """Create the full agent line-up and issue the orchestration plan."""

    async def _go(rt: Runtime):
        return await rt.planner.create_orchestration(user)

    result = _run(_go)
    if as_json:
        _print_json({
            "sessionId": result.session_id,
            "agents": [a.model_dump(mode="json") for a in result.agents],
            "orchestrationPlan": result.plan.to_wire(),
        })
        return
    console.print(f"[green]✓[/green] Orchestration session [cyan]{result.session_id}[/cyan]")
    table = Table(title="Phases")
    table.add_column("#", justify="right")
    table.add_column("Phase", style="cyan")
    table.add_column("Coordinator")
    table.add_column("Tasks")
    names = {a.id: a.name for a in result.agents}
    for i, phase in enumerate(result.plan.phases, 1):
        table.add_row(str(i), phase.name, names.get(phase.coordinator, phase.coordinator), ", ".join(phase.tasks))
    console.print(table)


@app.command()
def status(session_id: str = typer.Argument(..., help="Orchestration session id")) -> None:
    """Show agent states and task progress for an orchestration session."""

    async def _go(rt: Runtime):
        return await rt.planner.get_orchestration_status(session_id)

    snapshot = _run(_go)
    if snapshot is None:
        console.print(f"[red]Session not found:[/red] {session_id}")
        raise typer.Exit(1)
    console.print(
        f"Session [cyan]{snapshot.session_id}[/cyan] ({snapshot.status}) "
        f"phase: {snapshot.active_phase or '-'} "
        f"tasks: {snapshot.completed_tasks}/{snapshot.total_tasks} completed"
    )
    table = Table(title="Agents")
    table.add_column("Name", style="cyan")
    table.add_column("Framework")
    table.add_column("Role")
    table.add_column("Status")
    for agent in snapshot.agents:
        table.add_row(agent.name or agent.id, agent.framework or "-", agent.role or "-", agent.status or "-")
    console.print(table)


@app.command()
def frameworks() -> None:
    """List supported agent frameworks."""

    async def _go(rt: Runtime):
        return rt.planner.list_framework_templates()

    templates = _run(_go)
    table = Table(title="Frameworks")
    table.add_column("Framework", style="cyan")
    table.add_column("Role")
    table.add_column("Capabilities")
    for key, tpl in templates.items():
        table.add_row(key, tpl["role"], ", ".join(tpl["capabilities"]))
    console.print(table)


@app.command()
def health() -> None:
    """Show orchestrator health."""

    async def _go(rt: Runtime):
        return rt.planner.health()

    _print_json(_run(_go))


@session_app.command("show")
def session_show(session_id: str = typer.Argument(..., help="Session id")) -> None:
    """Print a session with its full history."""

    async def _go(rt: Runtime):
        return await rt.engine.get_session(session_id)

    session = _run(_go)
    if session is None:
        console.print(f"[red]Session not found:[/red] {session_id}")
        raise typer.Exit(1)
    _print_json(session.model_dump(mode="json"))


@session_app.command("messages")
def session_messages(
    session_id: str = typer.Argument(..., help="Session id"),
    page: int = typer.Option(1, "--page", "-p"),
    limit: int = typer.Option(50, "--limit", "-l"),
) -> None:
    """List session messages in creation order."""

    async def _go(rt: Runtime):
        return await rt.engine.list_messages(session_id, page=page, limit=limit)

    result = _run(_go)
    table = Table(title=f"Messages (page {result.page}/{max(result.total_pages, 1)}, {result.total} total)")
    table.add_column("Type", style="cyan")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Content")
    for m in result.messages:
        table.add_row(m.message_type.value, m.from_agent_id, m.target, m.content)
    console.print(table)


if __name__ == "__main__":
    app()

"""``helmsman status APP ENV`` — current release versus observed state.

Reports drift when the environment no longer observes the desired state
of its applied release (for example after a manual change).
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from helmsman.cli.context import (
    build_orchestrator,
    registry_option,
    release_db_option,
    state_dir_option,
)
from helmsman.core.errors import HelmsmanError
from helmsman.models.convergence import StateDiff
from helmsman.monitor.renderer import format_state

console = Console()


def status_cmd(
    app_id: str = typer.Argument(..., help="Application identifier."),
    environment: str = typer.Argument(..., help="Target environment."),
    release_db: Path = release_db_option(),
    state_dir: Path = state_dir_option(),
    registry: Path = registry_option(),
) -> None:
    """Show the applied release and whether the environment has drifted."""
    orchestrator = build_orchestrator(release_db, state_dir, registry)
    current = orchestrator.store.current(app_id, environment)
    try:
        observed = orchestrator.observed_state(app_id, environment)
    except HelmsmanError as exc:
        console.print(f"[bold red]Cannot read observed state:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    if current is None:
        console.print(f"[dim]No release recorded for {app_id}/{environment}.[/dim]")
        if observed:
            console.print(f"Observed state: {format_state(observed)}")
        raise typer.Exit(code=3)

    diff = StateDiff.between(observed, current.desired_state)
    drift = (
        "[green]in sync[/green]"
        if diff.is_empty
        else f"[bold yellow]DRIFTED[/bold yellow] on {', '.join(diff.keys)}"
    )
    console.print(
        Panel(
            "\n".join([
                f"[bold]Release:[/bold]   #{current.release_id} ({current.kind.value})",
                f"[bold]Artifact:[/bold]  {escape(current.artifact_ref)}",
                f"[bold]Desired:[/bold]   {format_state(current.desired_state)}",
                f"[bold]Observed:[/bold]  {format_state(observed) or '[dim]empty[/dim]'}",
                f"[bold]State:[/bold]     {drift}",
            ]),
            title=f"[bold]{app_id}/{environment}[/bold]",
            border_style="green" if diff.is_empty else "yellow",
            padding=(1, 2),
        )
    )
    if not diff.is_empty:
        raise typer.Exit(code=1)

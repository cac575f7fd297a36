"""``helmsman rollback APP ENV [RELEASE_ID]`` — restore a recorded release.

Without RELEASE_ID, rolls back ``--steps`` releases from the latest
(default: the previous release). Always appends a new release, even when
the target state is already in place.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from helmsman.cli.context import (
    EXIT_CODES,
    build_orchestrator,
    registry_option,
    release_db_option,
    state_dir_option,
)
from helmsman.monitor.renderer import ReleaseRenderer

console = Console()


def rollback_cmd(
    app_id: str = typer.Argument(..., help="Application identifier."),
    environment: str = typer.Argument(..., help="Target environment."),
    release_id: int | None = typer.Argument(
        None, help="Release to restore. Defaults to the previous release."
    ),
    steps: int = typer.Option(
        1, "--steps", "-n", min=1, help="How many releases back, when RELEASE_ID is omitted."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
    release_db: Path = release_db_option(),
    state_dir: Path = state_dir_option(),
    registry: Path = registry_option(),
) -> None:
    """Roll an environment back to a recorded release."""
    orchestrator = build_orchestrator(release_db, state_dir, registry)
    if release_id is not None:
        result = orchestrator.rollback(app_id, environment, release_id)
    else:
        result = orchestrator.rollback_previous(app_id, environment, steps)

    if as_json:
        typer.echo(result.model_dump_json(indent=2))
    else:
        ReleaseRenderer(console=console).print_result(result, title="Rollback")
    raise typer.Exit(code=EXIT_CODES[result.outcome])

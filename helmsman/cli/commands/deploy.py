"""``helmsman deploy APP ENV ARTIFACT`` — run the full deploy pipeline.

lint -> login -> publish -> deploy -> verify, with logout always run.
Re-deploying an unchanged state is a no-op and records no release.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from helmsman.cli.context import (
    EXIT_CODES,
    build_orchestrator,
    load_values_file,
    parse_set_values,
    registry_option,
    release_db_option,
    state_dir_option,
)
from helmsman.models.requests import PipelineRequest
from helmsman.monitor.renderer import ReleaseRenderer

console = Console()


def deploy_cmd(
    app_id: str = typer.Argument(..., help="Application identifier."),
    environment: str = typer.Argument(..., help="Target environment."),
    artifact_ref: str = typer.Argument(..., help="Artifact reference, e.g. registry/app:1.4.2."),
    set_values: list[str] = typer.Option(
        [],
        "--set",
        "-s",
        help="Desired state value as key=value (repeatable).",
    ),
    values_file: Path | None = typer.Option(
        None,
        "--values",
        "-f",
        help="JSON file with desired state values; --set entries override it.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON."),
    release_db: Path = release_db_option(),
    state_dir: Path = state_dir_option(),
    registry: Path = registry_option(),
) -> None:
    """Deploy an artifact and converge the environment to the desired state."""
    desired_state = load_values_file(values_file) if values_file else {}
    desired_state.update(parse_set_values(set_values))

    orchestrator = build_orchestrator(release_db, state_dir, registry)
    result = orchestrator.run_pipeline(
        PipelineRequest(
            app_id=app_id,
            environment=environment,
            artifact_ref=artifact_ref,
            desired_state=desired_state,
        )
    )

    if as_json:
        typer.echo(result.model_dump_json(indent=2))
    else:
        ReleaseRenderer(console=console).print_result(result, title="Deploy")
    raise typer.Exit(code=EXIT_CODES[result.outcome])

"""``helmsman history APP ENV`` — show the release history.

Most recent release first. ``--verify-chain`` also checks the sequence
and hash chain of the stored releases.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from helmsman.cli.context import release_db_option
from helmsman.core.errors import ChainIntegrityError
from helmsman.core.release_store import ReleaseStore
from helmsman.monitor.renderer import ReleaseRenderer

console = Console()


def history_cmd(
    app_id: str = typer.Argument(..., help="Application identifier."),
    environment: str = typer.Argument(..., help="Target environment."),
    limit: int | None = typer.Option(
        None, "--limit", "-n", min=1, help="Show at most this many releases."
    ),
    verify_chain: bool = typer.Option(
        False,
        "--verify-chain",
        "-V",
        help="Verify the release hash chain before displaying.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print releases as JSON."),
    release_db: Path = release_db_option(),
) -> None:
    """Show the release history for an environment."""
    if not release_db.exists():
        console.print(f"[bold red]Release database not found:[/bold red] {release_db}")
        console.print("[dim]Deploy something first with: helmsman deploy[/dim]")
        raise typer.Exit(code=1)

    store = ReleaseStore(release_db)
    renderer = ReleaseRenderer(console=console)

    if verify_chain:
        try:
            store.verify_chain(app_id, environment)
        except ChainIntegrityError as exc:
            renderer.print_chain_verification(app_id, environment, False, str(exc))
            raise typer.Exit(code=1)
        renderer.print_chain_verification(app_id, environment, True)

    releases = store.history(app_id, environment, limit=limit)
    if as_json:
        typer.echo("[" + ",".join(r.model_dump_json() for r in releases) + "]")
        return

    if not releases:
        known = store.list_environments()
        renderer.print_history(app_id, environment, releases)
        if known:
            console.print("\n[bold]Known environments:[/bold]")
            for key in known[:10]:
                console.print(f"  [cyan]{key}[/cyan]")
            if len(known) > 10:
                console.print(f"  [dim]... and {len(known) - 10} more[/dim]")
        raise typer.Exit(code=3)

    renderer.print_history(app_id, environment, releases)

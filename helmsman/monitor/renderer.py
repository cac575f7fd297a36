"""Rich terminal renderer for release history and pipeline results.

Color scheme
------------
- green     : applied / succeeded
- dim       : superseded
- magenta   : rolled_back
- bold red  : failed / not_found
- yellow    : cancelled
"""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from helmsman.models.pipeline import PipelineOutcome, PipelineResult
from helmsman.models.releases import Release, ReleaseKind, ReleaseStatus


# ---------------------------------------------------------------------------
# Status -> Rich style mapping
# ---------------------------------------------------------------------------

_STATUS_ICONS: dict[ReleaseStatus, str] = {
    ReleaseStatus.APPLIED: "[bold green]APPLIED[/bold green]",
    ReleaseStatus.SUPERSEDED: "[dim]SUPERSEDED[/dim]",
    ReleaseStatus.ROLLED_BACK: "[magenta]ROLLED BACK[/magenta]",
}

_OUTCOME_STYLES: dict[PipelineOutcome, str] = {
    PipelineOutcome.SUCCEEDED: "green",
    PipelineOutcome.FAILED: "red",
    PipelineOutcome.NOT_FOUND: "red",
    PipelineOutcome.CANCELLED: "yellow",
}


def format_state(state: dict[str, Any]) -> str:
    """Compact ``k=v`` rendering of a desired state, keys sorted, markup-escaped."""
    return escape(", ".join(
        f"{k}={json.dumps(v) if not isinstance(v, str) else v}"
        for k, v in sorted(state.items())
    ))


class ReleaseRenderer:
    """Renders releases and pipeline results as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def render_history(
        self, app_id: str, environment: str, releases: list[Release]
    ) -> Table:
        """Build a table of releases, most recent first."""
        table = Table(
            title=f"Release history: {app_id}/{environment}",
            show_header=True,
            header_style="bold cyan",
            expand=True,
        )
        table.add_column("#", style="bold", justify="right", width=5)
        table.add_column("Status", justify="center", min_width=12)
        table.add_column("Kind", min_width=8)
        table.add_column("Artifact", min_width=16)
        table.add_column("Desired state", min_width=20)
        table.add_column("Created (UTC)", min_width=19)

        for release in releases:
            kind = release.kind.value
            if release.kind == ReleaseKind.ROLLBACK and release.source_release_id:
                kind = f"rollback -> #{release.source_release_id}"
            table.add_row(
                str(release.release_id),
                _STATUS_ICONS.get(release.status, release.status.value),
                kind,
                escape(release.artifact_ref),
                format_state(release.desired_state),
                release.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            )
        return table

    def print_history(
        self, app_id: str, environment: str, releases: list[Release]
    ) -> None:
        if not releases:
            self.console.print(
                f"[dim]No releases recorded for {app_id}/{environment}.[/dim]"
            )
            return
        self.console.print(self.render_history(app_id, environment, releases))

    # ------------------------------------------------------------------
    # Pipeline results
    # ------------------------------------------------------------------

    def render_result(self, result: PipelineResult, *, title: str = "Pipeline") -> Panel:
        """Render a PipelineResult as a Panel."""
        style = _OUTCOME_STYLES.get(result.outcome, "white")
        lines: list[str] = [
            f"[bold {style}]{result.outcome.value.upper()}[/bold {style}]",
            "",
            f"[bold]Run ID:[/bold]       {result.run_id}",
            f"[bold]Environment:[/bold]  {result.app_id}/{result.environment}",
        ]
        if result.completed_stages:
            lines.append(
                f"[bold]Completed:[/bold]    {' -> '.join(result.completed_stages)}"
            )
        if result.failed_stage:
            lines.append(f"[bold]Stopped at:[/bold]   [{style}]{result.failed_stage}[/{style}]")
        if result.error:
            lines.append(f"[bold]Cause:[/bold]        {escape(result.error)} [dim]({result.error_kind})[/dim]")
        if result.skipped_stages:
            lines.append(f"[bold]Skipped:[/bold]      [dim]{', '.join(result.skipped_stages)}[/dim]")
        if result.convergence_action:
            lines.append(f"[bold]Convergence:[/bold]  {result.convergence_action.value}")
        if result.release:
            lines.append(
                f"[bold]Release:[/bold]      #{result.release.release_id} "
                f"({format_state(result.release.desired_state)})"
            )

        body: list[Any] = [Text.from_markup("\n".join(lines))]
        if result.finalizers:
            fin = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
            fin.add_column("Finalizer")
            fin.add_column("Result")
            for outcome in result.finalizers:
                status = (
                    "[green]ok[/green]"
                    if outcome.succeeded
                    else f"[red]failed:[/red] {escape(outcome.error or '')}"
                )
                fin.add_row(outcome.name, status)
            body.extend([Text(""), fin])

        return Panel(
            Group(*body),
            title=f"[bold]{title}[/bold]",
            border_style=style,
            padding=(1, 2),
        )

    def print_result(self, result: PipelineResult, *, title: str = "Pipeline") -> None:
        self.console.print(self.render_result(result, title=title))

    def print_chain_verification(
        self, app_id: str, environment: str, valid: bool, detail: str = ""
    ) -> None:
        """Print a chain verification result."""
        if valid:
            self.console.print(
                f"[green]Release chain for {app_id}/{environment} is valid.[/green]"
            )
        else:
            self.console.print(
                f"[bold red]Release chain for {app_id}/{environment} is BROKEN![/bold red]"
                + (f" {detail}" if detail else "")
            )

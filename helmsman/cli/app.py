"""Main Typer application — imports and registers all CLI commands.

Entry point: ``helmsman`` (configured via pyproject.toml project.scripts).

Exit codes: 0 succeeded, 1 failed, 3 not found, 130 cancelled.
"""

from __future__ import annotations

import typer

from helmsman.cli.commands.deploy import deploy_cmd
from helmsman.cli.commands.history import history_cmd
from helmsman.cli.commands.rollback import rollback_cmd
from helmsman.cli.commands.status import status_cmd
from helmsman.config import configure_logging, settings

app = typer.Typer(
    name="helmsman",
    help="Helmsman: declarative deployment pipeline with auditable releases and rollback.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        settings.log_level, "--log-level", help="Logging level (DEBUG, INFO, WARNING...)."
    ),
) -> None:
    """Configure logging before any command runs."""
    configure_logging(log_level)


# Register subcommands
app.command(name="deploy", help="Deploy an artifact to an environment.")(deploy_cmd)
app.command(name="rollback", help="Roll an environment back to a recorded release.")(rollback_cmd)
app.command(name="history", help="Show release history for an environment.")(history_cmd)
app.command(name="status", help="Show the current release and drift.")(status_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()

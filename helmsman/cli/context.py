"""Shared CLI plumbing: orchestrator construction, ``--set`` parsing, exit codes."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import typer

from helmsman.config import settings
from helmsman.core.orchestrator import DeploymentOrchestrator
from helmsman.core.release_store import ReleaseStore
from helmsman.drivers.credentials import EnvCredentialSource
from helmsman.drivers.filesystem import FileEnvironmentDriver, LocalRegistryPublisher
from helmsman.models.config import PipelineConfig
from helmsman.models.pipeline import PipelineOutcome

# Process exit code per pipeline outcome.
EXIT_CODES: dict[PipelineOutcome, int] = {
    PipelineOutcome.SUCCEEDED: 0,
    PipelineOutcome.FAILED: 1,
    PipelineOutcome.NOT_FOUND: 3,
    PipelineOutcome.CANCELLED: 130,
}

_INT_PATTERN = re.compile(r"^-?\d+$")


def build_orchestrator(
    release_db: Path, state_dir: Path, registry: Path
) -> DeploymentOrchestrator:
    """An orchestrator backed by the filesystem collaborators."""
    config = PipelineConfig.from_settings(settings).model_copy(
        update={
            "release_db_path": release_db,
            "state_dir": state_dir,
            "registry_path": registry,
        }
    )
    return DeploymentOrchestrator(
        FileEnvironmentDriver(config.state_dir),
        LocalRegistryPublisher(config.registry_path),
        config,
        credentials=EnvCredentialSource(settings.credential_env_var),
        store=ReleaseStore(config.release_db_path),
    )


def parse_value(raw: str) -> Any:
    """Type a ``--set`` value: integers, booleans and null; everything else is a string.

    ``1.0`` stays the string ``"1.0"`` because it is usually a version tag.
    """
    if _INT_PATTERN.match(raw):
        return int(raw)
    lowered = raw.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    if lowered == "null":
        return None
    return raw


def parse_set_values(pairs: list[str]) -> dict[str, Any]:
    """Parse ``key=value`` pairs into a state mapping; later pairs win."""
    state: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got {pair!r}", param_hint="--set")
        state[key.strip()] = parse_value(raw)
    return state


def load_values_file(path: Path) -> dict[str, Any]:
    """Load a JSON object of state values."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise typer.BadParameter(f"cannot read {path}: {exc}", param_hint="--values") from exc
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{path} must contain a JSON object", param_hint="--values")
    return data


# Reusable option declarations
def release_db_option() -> Any:
    return typer.Option(
        settings.release_db_path, "--db", "-d", help="Path to the release history database."
    )


def state_dir_option() -> Any:
    return typer.Option(
        settings.state_dir, "--state-dir", help="Directory holding observed environment state."
    )


def registry_option() -> Any:
    return typer.Option(
        settings.registry_path, "--registry", help="Local artifact registry directory."
    )

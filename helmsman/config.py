"""Runtime configuration — env-driven.

Centralized settings using pydantic-settings. Reads from a .env file and
HELMSMAN_* environment variables.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console
from rich.logging import RichHandler


class HelmsmanSettings(BaseSettings):
    """Process-wide settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export HELMSMAN_LOG_LEVEL=DEBUG
        export HELMSMAN_RELEASE_DB_PATH=/data/releases.db
        export HELMSMAN_APPLY_TIMEOUT_SECONDS=600

    Or via .env file::

        HELMSMAN_VERIFY_AFTER_ROLLBACK=false
        HELMSMAN_REQUIRED_STATE_KEYS=["image_tag", "replicas"]
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="HELMSMAN_",
        env_file_encoding="utf-8",
    )

    log_level: str = "INFO"

    # Storage paths
    release_db_path: Path = Path(".helmsman/releases.db")
    state_dir: Path = Path(".helmsman/state")
    registry_path: Path = Path(".helmsman/registry")

    # Collaborator call timeouts (seconds). Unset values fall back to the default.
    default_timeout_seconds: float = 300.0
    publish_timeout_seconds: float | None = None
    read_timeout_seconds: float | None = None
    apply_timeout_seconds: float | None = None
    verify_timeout_seconds: float | None = None

    # Name of the env var holding the registry token. The token itself is
    # never read into settings.
    credential_env_var: str = "HELMSMAN_REGISTRY_TOKEN"

    # Keys every desired state must carry
    required_state_keys: list[str] = []

    # Run the verifier again after a rollback restores state
    verify_after_rollback: bool = True


def configure_logging(level: str = "INFO") -> None:
    """Install a Rich log handler (on stderr) on the root logger.

    Only entry points call this; library modules just use
    ``logging.getLogger(__name__)``.
    """
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=Console(stderr=True), rich_tracebacks=True, show_path=False
            )
        ],
        force=True,
    )


# Module-level singleton; import as `from helmsman.config import settings`
settings = HelmsmanSettings()

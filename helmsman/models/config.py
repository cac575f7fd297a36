"""Orchestrator configuration model."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from helmsman.config import HelmsmanSettings


class PipelineConfig(BaseModel):
    """Per-orchestrator configuration.

    Built explicitly in tests, or from the process settings with
    ``PipelineConfig.from_settings()``.
    """

    model_config = ConfigDict(frozen=True)

    release_db_path: Path = Path(".helmsman/releases.db")
    state_dir: Path = Path(".helmsman/state")
    registry_path: Path = Path(".helmsman/registry")
    default_timeout_seconds: float = 300.0
    publish_timeout_seconds: float | None = None
    read_timeout_seconds: float | None = None
    apply_timeout_seconds: float | None = None
    verify_timeout_seconds: float | None = None
    required_state_keys: list[str] = []
    verify_after_rollback: bool = True

    @classmethod
    def from_settings(cls, settings: HelmsmanSettings) -> PipelineConfig:
        return cls(
            release_db_path=settings.release_db_path,
            state_dir=settings.state_dir,
            registry_path=settings.registry_path,
            default_timeout_seconds=settings.default_timeout_seconds,
            publish_timeout_seconds=settings.publish_timeout_seconds,
            read_timeout_seconds=settings.read_timeout_seconds,
            apply_timeout_seconds=settings.apply_timeout_seconds,
            verify_timeout_seconds=settings.verify_timeout_seconds,
            required_state_keys=list(settings.required_state_keys),
            verify_after_rollback=settings.verify_after_rollback,
        )

    @property
    def publish_timeout(self) -> float:
        return self.publish_timeout_seconds or self.default_timeout_seconds

    @property
    def read_timeout(self) -> float:
        return self.read_timeout_seconds or self.default_timeout_seconds

    @property
    def apply_timeout(self) -> float:
        return self.apply_timeout_seconds or self.default_timeout_seconds

    @property
    def verify_timeout(self) -> float:
        return self.verify_timeout_seconds or self.default_timeout_seconds

"""Pipeline models — stage descriptors, in-flight runs and terminal results."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from helmsman.models.convergence import ConvergenceAction
from helmsman.models.releases import Release


class PipelineOutcome(str, Enum):
    """Terminal outcome of a pipeline or rollback run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"


class Stage(BaseModel):
    """A named unit of work in a pipeline.

    ``action`` receives the shared run context dict and returns a
    JSON-friendly result (or ``None``); it signals failure by raising.
    Finalizer stages always run after the regular stages, whatever
    happened to them.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    action: Callable[[dict[str, Any]], Any]
    is_finalizer: bool = False
    description: str = ""


class FinalizerOutcome(BaseModel):
    """Result of a single finalizer stage."""

    model_config = ConfigDict(frozen=True)

    name: str
    succeeded: bool
    error: str | None = None
    error_kind: str | None = None


class PipelineRun(BaseModel):
    """Ephemeral bookkeeping for one in-flight pipeline invocation.

    Lives only for the duration of ``StageRunner.run()``; never persisted.
    """

    model_config = ConfigDict(validate_assignment=True)

    run_id: str
    app_id: str
    environment: str
    stages: list[str] = []
    current_index: int = 0
    outcome: PipelineOutcome | None = None


class PipelineResult(BaseModel):
    """The structured, terminal result of a pipeline or rollback.

    ``failed_stage`` and ``error`` are set whenever ``outcome`` is not
    ``succeeded``. Finalizer failures are reported in ``finalizers`` and
    never change ``outcome``.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    app_id: str
    environment: str
    outcome: PipelineOutcome
    failed_stage: str | None = None
    error: str | None = None
    error_kind: str | None = None
    completed_stages: list[str] = []
    skipped_stages: list[str] = []
    finalizers: list[FinalizerOutcome] = []
    release: Release | None = None
    convergence_action: ConvergenceAction | None = None
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    finished_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def succeeded(self) -> bool:
        return self.outcome == PipelineOutcome.SUCCEEDED

    @property
    def finalizer_failures(self) -> list[FinalizerOutcome]:
        return [f for f in self.finalizers if not f.succeeded]

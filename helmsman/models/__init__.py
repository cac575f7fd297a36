"""Helmsman data models — all Pydantic v2."""

from helmsman.models.config import PipelineConfig
from helmsman.models.convergence import (
    ConvergenceAction,
    ConvergenceResult,
    StateDiff,
)
from helmsman.models.pipeline import (
    FinalizerOutcome,
    PipelineOutcome,
    PipelineResult,
    PipelineRun,
    Stage,
)
from helmsman.models.releases import (
    EnvironmentKey,
    Release,
    ReleaseKind,
    ReleaseStatus,
)
from helmsman.models.requests import PipelineRequest

__all__ = [
    # releases
    "EnvironmentKey",
    "Release",
    "ReleaseKind",
    "ReleaseStatus",
    # convergence
    "ConvergenceAction",
    "ConvergenceResult",
    "StateDiff",
    # pipeline
    "Stage",
    "PipelineRun",
    "PipelineOutcome",
    "PipelineResult",
    "FinalizerOutcome",
    # requests
    "PipelineRequest",
    # config
    "PipelineConfig",
]

"""Convergence models — state diffs and convergence outcomes."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from helmsman.models.releases import EnvironmentKey


class ConvergenceAction(str, Enum):
    """What the ConvergenceEngine did to reach the desired state."""

    NOOP = "noop"
    APPLIED = "applied"


class StateDiff(BaseModel):
    """Key-level symmetric difference between observed and desired state."""

    model_config = ConfigDict(frozen=True)

    added: list[str] = []  # in desired, absent from observed
    removed: list[str] = []  # in observed, absent from desired
    changed: list[str] = []  # in both, with different values

    @classmethod
    def between(
        cls, observed: dict[str, Any], desired: dict[str, Any]
    ) -> StateDiff:
        """Compute the diff needed to move *observed* to *desired*."""
        return cls(
            added=sorted(k for k in desired if k not in observed),
            removed=sorted(k for k in observed if k not in desired),
            changed=sorted(
                k for k in desired if k in observed and observed[k] != desired[k]
            ),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)

    @property
    def keys(self) -> list[str]:
        return sorted({*self.added, *self.removed, *self.changed})


class ConvergenceResult(BaseModel):
    """Outcome of a successful ``ConvergenceEngine.converge()`` call.

    Failures are raised, never returned, so a result always means the
    environment now observes ``desired_state``.
    """

    model_config = ConfigDict(frozen=True)

    key: EnvironmentKey
    action: ConvergenceAction
    previous_state: dict[str, Any]
    desired_state: dict[str, Any]
    diff: StateDiff = StateDiff()

    @property
    def changed(self) -> bool:
        return self.action == ConvergenceAction.APPLIED

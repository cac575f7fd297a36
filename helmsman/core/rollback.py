"""Restore an environment to a previously recorded release.

Rollback never rewrites history. It converges the environment to the
target release's stored desired state, then appends a *new* ``rollback``
release carrying that state, and marks the release it rolled back away
from as ``rolled_back``. The target is never marked ``rolled_back``; if it
is itself the current release it is only ``superseded`` by its copy.

A rollback whose target state is already observed still appends a
release: the operator asked for it, so the audit trail records it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from helmsman.core.convergence import ConvergenceEngine
from helmsman.core.errors import NotFoundError, ValidationError
from helmsman.core.key_locks import KeyedLocks
from helmsman.core.release_store import ReleaseStore
from helmsman.core.stage_runner import StageRunner, new_run_id, rejected_result
from helmsman.core.timeouts import CancellationToken
from helmsman.models.convergence import ConvergenceAction
from helmsman.models.pipeline import PipelineResult, Stage
from helmsman.models.releases import (
    EnvironmentKey,
    Release,
    ReleaseKind,
    ReleaseStatus,
)
from helmsman.stages.lint import environment_key

logger = logging.getLogger(__name__)


class RollbackController:
    """Rolls environments back to recorded releases.

    Parameters
    ----------
    engine:
        Convergence engine used to restore state.
    store:
        Release history to read targets from and append to.
    locks:
        Per-environment exclusive sections shared with the deploy path.
    runner:
        Stage runner for ``rollback_to``. A fresh one is used if omitted.
    lock_timeout:
        Longest wait for the environment's exclusive section.
    """

    def __init__(
        self,
        engine: ConvergenceEngine,
        store: ReleaseStore,
        locks: KeyedLocks,
        *,
        runner: StageRunner | None = None,
        lock_timeout: float | None = None,
    ) -> None:
        self._engine = engine
        self._store = store
        self._locks = locks
        self._runner = runner or StageRunner()
        self._lock_timeout = lock_timeout

    # ------------------------------------------------------------------
    # Core operation
    # ------------------------------------------------------------------

    def restore(
        self, target: Release, *, run_id: str = ""
    ) -> tuple[ConvergenceAction, Release]:
        """Converge to *target*'s desired state and append a rollback release.

        Raises whatever ``ConvergenceEngine.converge`` raises; in that case
        nothing is appended.
        """
        key = target.key
        with self._locks.exclusive(key, timeout=self._lock_timeout):
            current = self._store.current(key.app_id, key.environment)
            result = self._engine.converge(key, target.desired_state)
            # Only a release being moved away from counts as rolled back.
            retire_as = (
                ReleaseStatus.SUPERSEDED
                if current is not None and current.release_id == target.release_id
                else ReleaseStatus.ROLLED_BACK
            )
            release = self._store.append(
                Release(
                    app_id=key.app_id,
                    environment=key.environment,
                    artifact_ref=target.artifact_ref,
                    desired_state=result.desired_state,
                    kind=ReleaseKind.ROLLBACK,
                    source_release_id=target.release_id,
                    run_id=run_id,
                ),
                retire_as=retire_as,
            )

        logger.info(
            "Rolled %s back to release #%d as #%d (%s; previous current: %s)",
            key,
            target.release_id,
            release.release_id,
            result.action.value,
            f"#{current.release_id}" if current else "none",
        )
        return result.action, release

    def resolve_target(
        self, app_id: str, environment: str, release_id: int
    ) -> Release:
        """Look up the release to roll back to, or raise ``NotFoundError``."""
        return self._store.get(app_id, environment, release_id)

    def resolve_previous(
        self, app_id: str, environment: str, steps: int = 1
    ) -> Release:
        """Resolve the release *steps* positions before the latest one.

        ``steps=1`` is "the previous release".
        """
        if steps < 1:
            raise ValidationError(f"steps must be at least 1, got {steps}")
        history = self._store.history(app_id, environment, limit=steps + 1)
        if len(history) <= steps:
            raise NotFoundError(
                f"{app_id}/{environment} has no release {steps} "
                f"position(s) before the latest ({len(history)} recorded)"
            )
        return history[steps]

    # ------------------------------------------------------------------
    # Pipeline entry points
    # ------------------------------------------------------------------

    def rollback_stage(self, resolve: Callable[[], Release]) -> Stage:
        """The ``rollback`` stage: resolve the target, restore, record.

        Puts ``desired_state``, ``release`` and ``convergence_action`` in
        the run context.
        """

        def _rollback(run_context: dict[str, Any]) -> dict[str, Any]:
            target = resolve()
            action, release = self.restore(
                target, run_id=run_context.get("run_id", "")
            )
            run_context["target_release"] = target
            run_context["desired_state"] = release.desired_state
            run_context["release"] = release
            run_context["convergence_action"] = action
            return {
                "action": action.value,
                "target_release_id": target.release_id,
                "release_id": release.release_id,
            }

        return Stage(
            name="rollback",
            action=_rollback,
            description="Restore a recorded release.",
        )

    def rollback_to(
        self,
        app_id: str,
        environment: str,
        target_release_id: int,
        *,
        extra_stages: Sequence[Stage] = (),
        cancel_token: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> PipelineResult:
        """Roll back to an explicit release id.

        *extra_stages* run after the ``rollback`` stage (e.g. ``verify``,
        finalizers). An unknown target yields outcome ``not_found`` with no
        apply and no append.
        """
        return self._run(
            app_id,
            environment,
            lambda: self.resolve_target(app_id, environment, target_release_id),
            extra_stages=extra_stages,
            cancel_token=cancel_token,
            run_id=run_id,
        )

    def rollback_previous(
        self,
        app_id: str,
        environment: str,
        steps: int = 1,
        *,
        extra_stages: Sequence[Stage] = (),
        cancel_token: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> PipelineResult:
        """Roll back to the release *steps* positions before the latest."""
        return self._run(
            app_id,
            environment,
            lambda: self.resolve_previous(app_id, environment, steps),
            extra_stages=extra_stages,
            cancel_token=cancel_token,
            run_id=run_id,
        )

    def _run(
        self,
        app_id: str,
        environment: str,
        resolve: Callable[[], Release],
        *,
        extra_stages: Sequence[Stage],
        cancel_token: CancellationToken | None,
        run_id: str | None,
    ) -> PipelineResult:
        run_id = run_id or new_run_id()
        try:
            key: EnvironmentKey = environment_key(app_id, environment)
        except ValidationError as exc:
            return rejected_result(run_id, app_id, environment, "rollback", exc)

        run_context: dict[str, Any] = {"run_id": run_id, "key": key}
        return self._runner.run(
            [self.rollback_stage(resolve), *extra_stages],
            run_context,
            cancel_token=cancel_token,
        )

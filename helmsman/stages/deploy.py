"""``deploy`` — converge the environment and record the release.

Runs entirely inside the environment's exclusive section so that
read -> diff -> apply -> append can never interleave with another run on
the same ``(app_id, environment)``. A release is appended only after a
confirmed-successful apply; an idempotent no-op appends nothing.
"""

from __future__ import annotations

import logging
from typing import Any

from helmsman.core.convergence import ConvergenceEngine
from helmsman.core.key_locks import KeyedLocks
from helmsman.core.release_store import ReleaseStore
from helmsman.models.convergence import ConvergenceAction
from helmsman.models.pipeline import Stage
from helmsman.models.releases import EnvironmentKey, Release, ReleaseKind
from helmsman.models.requests import PipelineRequest

logger = logging.getLogger(__name__)


def converge_and_record(
    engine: ConvergenceEngine,
    store: ReleaseStore,
    locks: KeyedLocks,
    request: PipelineRequest,
    desired_state: dict[str, Any],
    *,
    run_id: str = "",
    lock_timeout: float | None = None,
) -> tuple[ConvergenceAction, Release | None]:
    """Converge and, when something changed, append a deploy release."""
    key = EnvironmentKey(app_id=request.app_id, environment=request.environment)
    with locks.exclusive(key, timeout=lock_timeout):
        result = engine.converge(key, desired_state)
        if not result.changed:
            return result.action, None
        release = store.append(
            Release(
                app_id=key.app_id,
                environment=key.environment,
                artifact_ref=request.artifact_ref,
                desired_state=result.desired_state,
                kind=ReleaseKind.DEPLOY,
                run_id=run_id,
            )
        )
    return result.action, release


def deploy_stage(
    engine: ConvergenceEngine,
    store: ReleaseStore,
    locks: KeyedLocks,
    *,
    lock_timeout: float | None = None,
) -> Stage:
    def _deploy(run_context: dict[str, Any]) -> dict[str, Any]:
        request: PipelineRequest = run_context["request"]
        action, release = converge_and_record(
            engine,
            store,
            locks,
            request,
            run_context.get("desired_state", request.desired_state),
            run_id=run_context.get("run_id", ""),
            lock_timeout=lock_timeout,
        )
        run_context["convergence_action"] = action
        if release is not None:
            run_context["release"] = release
            return {"action": action.value, "release_id": release.release_id}
        logger.info("%s/%s unchanged; no release recorded", request.app_id, request.environment)
        return {"action": action.value, "release_id": None}

    return Stage(
        name="deploy",
        action=_deploy,
        description="Converge the environment and record the release.",
    )

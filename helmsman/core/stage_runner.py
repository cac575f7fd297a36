"""Fail-fast stage sequencing with guaranteed finalizers.

Regular stages run strictly in declaration order. The first one that
raises ends the run: later regular stages are skipped and the failure
becomes the run's terminal result. Finalizer stages then run, all of them,
in their own declared order, whatever happened before. A finalizer that
fails is recorded next to the result and never masks the primary outcome.

Cancellation is cooperative: the token is checked before each regular
stage, so an in-flight stage always finishes.

The runner keeps no state between invocations.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from helmsman.core.errors import NotFoundError, PipelineCancelledError, error_kind
from helmsman.core.timeouts import CancellationToken
from helmsman.models.pipeline import (
    FinalizerOutcome,
    PipelineOutcome,
    PipelineResult,
    PipelineRun,
    Stage,
)
from helmsman.models.releases import EnvironmentKey

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"hm-{ts}-{uuid.uuid4().hex[:6]}"


class StageRunner:
    """Executes an ordered list of stages over a shared run context.

    The run context is a plain dict. The runner reads ``run_id`` and
    ``key`` (an ``EnvironmentKey``) from it, adds ``run`` (the in-flight
    ``PipelineRun``) and ``stage_results`` (stage name -> return value),
    and picks ``release`` and ``convergence_action`` up from it when
    building the result, if a stage put them there.
    """

    def run(
        self,
        stages: Sequence[Stage],
        run_context: dict[str, Any],
        *,
        cancel_token: CancellationToken | None = None,
    ) -> PipelineResult:
        names = [s.name for s in stages]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate stage names: {duplicates}")

        key: EnvironmentKey = run_context["key"]
        run_id: str = run_context.setdefault("run_id", new_run_id())
        regular = [s for s in stages if not s.is_finalizer]
        finalizers = [s for s in stages if s.is_finalizer]

        run = PipelineRun(
            run_id=run_id,
            app_id=key.app_id,
            environment=key.environment,
            stages=names,
        )
        run_context["run"] = run
        stage_results: dict[str, Any] = run_context.setdefault("stage_results", {})

        started_at = datetime.now(timezone.utc)
        outcome = PipelineOutcome.SUCCEEDED
        failed_stage: str | None = None
        error: str | None = None
        kind: str | None = None
        completed: list[str] = []

        logger.info(
            "Run %s for %s: %d stages, %d finalizers",
            run_id,
            key,
            len(regular),
            len(finalizers),
        )

        try:
            for index, stage in enumerate(regular):
                run.current_index = index

                if cancel_token is not None and cancel_token.is_cancelled:
                    outcome = PipelineOutcome.CANCELLED
                    failed_stage = stage.name
                    error = cancel_token.reason or "cancelled"
                    kind = PipelineCancelledError.kind
                    logger.warning(
                        "Run %s cancelled before stage %s: %s",
                        run_id,
                        stage.name,
                        error,
                    )
                    break

                logger.info("Run %s: stage %s starting", run_id, stage.name)
                try:
                    result = stage.action(run_context)
                except Exception as exc:
                    if isinstance(exc, NotFoundError):
                        outcome = PipelineOutcome.NOT_FOUND
                    elif isinstance(exc, PipelineCancelledError):
                        outcome = PipelineOutcome.CANCELLED
                    else:
                        outcome = PipelineOutcome.FAILED
                    failed_stage = stage.name
                    error = str(exc) or type(exc).__name__
                    kind = error_kind(exc)
                    logger.error(
                        "Run %s: stage %s failed (%s): %s",
                        run_id,
                        stage.name,
                        kind,
                        error,
                    )
                    break

                stage_results[stage.name] = result
                completed.append(stage.name)
                logger.info("Run %s: stage %s passed", run_id, stage.name)
        finally:
            finalizer_outcomes = self._run_finalizers(run_id, finalizers, run_context)

        run.outcome = outcome
        skipped = [
            s.name
            for s in regular
            if s.name not in completed
            and (s.name != failed_stage or outcome == PipelineOutcome.CANCELLED)
        ]

        result = PipelineResult(
            run_id=run_id,
            app_id=key.app_id,
            environment=key.environment,
            outcome=outcome,
            failed_stage=failed_stage,
            error=error,
            error_kind=kind,
            completed_stages=completed,
            skipped_stages=skipped,
            finalizers=finalizer_outcomes,
            release=run_context.get("release"),
            convergence_action=run_context.get("convergence_action"),
            started_at=started_at,
        )
        logger.info("Run %s finished: %s", run_id, outcome.value)
        return result

    @staticmethod
    def _run_finalizers(
        run_id: str, finalizers: list[Stage], run_context: dict[str, Any]
    ) -> list[FinalizerOutcome]:
        outcomes: list[FinalizerOutcome] = []
        for stage in finalizers:
            try:
                stage.action(run_context)
            except Exception as exc:
                logger.warning(
                    "Run %s: finalizer %s failed: %s", run_id, stage.name, exc
                )
                outcomes.append(
                    FinalizerOutcome(
                        name=stage.name,
                        succeeded=False,
                        error=str(exc) or type(exc).__name__,
                        error_kind=error_kind(exc),
                    )
                )
            else:
                outcomes.append(FinalizerOutcome(name=stage.name, succeeded=True))
        return outcomes


def rejected_result(
    run_id: str,
    app_id: str,
    environment: str,
    stage_name: str,
    exc: Exception,
) -> PipelineResult:
    """A failed result for a request rejected before any stage could run.

    Used when the target itself is malformed, so no ``EnvironmentKey``
    (and hence no run) can exist.
    """
    logger.error("Run %s rejected at %s: %s", run_id, stage_name, exc)
    return PipelineResult(
        run_id=run_id,
        app_id=app_id,
        environment=environment,
        outcome=PipelineOutcome.FAILED,
        failed_stage=stage_name,
        error=str(exc) or type(exc).__name__,
        error_kind=error_kind(exc),
    )

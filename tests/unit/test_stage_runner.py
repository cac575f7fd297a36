"""Tests for the StageRunner — fail-fast ordering, finalizers, cancellation."""

from __future__ import annotations

from typing import Any

import pytest

from helmsman.core.errors import ExternalFailure, NotFoundError
from helmsman.core.stage_runner import StageRunner, new_run_id, rejected_result
from helmsman.core.timeouts import CancellationToken
from helmsman.models.pipeline import PipelineOutcome, Stage
from helmsman.models.releases import EnvironmentKey


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _recording_stage(name: str, calls: list[str], *, fail: Exception | None = None,
                     finalizer: bool = False) -> Stage:
    def _action(run_context: dict[str, Any]) -> str:
        calls.append(name)
        if fail is not None:
            raise fail
        return f"{name}-ok"

    return Stage(name=name, action=_action, is_finalizer=finalizer)


def _context(key: EnvironmentKey) -> dict[str, Any]:
    return {"run_id": "hm-test-run-001", "key": key}


class TestStageRunner:
    def test_all_stages_pass(self, key: EnvironmentKey):
        calls: list[str] = []
        stages = [_recording_stage(n, calls) for n in ("a", "b", "c")]
        result = StageRunner().run(stages, _context(key))
        assert result.outcome == PipelineOutcome.SUCCEEDED
        assert result.succeeded
        assert calls == ["a", "b", "c"]
        assert result.completed_stages == ["a", "b", "c"]
        assert result.failed_stage is None

    def test_fail_fast_and_finalizer_runs_once(self, key: EnvironmentKey):
        calls: list[str] = []
        stages = [
            _recording_stage("a", calls),
            _recording_stage("b", calls, fail=ExternalFailure("registry down")),
            _recording_stage("c", calls),
            _recording_stage("f", calls, finalizer=True),
        ]
        result = StageRunner().run(stages, _context(key))

        assert calls == ["a", "b", "f"]
        assert result.outcome == PipelineOutcome.FAILED
        assert result.failed_stage == "b"
        assert result.error == "registry down"
        assert result.error_kind == "external"
        assert result.completed_stages == ["a"]
        assert result.skipped_stages == ["c"]
        assert [f.name for f in result.finalizers] == ["f"]

    def test_finalizer_failure_does_not_mask_outcome(self, key: EnvironmentKey):
        calls: list[str] = []
        stages = [
            _recording_stage("a", calls),
            _recording_stage("cleanup", calls, fail=RuntimeError("logout failed"), finalizer=True),
            _recording_stage("report", calls, finalizer=True),
        ]
        result = StageRunner().run(stages, _context(key))
        assert result.outcome == PipelineOutcome.SUCCEEDED
        assert calls == ["a", "cleanup", "report"]
        assert [f.name for f in result.finalizer_failures] == ["cleanup"]
        assert result.finalizer_failures[0].error_kind == "internal"

    def test_finalizer_failure_keeps_primary_error(self, key: EnvironmentKey):
        calls: list[str] = []
        stages = [
            _recording_stage("a", calls, fail=ExternalFailure("primary")),
            _recording_stage("f", calls, fail=RuntimeError("secondary"), finalizer=True),
        ]
        result = StageRunner().run(stages, _context(key))
        assert result.error == "primary"
        assert result.finalizers[0].error == "secondary"

    def test_finalizers_run_in_declared_order_after_regular(self, key: EnvironmentKey):
        calls: list[str] = []
        stages = [
            _recording_stage("f1", calls, finalizer=True),
            _recording_stage("a", calls),
            _recording_stage("f2", calls, finalizer=True),
            _recording_stage("b", calls),
        ]
        StageRunner().run(stages, _context(key))
        assert calls == ["a", "b", "f1", "f2"]

    def test_not_found_outcome(self, key: EnvironmentKey):
        calls: list[str] = []
        stages = [_recording_stage("lookup", calls, fail=NotFoundError("no release 9"))]
        result = StageRunner().run(stages, _context(key))
        assert result.outcome == PipelineOutcome.NOT_FOUND
        assert result.error_kind == "not_found"

    def test_stage_results_recorded_in_context(self, key: EnvironmentKey):
        ctx = _context(key)
        StageRunner().run([_recording_stage("a", [])], ctx)
        assert ctx["stage_results"] == {"a": "a-ok"}
        assert ctx["run"].outcome == PipelineOutcome.SUCCEEDED

    def test_duplicate_stage_names_rejected(self, key: EnvironmentKey):
        stages = [_recording_stage("a", []), _recording_stage("a", [])]
        with pytest.raises(ValueError, match="Duplicate"):
            StageRunner().run(stages, _context(key))

    def test_runner_is_reusable(self, key: EnvironmentKey):
        runner = StageRunner()
        first = runner.run([_recording_stage("a", [], fail=ExternalFailure("x"))], _context(key))
        second = runner.run([_recording_stage("a", [])], _context(key))
        assert first.outcome == PipelineOutcome.FAILED
        assert second.outcome == PipelineOutcome.SUCCEEDED


class TestCancellation:
    def test_cancel_between_stages(self, key: EnvironmentKey):
        calls: list[str] = []
        token = CancellationToken()

        def _cancel_after(run_context: dict[str, Any]) -> None:
            calls.append("a")
            token.cancel("operator abort")

        stages = [
            Stage(name="a", action=_cancel_after),
            _recording_stage("b", calls),
            _recording_stage("c", calls),
            _recording_stage("f", calls, finalizer=True),
        ]
        result = StageRunner().run(stages, _context(key), cancel_token=token)

        assert calls == ["a", "f"]
        assert result.outcome == PipelineOutcome.CANCELLED
        assert result.failed_stage == "b"
        assert result.error == "operator abort"
        assert result.error_kind == "cancelled"
        assert result.completed_stages == ["a"]
        assert result.skipped_stages == ["b", "c"]

    def test_cancelled_before_start(self, key: EnvironmentKey):
        calls: list[str] = []
        token = CancellationToken()
        token.cancel()
        result = StageRunner().run(
            [_recording_stage("a", calls), _recording_stage("f", calls, finalizer=True)],
            _context(key),
            cancel_token=token,
        )
        assert calls == ["f"]
        assert result.outcome == PipelineOutcome.CANCELLED

    def test_stage_may_raise_cancellation(self, key: EnvironmentKey):
        token = CancellationToken()

        def _check(run_context: dict[str, Any]) -> None:
            token.cancel("stop")
            token.raise_if_cancelled()

        result = StageRunner().run([Stage(name="a", action=_check)], _context(key))
        assert result.outcome == PipelineOutcome.CANCELLED


class TestHelpers:
    def test_new_run_id_format(self):
        run_id = new_run_id()
        assert run_id.startswith("hm-")
        assert run_id != new_run_id()

    def test_rejected_result(self):
        result = rejected_result("hm-1", "Bad App", "prod", "lint", ValueError("bad"))
        assert result.outcome == PipelineOutcome.FAILED
        assert result.failed_stage == "lint"
        assert result.error_kind == "internal"
        assert result.completed_stages == []

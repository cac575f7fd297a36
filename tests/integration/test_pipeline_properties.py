"""End-to-end integration tests — deploy, rollback and history together.

These exercise the DeploymentOrchestrator with its real ReleaseStore,
ConvergenceEngine, StageRunner and RollbackController, against the
in-memory and filesystem collaborators.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from helmsman.core.orchestrator import DeploymentOrchestrator
from helmsman.core.timeouts import CancellationToken
from helmsman.drivers.credentials import StaticCredentialSource
from helmsman.drivers.filesystem import FileEnvironmentDriver, LocalRegistryPublisher
from helmsman.drivers.memory import RecordingPublisher
from helmsman.models.config import PipelineConfig
from helmsman.models.convergence import ConvergenceAction
from helmsman.models.pipeline import PipelineOutcome, Stage
from helmsman.models.releases import ReleaseKind, ReleaseStatus


class TestDeployLifecycle:
    """Deploy R1, R2, roll back to R1, inspect history."""

    def test_idempotent_convergence(self, orchestrator, make_request, driver):
        first = orchestrator.run_pipeline(make_request({"image_tag": "1.0"}))
        second = orchestrator.run_pipeline(make_request({"image_tag": "1.0"}))

        assert first.convergence_action == ConvergenceAction.APPLIED
        assert second.convergence_action == ConvergenceAction.NOOP
        assert driver.apply_count == 1
        assert [r.release_id for r in orchestrator.get_history("shop", "staging")] == [1]

    def test_history_is_monotonic(self, orchestrator, make_request):
        for tag in ("1.0", "2.0", "3.0", "4.0"):
            orchestrator.run_pipeline(make_request({"image_tag": tag}))
        ids = [r.release_id for r in orchestrator.get_history("shop", "staging")]
        assert ids == [4, 3, 2, 1]

    def test_rollback_restores_earlier_release(self, orchestrator, make_request):
        r1 = orchestrator.run_pipeline(make_request({"image_tag": "1.0"})).release
        orchestrator.run_pipeline(make_request({"image_tag": "2.0"}))

        result = orchestrator.rollback("shop", "staging", r1.release_id)

        assert result.outcome == PipelineOutcome.SUCCEEDED
        history = orchestrator.get_history("shop", "staging")
        assert [r.release_id for r in history] == [3, 2, 1]
        r3, r2, r1_after = history
        assert r3.kind == ReleaseKind.ROLLBACK
        assert r3.source_release_id == 1
        assert r3.desired_state == {"image_tag": "1.0"}
        assert r3.status == ReleaseStatus.APPLIED
        assert r2.status == ReleaseStatus.ROLLED_BACK
        assert r1_after.status == ReleaseStatus.SUPERSEDED
        assert r1_after.desired_state == r1.desired_state
        assert orchestrator.observed_state("shop", "staging") == {"image_tag": "1.0"}
        assert orchestrator.verify_chain("shop", "staging") is True

    def test_noop_rollback_is_audited(self, orchestrator, make_request, driver):
        orchestrator.run_pipeline(make_request({"image_tag": "1.0"}))
        applies = driver.apply_count

        result = orchestrator.rollback("shop", "staging", 1)

        assert result.outcome == PipelineOutcome.SUCCEEDED
        assert result.convergence_action == ConvergenceAction.NOOP
        assert driver.apply_count == applies
        history = orchestrator.get_history("shop", "staging")
        assert [(r.release_id, r.status) for r in history] == [
            (2, ReleaseStatus.APPLIED),
            (1, ReleaseStatus.SUPERSEDED),
        ]

    def test_unknown_rollback_target(self, orchestrator, make_request, driver):
        orchestrator.run_pipeline(make_request({"image_tag": "1.0"}))
        applies = driver.apply_count

        result = orchestrator.rollback("shop", "staging", 99)

        assert result.outcome == PipelineOutcome.NOT_FOUND
        assert driver.apply_count == applies
        assert len(orchestrator.get_history("shop", "staging")) == 1

    def test_environments_are_isolated(self, orchestrator, make_request):
        orchestrator.run_pipeline(make_request({"image_tag": "1.0"}, environment="staging"))
        orchestrator.run_pipeline(make_request({"image_tag": "9.9"}, environment="prod"))

        assert orchestrator.observed_state("shop", "staging") == {"image_tag": "1.0"}
        assert orchestrator.observed_state("shop", "prod") == {"image_tag": "9.9"}
        assert orchestrator.get_history("shop", "prod")[0].release_id == 1


class TestConcurrency:
    def test_same_key_runs_serialize(self, orchestrator, make_request, driver):
        requests = [make_request({"image_tag": f"{i}.0"}) for i in range(8)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(orchestrator.run_pipeline, requests))

        # A run may fail verify if a later run already moved the environment on;
        # every run still converged and recorded exactly one release.
        assert len({r.release.release_id for r in results if r.release}) == 8
        history = orchestrator.get_history("shop", "staging")
        assert sorted(r.release_id for r in history) == list(range(1, 9))
        # No lost update: the environment holds the state of the latest release.
        assert orchestrator.observed_state("shop", "staging") == history[0].desired_state
        assert orchestrator.verify_chain("shop", "staging") is True

    def test_different_keys_run_in_parallel(self, driver, publisher, store, config, make_request):
        barrier = threading.Barrier(2, timeout=5)

        class BarrierVerifier:
            def verify(self, key, expected_state, *, timeout):
                # Both runs must be inside verify at once to pass the barrier.
                barrier.wait()
                return True

        orch = DeploymentOrchestrator(
            driver, publisher, config, verifier=BarrierVerifier(), store=store
        )
        with ThreadPoolExecutor(max_workers=2) as pool:
            futures = [
                pool.submit(orch.run_pipeline, make_request(environment=env))
                for env in ("staging", "prod")
            ]
            results = [f.result() for f in futures]

        assert all(r.succeeded for r in results)


class TestCancellationAndFinalizers:
    def test_cancel_before_deploy_leaves_environment_untouched(
        self, driver, store, config, make_request
    ):
        token = CancellationToken()

        class CancellingPublisher(RecordingPublisher):
            def publish(self, artifact_ref, *, credentials=None, timeout):
                token.cancel("change freeze")
                return super().publish(artifact_ref, credentials=credentials, timeout=timeout)

        credentials = StaticCredentialSource("tok")
        orch = DeploymentOrchestrator(
            driver, CancellingPublisher(), config, credentials=credentials, store=store
        )
        result = orch.run_pipeline(make_request(), cancel_token=token)

        assert result.outcome == PipelineOutcome.CANCELLED
        assert result.failed_stage == "deploy"
        assert result.completed_stages == ["lint", "login", "publish"]
        assert driver.apply_count == 0
        assert credentials.outstanding == 0
        assert store.history("shop", "staging") == []

    def test_logout_failure_reported_not_masking(self, driver, publisher, store, config, make_request):
        class FlakyCredentials(StaticCredentialSource):
            def release(self, token):
                raise RuntimeError("revocation endpoint down")

        orch = DeploymentOrchestrator(
            driver, publisher, config, credentials=FlakyCredentials("t"), store=store
        )
        result = orch.run_pipeline(make_request())

        assert result.outcome == PipelineOutcome.SUCCEEDED
        assert [f.name for f in result.finalizer_failures] == ["logout"]

    def test_rollback_extra_finalizer(self, orchestrator, make_request):
        calls: list[str] = []
        orchestrator.run_pipeline(make_request({"image_tag": "1.0"}))
        orchestrator.run_pipeline(make_request({"image_tag": "2.0"}))

        result = orchestrator.rollback_controller.rollback_to(
            "shop", "staging", 1,
            extra_stages=[Stage(name="notify", action=lambda ctx: calls.append("notify"),
                                is_finalizer=True)],
        )
        assert result.succeeded
        assert calls == ["notify"]


class TestFilesystemBackends:
    @pytest.fixture
    def fs_orch(self, tmp_dir: Path) -> DeploymentOrchestrator:
        config = PipelineConfig(
            release_db_path=tmp_dir / "fs-releases.db",
            state_dir=tmp_dir / "state",
            registry_path=tmp_dir / "registry",
            default_timeout_seconds=5.0,
        )
        return DeploymentOrchestrator(
            FileEnvironmentDriver(config.state_dir),
            LocalRegistryPublisher(config.registry_path),
            config,
        )

    def test_deploy_and_rollback_on_disk(self, fs_orch, make_request, tmp_dir: Path):
        fs_orch.run_pipeline(make_request({"image_tag": "1.0"}))
        fs_orch.run_pipeline(make_request({"image_tag": "2.0"}, artifact_ref="shop:2.0"))
        result = fs_orch.rollback_previous("shop", "staging")

        assert result.succeeded
        assert fs_orch.observed_state("shop", "staging") == {"image_tag": "1.0"}
        assert LocalRegistryPublisher(tmp_dir / "registry").exists("shop:2.0")

    def test_in_memory_and_file_drivers_agree(self, fs_orch, orchestrator, make_request):
        for orch in (fs_orch, orchestrator):
            orch.run_pipeline(make_request({"image_tag": "1.0", "replicas": 3}))
        assert fs_orch.observed_state("shop", "staging") == orchestrator.observed_state(
            "shop", "staging"
        )

"""Deployment orchestrator — the surface callers use.

The DeploymentOrchestrator wires the ReleaseStore, ConvergenceEngine,
StageRunner, RollbackController and per-environment locks to the
external collaborators, and exposes three operations:

- ``run_pipeline(request)``  lint -> login -> publish -> deploy -> verify (+ logout)
- ``rollback(app_id, environment, release_id)``  rollback -> verify
- ``get_history(app_id, environment)``

Each call is an independent unit of work and may be issued from any
thread. Calls for the same ``(app_id, environment)`` serialize on the
deploy/rollback section; calls for different keys run in parallel.
"""

from __future__ import annotations

import logging
from typing import Any

from helmsman.core.convergence import ConvergenceEngine
from helmsman.core.errors import ValidationError
from helmsman.core.key_locks import KeyedLocks
from helmsman.core.release_store import ReleaseStore
from helmsman.core.rollback import RollbackController
from helmsman.core.stage_runner import StageRunner, new_run_id, rejected_result
from helmsman.core.timeouts import CancellationToken
from helmsman.drivers.base import (
    ArtifactPublisher,
    CredentialSource,
    EnvironmentDriver,
    Verifier,
)
from helmsman.drivers.credentials import StaticCredentialSource
from helmsman.drivers.verifiers import StateMatchVerifier
from helmsman.models.config import PipelineConfig
from helmsman.models.pipeline import PipelineResult, Stage
from helmsman.models.releases import Release
from helmsman.models.requests import PipelineRequest
from helmsman.stages import (
    deploy_stage,
    environment_key,
    lint_stage,
    login_stage,
    logout_stage,
    publish_stage,
    verify_stage,
)

logger = logging.getLogger(__name__)


class DeploymentOrchestrator:
    """Central deployment pipeline orchestrator.

    Parameters
    ----------
    driver:
        Environment driver (reads and applies observed state).
    publisher:
        Artifact publisher used by the ``publish`` stage.
    config:
        Pipeline configuration. Uses defaults if not provided.
    verifier:
        Post-deploy verifier. Defaults to a read-back state match.
    credentials:
        Credential source for ``login``/``logout``. Defaults to an empty
        static token.
    store:
        Release store. Opened at ``config.release_db_path`` if omitted.
    """

    def __init__(
        self,
        driver: EnvironmentDriver,
        publisher: ArtifactPublisher,
        config: PipelineConfig | None = None,
        *,
        verifier: Verifier | None = None,
        credentials: CredentialSource | None = None,
        store: ReleaseStore | None = None,
    ) -> None:
        self.config = config or PipelineConfig()

        # Collaborators
        self.driver = driver
        self.publisher = publisher
        self.verifier = verifier or StateMatchVerifier(driver)
        self.credentials = credentials or StaticCredentialSource()

        # Core subsystems
        self.store = store or ReleaseStore(self.config.release_db_path)
        self.locks = KeyedLocks()
        self.engine = ConvergenceEngine(driver, self.config)
        self.runner = StageRunner()
        self.rollback_controller = RollbackController(
            self.engine,
            self.store,
            self.locks,
            runner=self.runner,
            lock_timeout=self.config.default_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Pipeline definition
    # ------------------------------------------------------------------

    def build_stages(self) -> list[Stage]:
        """The ordered deploy pipeline, finalizers included."""
        return [
            lint_stage(self.config.required_state_keys),
            login_stage(self.credentials),
            publish_stage(self.publisher, self.config.publish_timeout),
            deploy_stage(
                self.engine,
                self.store,
                self.locks,
                lock_timeout=self.config.default_timeout_seconds,
            ),
            verify_stage(self.verifier, self.config.verify_timeout),
            logout_stage(self.credentials),
        ]

    def build_rollback_stages(self) -> list[Stage]:
        """Stages that run after the ``rollback`` stage itself."""
        stages: list[Stage] = []
        if self.config.verify_after_rollback:
            stages.append(verify_stage(self.verifier, self.config.verify_timeout))
        return stages

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def run_pipeline(
        self,
        request: PipelineRequest,
        *,
        cancel_token: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> PipelineResult:
        """Take *request*'s artifact through the full deploy pipeline."""
        run_id = run_id or new_run_id()
        try:
            key = environment_key(request.app_id, request.environment)
        except ValidationError as exc:
            return rejected_result(
                run_id, request.app_id, request.environment, "lint", exc
            )

        logger.info(
            "Deploying %s to %s (run %s)", request.artifact_ref, key, run_id
        )
        run_context: dict[str, Any] = {
            "run_id": run_id,
            "key": key,
            "request": request,
        }
        return self.runner.run(
            self.build_stages(), run_context, cancel_token=cancel_token
        )

    def rollback(
        self,
        app_id: str,
        environment: str,
        release_id: int,
        *,
        cancel_token: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> PipelineResult:
        """Restore *release_id*, bypassing lint/publish."""
        logger.info("Rolling %s/%s back to #%d", app_id, environment, release_id)
        return self.rollback_controller.rollback_to(
            app_id,
            environment,
            release_id,
            extra_stages=self.build_rollback_stages(),
            cancel_token=cancel_token,
            run_id=run_id,
        )

    def rollback_previous(
        self,
        app_id: str,
        environment: str,
        steps: int = 1,
        *,
        cancel_token: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> PipelineResult:
        """Restore the release *steps* positions before the latest."""
        logger.info(
            "Rolling %s/%s back %d release(s)", app_id, environment, steps
        )
        return self.rollback_controller.rollback_previous(
            app_id,
            environment,
            steps,
            extra_stages=self.build_rollback_stages(),
            cancel_token=cancel_token,
            run_id=run_id,
        )

    def get_history(
        self, app_id: str, environment: str, *, limit: int | None = None
    ) -> list[Release]:
        """Releases for the environment, most recent first."""
        return self.store.history(app_id, environment, limit=limit)

    def observed_state(self, app_id: str, environment: str) -> dict[str, Any]:
        """Current observed state, read through the driver."""
        return self.engine.read_state(environment_key(app_id, environment))

    def verify_chain(self, app_id: str, environment: str) -> bool:
        """Verify the release hash chain for an environment."""
        return self.store.verify_chain(app_id, environment)

"""Shared test fixtures for Helmsman."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from helmsman.core.orchestrator import DeploymentOrchestrator
from helmsman.core.release_store import ReleaseStore
from helmsman.drivers.credentials import StaticCredentialSource
from helmsman.drivers.memory import InMemoryEnvironmentDriver, RecordingPublisher
from helmsman.models.config import PipelineConfig
from helmsman.models.releases import EnvironmentKey, Release
from helmsman.models.requests import PipelineRequest


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def store(tmp_dir: Path) -> ReleaseStore:
    """Provide a fresh ReleaseStore backed by a temp SQLite database."""
    return ReleaseStore(tmp_dir / "releases.db")


@pytest.fixture
def key() -> EnvironmentKey:
    """The environment most tests deploy to."""
    return EnvironmentKey(app_id="shop", environment="staging")


@pytest.fixture
def driver() -> InMemoryEnvironmentDriver:
    """Provide an empty in-memory environment."""
    return InMemoryEnvironmentDriver()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def credentials() -> StaticCredentialSource:
    return StaticCredentialSource("s3cr3t")


@pytest.fixture
def config(tmp_dir: Path) -> PipelineConfig:
    """Pipeline config with short timeouts and temp paths."""
    return PipelineConfig(
        release_db_path=tmp_dir / "releases.db",
        state_dir=tmp_dir / "state",
        registry_path=tmp_dir / "registry",
        default_timeout_seconds=5.0,
    )


@pytest.fixture
def orchestrator(
    driver: InMemoryEnvironmentDriver,
    publisher: RecordingPublisher,
    credentials: StaticCredentialSource,
    config: PipelineConfig,
    store: ReleaseStore,
) -> DeploymentOrchestrator:
    """Provide an orchestrator wired to in-memory collaborators."""
    return DeploymentOrchestrator(
        driver, publisher, config, credentials=credentials, store=store
    )


# ---------------------------------------------------------------------------
# Factories shared across test modules
# ---------------------------------------------------------------------------


@pytest.fixture
def make_request() -> Callable[..., PipelineRequest]:
    """Factory fixture: build a PipelineRequest with sensible defaults."""

    def _factory(
        desired_state: dict[str, Any] | None = None,
        app_id: str = "shop",
        environment: str = "staging",
        artifact_ref: str = "registry.local/shop:1.0.0",
    ) -> PipelineRequest:
        return PipelineRequest(
            app_id=app_id,
            environment=environment,
            artifact_ref=artifact_ref,
            desired_state=desired_state
            if desired_state is not None
            else {"image_tag": "1.0.0", "replicas": 2},
        )

    return _factory


@pytest.fixture
def make_release() -> Callable[..., Release]:
    """Factory fixture: build an unsealed Release with sensible defaults."""

    def _factory(
        desired_state: dict[str, Any] | None = None,
        app_id: str = "shop",
        environment: str = "staging",
        **overrides: Any,
    ) -> Release:
        defaults: dict[str, Any] = {
            "app_id": app_id,
            "environment": environment,
            "artifact_ref": "registry.local/shop:1.0.0",
            "desired_state": desired_state or {"image_tag": "1.0.0"},
        }
        defaults.update(overrides)
        return Release(**defaults)

    return _factory

"""Release models — immutable, sequentially numbered records of applied state.

A Release is created only after a confirmed-successful convergence (or an
explicit rollback) and is never mutated afterwards, except for its
``status`` field which moves from ``applied`` to ``superseded`` or
``rolled_back`` when a newer release lands for the same environment.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReleaseStatus(str, Enum):
    """Lifecycle status of a release record."""

    APPLIED = "applied"
    SUPERSEDED = "superseded"
    ROLLED_BACK = "rolled_back"


class ReleaseKind(str, Enum):
    """How a release came to exist."""

    DEPLOY = "deploy"
    ROLLBACK = "rollback"


class EnvironmentKey(BaseModel):
    """Identifies a logical target environment: ``(app_id, environment)``.

    Both parts are opaque caller-supplied identifiers; only blank values
    are rejected. Hashable, so it can key lock maps and caches.
    """

    model_config = ConfigDict(frozen=True)

    app_id: str
    environment: str

    @field_validator("app_id", "environment")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("identifier must not be blank")
        return value

    def __str__(self) -> str:
        return f"{self.app_id}/{self.environment}"


class Release(BaseModel):
    """An immutable record of a desired state applied to an environment.

    ``release_id`` is ``0`` until the ReleaseStore assigns the next id in
    the environment's sequence on append. ``previous_release_hash`` and
    ``release_hash`` are likewise filled in by the store and chain each
    release to its predecessor for tamper detection.
    """

    model_config = ConfigDict(frozen=True)

    release_id: int = 0
    app_id: str
    environment: str
    artifact_ref: str
    desired_state: dict[str, Any]
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    status: ReleaseStatus = ReleaseStatus.APPLIED
    kind: ReleaseKind = ReleaseKind.DEPLOY
    source_release_id: int | None = None  # set on rollback releases
    run_id: str = ""
    previous_release_hash: str = ""
    release_hash: str = ""

    @property
    def key(self) -> EnvironmentKey:
        return EnvironmentKey(app_id=self.app_id, environment=self.environment)

    @property
    def is_current(self) -> bool:
        return self.status == ReleaseStatus.APPLIED

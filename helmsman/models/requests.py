"""Caller-facing request models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from helmsman.models.releases import EnvironmentKey


class PipelineRequest(BaseModel):
    """A request to take an artifact through the deployment pipeline.

    ``desired_state`` is the complete parameter set the environment should
    converge to. It is validated by the ``lint`` stage, not here, so a
    malformed request still produces a structured pipeline failure.
    """

    model_config = ConfigDict(frozen=True)

    app_id: str
    environment: str
    artifact_ref: str
    desired_state: dict[str, Any] = {}

    @property
    def key(self) -> EnvironmentKey:
        return EnvironmentKey(app_id=self.app_id, environment=self.environment)


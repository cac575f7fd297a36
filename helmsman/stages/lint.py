"""``lint`` — local validation of the pipeline request.

Fails with ``ValidationError`` before any collaborator is called. On
success, stores the normalized desired state in the run context under
``desired_state`` for the stages that follow.
"""

from __future__ import annotations

import logging
from typing import Any

import pydantic

from helmsman.core.convergence import validate_desired_state
from helmsman.core.errors import ValidationError
from helmsman.models.pipeline import Stage
from helmsman.models.releases import EnvironmentKey
from helmsman.models.requests import PipelineRequest

logger = logging.getLogger(__name__)


def environment_key(app_id: str, environment: str) -> EnvironmentKey:
    """Build an EnvironmentKey, reporting bad identifiers as ValidationError."""
    try:
        return EnvironmentKey(app_id=app_id, environment=environment)
    except pydantic.ValidationError as exc:
        details = "; ".join(e["msg"] for e in exc.errors())
        raise ValidationError(f"Invalid target environment: {details}") from exc


def lint_request(
    request: PipelineRequest, required_keys: list[str] | None = None
) -> dict[str, Any]:
    """Validate *request* and return its normalized desired state."""
    environment_key(request.app_id, request.environment)

    if not request.artifact_ref.strip():
        raise ValidationError("Artifact reference is empty")

    return validate_desired_state(request.desired_state, required_keys)


def lint_stage(required_keys: list[str] | None = None) -> Stage:
    def _lint(run_context: dict[str, Any]) -> dict[str, Any]:
        request: PipelineRequest = run_context["request"]
        desired = lint_request(request, required_keys)
        run_context["desired_state"] = desired
        logger.info(
            "Request for %s/%s passed lint (%d state keys)",
            request.app_id,
            request.environment,
            len(desired),
        )
        return {"state_keys": sorted(desired)}

    return Stage(
        name="lint",
        action=_lint,
        description="Validate the request and desired state.",
    )

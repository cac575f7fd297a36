"""``publish`` — push the artifact through the Artifact Publisher."""

from __future__ import annotations

import logging
from typing import Any

from helmsman.core.errors import ExternalFailure, HelmsmanError
from helmsman.core.timeouts import call_with_timeout
from helmsman.drivers.base import ArtifactPublisher
from helmsman.models.pipeline import Stage
from helmsman.models.requests import PipelineRequest

logger = logging.getLogger(__name__)


def publish_stage(publisher: ArtifactPublisher, timeout: float) -> Stage:
    def _publish(run_context: dict[str, Any]) -> dict[str, Any]:
        request: PipelineRequest = run_context["request"]
        try:
            published_ref = call_with_timeout(
                publisher.publish,
                request.artifact_ref,
                seconds=timeout,
                credentials=run_context.get("credentials"),
                timeout=timeout,
                description=f"publish({request.artifact_ref})",
            )
        except HelmsmanError:
            raise
        except Exception as exc:
            raise ExternalFailure(
                f"Publishing {request.artifact_ref} failed: {exc}"
            ) from exc

        run_context["published_ref"] = published_ref
        logger.info("Published %s -> %s", request.artifact_ref, published_ref)
        return {"published_ref": published_ref}

    return Stage(
        name="publish",
        action=_publish,
        description="Publish the artifact.",
    )

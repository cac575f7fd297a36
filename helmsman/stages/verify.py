"""``verify`` — post-deploy smoke check through the Verifier."""

from __future__ import annotations

import logging
from typing import Any

from helmsman.core.errors import ExternalFailure, HelmsmanError
from helmsman.core.timeouts import call_with_timeout
from helmsman.drivers.base import Verifier
from helmsman.models.pipeline import Stage
from helmsman.models.releases import EnvironmentKey

logger = logging.getLogger(__name__)


def verify_stage(verifier: Verifier, timeout: float) -> Stage:
    """Build the stage.

    Verifies against ``desired_state`` from the run context, which the
    ``lint`` stage (deploys) or the ``rollback`` stage (rollbacks) sets.
    """

    def _verify(run_context: dict[str, Any]) -> dict[str, Any]:
        key: EnvironmentKey = run_context["key"]
        expected: dict[str, Any] = run_context["desired_state"]
        try:
            healthy = call_with_timeout(
                verifier.verify,
                key,
                expected,
                seconds=timeout,
                timeout=timeout,
                description=f"verify({key})",
            )
        except HelmsmanError:
            raise
        except Exception as exc:
            raise ExternalFailure(f"Verifier errored for {key}: {exc}") from exc

        if not healthy:
            raise ExternalFailure(f"Post-deploy verification failed for {key}")
        logger.info("Verified %s", key)
        return {"verified": True}

    return Stage(
        name="verify",
        action=_verify,
        description="Run post-deploy verification.",
    )

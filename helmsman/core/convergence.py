"""Declarative convergence of an environment to a desired state.

``converge()`` mirrors "install if absent, else reconcile to match":

    validate -> read observed -> diff -> (noop | apply -> read back)

Either the environment ends in exactly the desired state, or it is put
back into its prior observed state and the call raises. A successful
return always means the environment observes the desired state.

The engine does not take the per-environment exclusive section itself;
callers hold it across ``converge()`` and the release append that follows.
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

from helmsman.core.errors import (
    ConflictError,
    ExternalFailure,
    HelmsmanError,
    ValidationError,
)
from helmsman.core.timeouts import call_with_timeout
from helmsman.drivers.base import EnvironmentDriver
from helmsman.models.config import PipelineConfig
from helmsman.models.convergence import (
    ConvergenceAction,
    ConvergenceResult,
    StateDiff,
)
from helmsman.models.releases import EnvironmentKey

logger = logging.getLogger(__name__)


def validate_desired_state(
    desired_state: Any, required_keys: list[str] | None = None
) -> dict[str, Any]:
    """Check that *desired_state* is a complete, serializable parameter set.

    Purely local; never touches a collaborator.

    Returns a deep copy of the state on success.

    Raises
    ------
    ValidationError
        On a non-mapping, empty mapping, non-string or blank keys, missing
        required keys, or values that are not plain JSON.
    """
    if not isinstance(desired_state, dict):
        raise ValidationError(
            f"Desired state must be a mapping, got {type(desired_state).__name__}"
        )
    if not desired_state:
        raise ValidationError("Desired state is empty; convergence needs a complete parameter set")

    bad_keys = [k for k in desired_state if not isinstance(k, str) or not k.strip()]
    if bad_keys:
        raise ValidationError(f"Desired state has invalid keys: {bad_keys!r}")

    missing = [k for k in (required_keys or []) if k not in desired_state]
    if missing:
        raise ValidationError(
            f"Desired state is missing required keys: {', '.join(sorted(missing))}"
        )

    try:
        encoded = json.dumps(desired_state, sort_keys=True, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Desired state is not plain JSON: {exc}") from exc

    # Round-trip so tuples become lists and the stored state compares equal
    # to what drivers read back.
    return json.loads(encoded)


class ConvergenceEngine:
    """Moves an environment from its observed state to a desired state.

    Parameters
    ----------
    driver:
        The environment driver that reads and applies state.
    config:
        Supplies collaborator timeouts and required state keys.
    """

    def __init__(
        self, driver: EnvironmentDriver, config: PipelineConfig | None = None
    ) -> None:
        self._driver = driver
        self.config = config or PipelineConfig()

    def read_state(self, key: EnvironmentKey) -> dict[str, Any]:
        """Read observed state through the driver, bounded by the read timeout."""
        try:
            return call_with_timeout(
                self._driver.read_state,
                key,
                seconds=self.config.read_timeout,
                timeout=self.config.read_timeout,
                description=f"read_state({key})",
            )
        except HelmsmanError:
            raise
        except Exception as exc:
            raise ExternalFailure(f"Cannot read state of {key}: {exc}") from exc

    def converge(
        self, key: EnvironmentKey, desired_state: dict[str, Any]
    ) -> ConvergenceResult:
        """Converge *key* to *desired_state*.

        Returns a NOOP result when the observed state already matches.

        Raises
        ------
        ValidationError
            Malformed desired state; no collaborator was called.
        ConflictError
            The environment changed between read and apply; nothing applied.
        ExternalFailure
            The driver failed or timed out; prior state restored where possible.
        """
        desired = validate_desired_state(
            desired_state, self.config.required_state_keys
        )

        observed = self.read_state(key)
        diff = StateDiff.between(observed, desired)

        if diff.is_empty:
            logger.info("%s already at desired state; nothing to apply", key)
            return ConvergenceResult(
                key=key,
                action=ConvergenceAction.NOOP,
                previous_state=observed,
                desired_state=desired,
                diff=diff,
            )

        logger.info(
            "Converging %s: added=%s removed=%s changed=%s",
            key,
            diff.added,
            diff.removed,
            diff.changed,
        )
        self._apply(key, desired, expected_state=observed)

        try:
            after = self.read_state(key)
        except Exception as exc:
            logger.error("Read-back of %s after apply failed: %s", key, exc)
            self._compensate(key, observed)
            raise ExternalFailure(
                f"Cannot confirm apply to {key}; read-back failed: {exc}"
            ) from exc
        if after != desired:
            self._compensate(key, observed)
            raise ExternalFailure(
                f"Apply to {key} reported success but read-back differs on "
                f"{StateDiff.between(after, desired).keys}"
            )

        return ConvergenceResult(
            key=key,
            action=ConvergenceAction.APPLIED,
            previous_state=observed,
            desired_state=copy.deepcopy(desired),
            diff=diff,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply(
        self,
        key: EnvironmentKey,
        desired: dict[str, Any],
        *,
        expected_state: dict[str, Any],
    ) -> None:
        try:
            call_with_timeout(
                self._driver.apply,
                key,
                desired,
                expected_state=expected_state,
                seconds=self.config.apply_timeout,
                timeout=self.config.apply_timeout,
                description=f"apply({key})",
                settle=True,
            )
        except ConflictError:
            logger.warning("Conflict applying to %s; observed state moved", key)
            raise
        except Exception as exc:
            logger.error("Apply to %s failed: %s", key, exc)
            self._compensate(key, expected_state)
            if isinstance(exc, ExternalFailure):
                raise
            raise ExternalFailure(f"Apply to {key} failed: {exc}") from exc

    def _compensate(self, key: EnvironmentKey, prior: dict[str, Any]) -> None:
        """Put *key* back to *prior* if a failed apply left it elsewhere."""
        try:
            current = self.read_state(key)
            if current == prior:
                return
            logger.warning("Restoring %s to its prior observed state", key)
            call_with_timeout(
                self._driver.apply,
                key,
                prior,
                expected_state=current,
                seconds=self.config.apply_timeout,
                timeout=self.config.apply_timeout,
                description=f"restore({key})",
                settle=True,
            )
        except Exception as exc:
            # The primary failure is what the caller sees; this one is logged.
            logger.error(
                "Could not restore %s to its prior state: %s; "
                "environment may need manual repair",
                key,
                exc,
            )

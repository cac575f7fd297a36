"""In-process collaborators for development, tests and embedding.

``InMemoryEnvironmentDriver`` keeps observed state in a dict and
implements the compare-and-set contract of ``EnvironmentDriver.apply``.
``RecordingPublisher`` remembers what it published.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any

from pydantic import SecretStr

from helmsman.core.errors import ConflictError, ExternalFailure
from helmsman.models.releases import EnvironmentKey

logger = logging.getLogger(__name__)


class InMemoryEnvironmentDriver:
    """Environment driver holding observed state in process memory.

    Parameters
    ----------
    initial:
        Optional pre-existing observed state per key.
    """

    def __init__(
        self, initial: dict[EnvironmentKey, dict[str, Any]] | None = None
    ) -> None:
        self._lock = threading.Lock()
        self._states: dict[EnvironmentKey, dict[str, Any]] = {
            k: copy.deepcopy(v) for k, v in (initial or {}).items()
        }
        self.apply_count = 0
        self.read_count = 0

    def read_state(self, key: EnvironmentKey, *, timeout: float) -> dict[str, Any]:
        with self._lock:
            self.read_count += 1
            return copy.deepcopy(self._states.get(key, {}))

    def apply(
        self,
        key: EnvironmentKey,
        desired_state: dict[str, Any],
        *,
        expected_state: dict[str, Any],
        timeout: float,
    ) -> None:
        with self._lock:
            current = self._states.get(key, {})
            if current != expected_state:
                raise ConflictError(
                    f"Observed state of {key} changed since it was read"
                )
            self._states[key] = copy.deepcopy(desired_state)
            self.apply_count += 1
        logger.debug("Applied %d keys to %s", len(desired_state), key)

    def set_state(self, key: EnvironmentKey, state: dict[str, Any]) -> None:
        """Overwrite observed state out of band (an operator's manual change)."""
        with self._lock:
            self._states[key] = copy.deepcopy(state)


class RecordingPublisher:
    """Publisher that records each artifact reference it is asked to push.

    Parameters
    ----------
    reject:
        Artifact references to refuse with ``ExternalFailure``.
    """

    def __init__(self, reject: set[str] | None = None) -> None:
        self._lock = threading.Lock()
        self._reject = set(reject or ())
        self.published: list[str] = []

    def publish(
        self,
        artifact_ref: str,
        *,
        credentials: SecretStr | None = None,
        timeout: float,
    ) -> str:
        if artifact_ref in self._reject:
            raise ExternalFailure(f"Registry rejected artifact {artifact_ref}")
        with self._lock:
            self.published.append(artifact_ref)
        return artifact_ref

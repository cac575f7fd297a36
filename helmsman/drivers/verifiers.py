"""Post-deploy verifiers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from helmsman.drivers.base import EnvironmentDriver
from helmsman.models.releases import EnvironmentKey

logger = logging.getLogger(__name__)


class StateMatchVerifier:
    """Passes when the environment reads back exactly the expected state."""

    def __init__(self, driver: EnvironmentDriver) -> None:
        self._driver = driver

    def verify(
        self, key: EnvironmentKey, expected_state: dict[str, Any], *, timeout: float
    ) -> bool:
        observed = self._driver.read_state(key, timeout=timeout)
        if observed != expected_state:
            logger.warning(
                "Verification of %s failed: observed state differs on %s",
                key,
                sorted(
                    k
                    for k in {*observed, *expected_state}
                    if observed.get(k) != expected_state.get(k)
                ),
            )
            return False
        return True


class CallableVerifier:
    """Adapts a plain ``(key, expected_state) -> bool`` function."""

    def __init__(
        self, check: Callable[[EnvironmentKey, dict[str, Any]], bool]
    ) -> None:
        self._check = check

    def verify(
        self, key: EnvironmentKey, expected_state: dict[str, Any], *, timeout: float
    ) -> bool:
        return bool(self._check(key, expected_state))

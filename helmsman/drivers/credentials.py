"""Credential sources.

Tokens travel as ``SecretStr`` so they never show up in logs, reprs or
serialized results.
"""

from __future__ import annotations

import logging
import os
import threading

from pydantic import SecretStr

from helmsman.core.errors import ExternalFailure

logger = logging.getLogger(__name__)


class StaticCredentialSource:
    """Hands out one fixed token and tracks outstanding leases."""

    def __init__(self, token: str = "") -> None:
        self._token = SecretStr(token)
        self._lock = threading.Lock()
        self.outstanding = 0

    def acquire(self) -> SecretStr:
        with self._lock:
            self.outstanding += 1
        return self._token

    def release(self, token: SecretStr) -> None:
        with self._lock:
            self.outstanding = max(0, self.outstanding - 1)


class EnvCredentialSource:
    """Reads the token from an environment variable at acquire time.

    Parameters
    ----------
    var_name:
        The environment variable holding the token.
    required:
        When True, a missing variable fails the ``login`` stage; otherwise
        an empty token is returned (anonymous access).
    """

    def __init__(self, var_name: str, *, required: bool = False) -> None:
        self.var_name = var_name
        self.required = required

    def acquire(self) -> SecretStr:
        value = os.environ.get(self.var_name)
        if value is None:
            if self.required:
                raise ExternalFailure(
                    f"Credential variable {self.var_name} is not set"
                )
            logger.info("%s not set; continuing without credentials", self.var_name)
            return SecretStr("")
        return SecretStr(value)

    def release(self, token: SecretStr) -> None:
        # Environment tokens are not leased, so there is nothing to revoke.
        return None

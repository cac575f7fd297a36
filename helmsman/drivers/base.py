"""Protocols for the external collaborators the orchestrator drives.

Any object with the right methods satisfies these protocols; nothing has
to inherit from them. Implementations report failure by raising
``ExternalFailure`` (or ``ConflictError`` for compare-and-set rejections);
any other exception is treated as an external failure by the caller.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import SecretStr

from helmsman.models.releases import EnvironmentKey


@runtime_checkable
class CredentialSource(Protocol):
    """Supplies opaque credentials. The orchestrator never inspects them."""

    def acquire(self) -> SecretStr:
        """Return a credential token for this run."""
        ...

    def release(self, token: SecretStr) -> None:
        """Give the token back (logout/revoke). Must be safe to call once per acquire."""
        ...


@runtime_checkable
class ArtifactPublisher(Protocol):
    """Pushes a built artifact to wherever the environment pulls it from."""

    def publish(
        self,
        artifact_ref: str,
        *,
        credentials: SecretStr | None = None,
        timeout: float,
    ) -> str:
        """Publish *artifact_ref* and return the published reference."""
        ...


@runtime_checkable
class EnvironmentDriver(Protocol):
    """Reads and writes the observed state of a target environment."""

    def read_state(self, key: EnvironmentKey, *, timeout: float) -> dict[str, Any]:
        """Return the environment's current observed state ({} if never applied)."""
        ...

    def apply(
        self,
        key: EnvironmentKey,
        desired_state: dict[str, Any],
        *,
        expected_state: dict[str, Any],
        timeout: float,
    ) -> None:
        """Replace the observed state with *desired_state* in full.

        Must raise ``ConflictError`` without changing anything if the
        environment's state no longer equals *expected_state*.
        """
        ...


@runtime_checkable
class Verifier(Protocol):
    """Post-deploy smoke check for an environment."""

    def verify(
        self, key: EnvironmentKey, expected_state: dict[str, Any], *, timeout: float
    ) -> bool:
        """Return True if the environment is healthy at *expected_state*."""
        ...

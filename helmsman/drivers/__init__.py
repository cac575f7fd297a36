"""External collaborators: protocols plus in-memory and filesystem backends."""

from helmsman.drivers.base import (
    ArtifactPublisher,
    CredentialSource,
    EnvironmentDriver,
    Verifier,
)
from helmsman.drivers.credentials import EnvCredentialSource, StaticCredentialSource
from helmsman.drivers.filesystem import FileEnvironmentDriver, LocalRegistryPublisher
from helmsman.drivers.memory import InMemoryEnvironmentDriver, RecordingPublisher
from helmsman.drivers.verifiers import CallableVerifier, StateMatchVerifier

__all__ = [
    "ArtifactPublisher",
    "CredentialSource",
    "EnvironmentDriver",
    "Verifier",
    "EnvCredentialSource",
    "StaticCredentialSource",
    "FileEnvironmentDriver",
    "LocalRegistryPublisher",
    "InMemoryEnvironmentDriver",
    "RecordingPublisher",
    "CallableVerifier",
    "StateMatchVerifier",
]

"""Filesystem-backed collaborators used by the CLI.

``FileEnvironmentDriver`` persists each environment's observed state as a
JSON document so state survives between CLI invocations:

    {state_dir}/{app_id}/{environment}.json

``LocalRegistryPublisher`` is a content-addressed, immutable registry of
published artifact manifests:

    {registry_path}/{sha256[0:2]}/{sha256[2:4]}/{sha256}.json
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from helmsman.core.errors import ConflictError, ExternalFailure, ValidationError
from helmsman.core.hasher import canonical_json_bytes, content_address, sha256_hex
from helmsman.models.releases import EnvironmentKey

logger = logging.getLogger(__name__)

_UNSAFE_PATH_CHARS = ("/", "\\", "\0")


class FileEnvironmentDriver:
    """Environment driver storing observed state as JSON files.

    Parameters
    ----------
    state_dir:
        Root directory for per-environment state documents.
    """

    def __init__(self, state_dir: Path) -> None:
        self._base = Path(state_dir)
        self._base.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _state_path(self, key: EnvironmentKey) -> Path:
        for part in (key.app_id, key.environment):
            if part in (".", "..") or any(c in part for c in _UNSAFE_PATH_CHARS):
                raise ValidationError(
                    f"{key} cannot be stored under {self._base}: "
                    f"{part!r} is not a safe path component"
                )
        return self._base / key.app_id / f"{key.environment}.json"

    def _load(self, key: EnvironmentKey) -> dict[str, Any]:
        path = self._state_path(key)
        if not path.exists():
            return {}
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ExternalFailure(f"Cannot read state for {key}: {exc}") from exc

    def read_state(self, key: EnvironmentKey, *, timeout: float) -> dict[str, Any]:
        with self._lock:
            return self._load(key)

    def apply(
        self,
        key: EnvironmentKey,
        desired_state: dict[str, Any],
        *,
        expected_state: dict[str, Any],
        timeout: float,
    ) -> None:
        with self._lock:
            if self._load(key) != expected_state:
                raise ConflictError(
                    f"Observed state of {key} changed since it was read"
                )
            path = self._state_path(key)
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so readers never see a half-written document.
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(desired_state, fh, sort_keys=True, indent=2)
                os.replace(tmp_name, path)
            except OSError as exc:
                Path(tmp_name).unlink(missing_ok=True)
                raise ExternalFailure(f"Cannot write state for {key}: {exc}") from exc
        logger.debug("Wrote state for %s to %s", key, path)


class LocalRegistryPublisher:
    """Content-addressed local registry of artifact manifests.

    Publishing the same artifact reference twice is a no-op that returns
    the same address. There is no delete.
    """

    def __init__(self, registry_path: Path) -> None:
        self._base = Path(registry_path)
        self._base.mkdir(parents=True, exist_ok=True)

    def _manifest_path(self, digest: str) -> Path:
        return self._base / digest[:2] / digest[2:4] / f"{digest}.json"

    def publish(
        self,
        artifact_ref: str,
        *,
        credentials: SecretStr | None = None,
        timeout: float,
    ) -> str:
        if not artifact_ref.strip():
            raise ExternalFailure("Cannot publish an empty artifact reference")
        manifest = {"artifact_ref": artifact_ref}
        data = canonical_json_bytes(manifest)
        digest = sha256_hex(data)
        path = self._manifest_path(digest)
        if path.exists():
            if sha256_hex(path.read_bytes()) != digest:
                raise ExternalFailure(
                    f"Registry manifest {digest} failed integrity check"
                )
        else:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
            except OSError as exc:
                raise ExternalFailure(f"Cannot publish {artifact_ref}: {exc}") from exc
            logger.info("Published %s as sha256:%s", artifact_ref, digest[:12])
        return content_address(manifest)

    def exists(self, artifact_ref: str) -> bool:
        digest = sha256_hex(canonical_json_bytes({"artifact_ref": artifact_ref}))
        return self._manifest_path(digest).exists()

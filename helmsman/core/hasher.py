"""Canonical hashing helpers for the artifact registry and the release chain."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes (sorted keys, compact separators)."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def content_address(obj: Any) -> str:
    """Content-address a JSON-serializable object as ``sha256:<hex>``."""
    return f"sha256:{sha256_hex(canonical_json_bytes(obj))}"


# Release fields covered by the chain. ``status`` is excluded; it changes
# after append.
_HASHED_RELEASE_FIELDS = (
    "release_id",
    "app_id",
    "environment",
    "artifact_ref",
    "desired_state",
    "created_at",
    "kind",
    "source_release_id",
    "run_id",
    "previous_release_hash",
)


def compute_release_hash(release_dict: dict[str, Any]) -> str:
    """SHA-256 over the immutable fields of a JSON-dumped release."""
    payload = {k: release_dict.get(k) for k in _HASHED_RELEASE_FIELDS}
    return sha256_hex(canonical_json_bytes(payload))

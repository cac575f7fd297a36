"""Error taxonomy for pipeline, convergence and release-store failures.

Every error carries a stable ``kind`` string that ends up in
``PipelineResult.error_kind`` so callers can branch without isinstance
checks on a serialized result.
"""

from __future__ import annotations


class HelmsmanError(RuntimeError):
    """Base class for all orchestrator errors."""

    kind: str = "internal"


class ValidationError(HelmsmanError):
    """Malformed desired state or request. Raised before any external call."""

    kind = "validation"


class ExternalFailure(HelmsmanError):
    """A collaborator (publisher, environment driver, verifier) failed."""

    kind = "external"


class CallTimeoutError(ExternalFailure):
    """A collaborator call exceeded its caller-supplied timeout."""

    kind = "timeout"


class ConflictError(HelmsmanError):
    """Observed state changed between read and apply.

    Surfaced to the caller, never auto-resolved.
    """

    kind = "conflict"


class NotFoundError(HelmsmanError):
    """A requested release does not exist for the environment."""

    kind = "not_found"


class PipelineCancelledError(HelmsmanError):
    """The run was cancelled cooperatively between stages."""

    kind = "cancelled"


class ChainIntegrityError(HelmsmanError):
    """The release hash chain for an environment is broken."""

    kind = "integrity"


def error_kind(exc: BaseException) -> str:
    """Return the taxonomy kind for *exc* (``internal`` for foreign errors)."""
    if isinstance(exc, HelmsmanError):
        return exc.kind
    return "internal"

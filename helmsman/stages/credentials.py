"""``login`` / ``logout`` — credential lease around the pipeline.

``login`` puts an opaque token into the run context under
``credentials``; the ``logout`` finalizer hands it back. Neither stage
looks inside the token.
"""

from __future__ import annotations

from typing import Any

from helmsman.drivers.base import CredentialSource
from helmsman.models.pipeline import Stage


def login_stage(source: CredentialSource) -> Stage:
    def _login(run_context: dict[str, Any]) -> dict[str, Any]:
        run_context["credentials"] = source.acquire()
        return {"credentials": "acquired"}

    return Stage(
        name="login",
        action=_login,
        description="Acquire registry credentials.",
    )


def logout_stage(source: CredentialSource) -> Stage:
    def _logout(run_context: dict[str, Any]) -> None:
        token = run_context.pop("credentials", None)
        if token is not None:
            source.release(token)

    return Stage(
        name="logout",
        action=_logout,
        is_finalizer=True,
        description="Release registry credentials.",
    )

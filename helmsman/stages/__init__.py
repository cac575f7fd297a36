"""Built-in pipeline stages.

Each factory returns a ``Stage`` bound to its collaborators. The default
deploy pipeline is::

    lint -> login -> publish -> deploy -> verify   (+ logout finalizer)
"""

from helmsman.stages.credentials import login_stage, logout_stage
from helmsman.stages.deploy import converge_and_record, deploy_stage
from helmsman.stages.lint import environment_key, lint_request, lint_stage
from helmsman.stages.publish import publish_stage
from helmsman.stages.verify import verify_stage

__all__ = [
    "converge_and_record",
    "deploy_stage",
    "environment_key",
    "lint_request",
    "lint_stage",
    "login_stage",
    "logout_stage",
    "publish_stage",
    "verify_stage",
]

"""Helmsman: declarative deployment pipeline with auditable releases.

  - Fail-fast stage runner with always-run finalizers and cooperative cancel
  - Convergence engine (read -> diff -> apply -> read back, compensating on failure)
  - Append-only, hash-chained release history in SQLite
  - Rollback that appends a new release instead of rewriting history
  - Per-environment serialization; different environments run in parallel
"""

__version__ = "0.1.0"
__description__ = "Declarative deployment pipeline with auditable releases and rollback"

from helmsman.core.orchestrator import DeploymentOrchestrator
from helmsman.models.requests import PipelineRequest
from helmsman.cli.app import app as cli

__all__ = ["DeploymentOrchestrator", "PipelineRequest", "cli", "__version__"]

"""Rich terminal rendering of release history and pipeline results."""

from helmsman.monitor.renderer import ReleaseRenderer

__all__ = ["ReleaseRenderer"]

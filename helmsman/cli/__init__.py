"""Helmsman CLI — Typer-based command-line interface.

Provides the ``helmsman`` command with subcommands for deploying,
rolling back, and inspecting release history and environment status.

All output uses Rich for formatted terminal display.
"""

"""
CLI layer for apitrack.

Provides a Typer application with sub-commands that delegate to the
operations layer (``apitrack.ops``).  All business logic lives in ops;
this package handles only terminal transport: argument parsing,
coloured output, and table formatting.

Entry point::

    apitrack --help
"""

from apitrack.cli.app import app

__all__ = ["app"]

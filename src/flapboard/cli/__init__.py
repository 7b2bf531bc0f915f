"""
CLI layer for flapboard.

Provides a Typer application whose commands delegate to the scheduling
engine (``flapboard.scheduling``).  This package handles only terminal
transport: argument parsing, coloured output, and table formatting.

Entry point::

    flapboard --help
"""

from flapboard.cli.app import app

__all__ = ["app"]

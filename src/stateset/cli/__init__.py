"""Command-line interface."""

from stateset.cli.app import app

__all__ = ["app"]

"""CLI command modules."""

from stateset.cli.commands import events

__all__ = ["events"]

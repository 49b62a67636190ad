"""Command-line entry points."""

from .bundle import main, run

__all__ = ["main", "run"]

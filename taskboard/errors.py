"""
Exception types raised by the data layer and the legacy reader.
"""

from __future__ import annotations


class TaskboardError(Exception):
    """Base class for errors raised by this package."""


class SourceUnavailable(TaskboardError):
    """The legacy store could not be read (network, HTTP status or body)."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to fetch {path} from legacy store: {reason}")
        self.path = path
        self.reason = reason


class PersistenceConflict(TaskboardError):
    """A write collided with a uniqueness or ownership rule."""


class RelationalTransactionFailure(TaskboardError):
    """A multi-row write was rolled back as a whole."""

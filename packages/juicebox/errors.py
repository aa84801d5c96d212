"""Exception taxonomy for the indexing core.

Components raise these; only the orchestrator catches them and converts
them into a logged, per-event abandonment.
"""

from __future__ import annotations


class IndexingError(Exception):
    """Base class for failures that abandon a single event."""


class OrderingViolation(IndexingError):
    """A required aggregate is missing when a mutation needs it.

    Signals that the upstream source delivered events out of order (for
    example a payment before the project's creation event).
    """


class ReadThroughError(IndexingError):
    """A read-through call that an entity cannot exist without reverted."""


class MissingConfigError(IndexingError):
    """An auxiliary contract address or setting needed by a handler is unset."""


class NormalizationError(IndexingError):
    """A raw event could not be translated into a canonical event."""


class RecordConflict(IndexingError):
    """A write-once event record already exists under the key a new event derives."""


class ConfigLoadError(ValueError):
    """Raised when config loading or parsing fails."""

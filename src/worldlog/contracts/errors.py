"""Exception hierarchy for worldlog.

Store faults are NOT wrapped: SQLAlchemy errors propagate unchanged out of
the storage layer so the owning integration sees the real cause.
"""


class WorldlogError(Exception):
    """Base class for worldlog errors."""

    pass


class StateCaptureError(WorldlogError):
    """Raised when a transient instance or an entity state capture fails.

    Recoverable: compaction for that one call is abandoned and the shared
    default-state cache is left untouched.

    Attributes:
        entity_type: Type tag of the entity being compacted
    """

    def __init__(self, entity_type: str, message: str) -> None:
        self.entity_type = entity_type
        super().__init__(f"State capture failed for entity type '{entity_type}': {message}")


class PurgeQueueError(WorldlogError):
    """Raised on an illegal purge queue transition.

    Starting an empty queue and starting a queue that is already running
    are both rejected.
    """

    pass


class SchemaCompatibilityError(WorldlogError):
    """Raised when the activity database schema is incompatible with current code."""

    pass

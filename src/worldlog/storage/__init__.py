"""Activity store: SQLAlchemy Core schema, connection management and purge operations."""

from worldlog.storage.adapter import ActivityRecord, ActivityStore
from worldlog.storage.database import ActivityDB
from worldlog.storage.query import ActivityQuery

__all__ = ["ActivityDB", "ActivityQuery", "ActivityRecord", "ActivityStore"]

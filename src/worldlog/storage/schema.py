# src/worldlog/storage/schema.py
"""SQLAlchemy table definitions for the activity store.

Uses SQLAlchemy Core (not ORM) for explicit control over the range
deletes issued by the purge queue.
"""

from sqlalchemy import Column, DateTime, Index, Integer, MetaData, String, Table, Text

metadata = MetaData()

activities_table = Table(
    "activities",
    metadata,
    # Monotonic surrogate key; purge cycles walk windows of this key
    Column("activity_id", Integer, primary_key=True, autoincrement=True),
    Column("action", String(64), nullable=False),
    Column("world", String(128), nullable=False),
    Column("occurred_at", DateTime(timezone=True), nullable=False),
    Column("entity_type", String(64)),
    Column("cause", String(128)),
    Column("x", Integer),
    Column("y", Integer),
    Column("z", Integer),
    # Canonical JSON of the compacted entity state, NULL when not an entity activity
    Column("data_json", Text),
    Index("ix_activities_occurred_at", "occurred_at"),
    Index("ix_activities_world_occurred_at", "world", "occurred_at"),
)

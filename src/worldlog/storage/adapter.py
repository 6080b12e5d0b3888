# src/worldlog/storage/adapter.py
"""Activity store operations.

Records activities (with their compacted entity state) and provides the
two operations the purge queue drives:

- get_activities_pk_bounds(query): absolute primary key range of matching rows
- delete_activities(query, min_pk, max_pk): delete one bounded window

Store faults (SQLAlchemy errors) propagate unchanged; nothing here retries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import and_, func, select

from worldlog.contracts import AttributeTree
from worldlog.core.canonical import canonical_json
from worldlog.storage.query import ActivityQuery, to_utc
from worldlog.storage.schema import activities_table

if TYPE_CHECKING:
    from worldlog.storage.database import ActivityDB


@dataclass(frozen=True, slots=True)
class ActivityRecord:
    """One audited game-world event.

    Attributes:
        action: Action name, e.g. "entity-kill"
        world: World the activity happened in
        occurred_at: When it happened (naive datetimes are taken as UTC)
        entity_type: Entity type tag for entity activities
        cause: What caused the activity (player name, block, ...)
        x, y, z: Block coordinates
        data: Compacted entity state, stored as canonical JSON
    """

    action: str
    world: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    entity_type: str | None = None
    cause: str | None = None
    x: int | None = None
    y: int | None = None
    z: int | None = None
    data: AttributeTree | None = None


class ActivityStore:
    """Activity persistence backed by ActivityDB."""

    def __init__(self, db: ActivityDB) -> None:
        """Initialize ActivityStore.

        Args:
            db: Activity database connection
        """
        self._db = db

    def record_activity(self, record: ActivityRecord) -> int:
        """Insert one activity.

        Returns:
            The new activity's primary key
        """
        occurred_at = to_utc(record.occurred_at)

        with self._db.connection() as conn:
            result = conn.execute(
                activities_table.insert().values(
                    action=record.action,
                    world=record.world,
                    occurred_at=occurred_at,
                    entity_type=record.entity_type,
                    cause=record.cause,
                    x=record.x,
                    y=record.y,
                    z=record.z,
                    data_json=canonical_json(record.data) if record.data is not None else None,
                )
            )
            primary_key = result.inserted_primary_key
        if primary_key is None:
            raise RuntimeError("Activity insert returned no primary key")
        activity_id: int = primary_key[0]
        return activity_id

    def get_activities_pk_bounds(self, query: ActivityQuery) -> tuple[int, int] | None:
        """Min and max primary key of activities matching query.

        Returns:
            (min, max), or None when nothing matches
        """
        stmt = select(
            func.min(activities_table.c.activity_id),
            func.max(activities_table.c.activity_id),
        ).where(query.where_clause())

        with self._db.connection() as conn:
            row = conn.execute(stmt).one()

        if row[0] is None:
            return None
        return int(row[0]), int(row[1])

    def delete_activities(self, query: ActivityQuery, min_primary_key: int, max_primary_key: int) -> int:
        """Delete activities matching query within [min_primary_key, max_primary_key].

        Runs in a single transaction.

        Returns:
            Number of rows deleted
        """
        stmt = activities_table.delete().where(
            and_(
                activities_table.c.activity_id >= min_primary_key,
                activities_table.c.activity_id <= max_primary_key,
                query.where_clause(),
            )
        )
        with self._db.connection() as conn:
            result = conn.execute(stmt)
        return int(result.rowcount)

    def count_activities(self, query: ActivityQuery | None = None) -> int:
        """Count activities, optionally restricted by query."""
        stmt = select(func.count()).select_from(activities_table)
        if query is not None:
            stmt = stmt.where(query.where_clause())
        with self._db.connection() as conn:
            count: int = conn.execute(stmt).scalar_one()
        return count

# src/worldlog/storage/query.py
"""Activity query predicates.

An ActivityQuery describes which activity records a purge (or a count)
targets. It is immutable, so a query sitting in a purge queue cannot change
underneath a running cycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import ColumnElement, and_, true

from worldlog.storage.schema import activities_table


def to_utc(value: datetime) -> datetime:
    """Normalize to UTC; naive datetimes are taken as UTC already.

    SQLite drops the offset when storing timestamps, so everything written
    or compared goes through UTC first.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True, slots=True)
class ActivityQuery:
    """Predicate over activity records.

    All criteria are ANDed. An empty query matches every record.

    Attributes:
        world: Only activities in this world
        before: Only activities that occurred strictly before this instant
        after: Only activities that occurred at or after this instant
        actions: Only these action names (any of)
        entity_types: Only these entity types (any of)
    """

    world: str | None = None
    before: datetime | None = None
    after: datetime | None = None
    actions: tuple[str, ...] = ()
    entity_types: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.before is not None and self.after is not None and to_utc(self.after) >= to_utc(self.before):
            raise ValueError(f"Empty time range: after ({self.after.isoformat()}) must precede before ({self.before.isoformat()})")

    @classmethod
    def older_than(
        cls,
        days: int,
        *,
        world: str | None = None,
        actions: tuple[str, ...] = (),
        as_of: datetime | None = None,
    ) -> ActivityQuery:
        """Retention query: activities older than `days` days.

        Args:
            days: Age cutoff in days
            world: Optional world restriction
            actions: Optional action restriction
            as_of: Reference datetime for the cutoff (defaults to now)
        """
        if days < 0:
            raise ValueError(f"days must be >= 0, got {days}")
        if as_of is None:
            as_of = datetime.now(UTC)
        return cls(world=world, before=as_of - timedelta(days=days), actions=actions)

    def where_clause(self) -> ColumnElement[bool]:
        """Build the SQLAlchemy predicate for this query."""
        conditions: list[ColumnElement[bool]] = []
        if self.world is not None:
            conditions.append(activities_table.c.world == self.world)
        if self.before is not None:
            conditions.append(activities_table.c.occurred_at < to_utc(self.before))
        if self.after is not None:
            conditions.append(activities_table.c.occurred_at >= to_utc(self.after))
        if self.actions:
            conditions.append(activities_table.c.action.in_(self.actions))
        if self.entity_types:
            conditions.append(activities_table.c.entity_type.in_(self.entity_types))
        if not conditions:
            return true()
        return and_(*conditions)

    def __str__(self) -> str:
        parts: list[str] = []
        if self.world is not None:
            parts.append(f"world={self.world}")
        if self.before is not None:
            parts.append(f"before={self.before.isoformat()}")
        if self.after is not None:
            parts.append(f"after={self.after.isoformat()}")
        if self.actions:
            parts.append(f"actions={','.join(self.actions)}")
        if self.entity_types:
            parts.append(f"entity_types={','.join(self.entity_types)}")
        return f"ActivityQuery({' '.join(parts) or 'all'})"

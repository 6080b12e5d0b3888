"""Purge result contracts.

Emitted by PurgeQueue to its per-cycle and end-of-run callbacks.
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PurgeCycleResult:
    """Outcome of one bounded delete batch.

    Attributes:
        deleted: Rows deleted by this cycle
        min_primary_key: Inclusive lower bound of the cycle window
        max_primary_key: Inclusive upper bound of the cycle window
    """

    deleted: int
    min_primary_key: int
    max_primary_key: int


@dataclass(frozen=True, slots=True)
class PurgeResult:
    """Outcome of a purge run that drained its queue."""

    deleted: int


@dataclass(frozen=True, slots=True)
class CycleBounds:
    """Primary key window for one cycle plus the active query's absolute upper bound.

    Raises:
        ValueError: If cycle_min <= cycle_max <= absolute_max does not hold.
    """

    cycle_min: int
    cycle_max: int
    absolute_max: int

    def __post_init__(self) -> None:
        if not self.cycle_min <= self.cycle_max <= self.absolute_max:
            raise ValueError(
                f"Invalid cycle bounds: expected cycle_min <= cycle_max <= absolute_max, "
                f"got {self.cycle_min}, {self.cycle_max}, {self.absolute_max}"
            )

    @classmethod
    def for_cycle(cls, cycle_min: int, absolute_max: int, limit: int) -> "CycleBounds":
        """Compute the window for a cycle starting at cycle_min.

        The upper bound is clamped to absolute_max so a cycle never reaches
        past the active query's range. Otherwise it is cycle_min + limit - 1
        so consecutive windows are contiguous and never overlap.
        """
        return cls(
            cycle_min=cycle_min,
            cycle_max=min(cycle_min + limit - 1, absolute_max),
            absolute_max=absolute_max,
        )

"""Batched, self-scheduling retention purge."""

from worldlog.purge.queue import DEFAULT_CYCLE_DELAY_SECONDS, PurgeQueue, PurgeStore

__all__ = ["DEFAULT_CYCLE_DELAY_SECONDS", "PurgeQueue", "PurgeStore"]

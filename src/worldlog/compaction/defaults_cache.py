# src/worldlog/compaction/defaults_cache.py
"""Bounded cache of default entity state, keyed by entity type.

Each entry maps an entity type tag to the AttributeTree of a freshly
created instance of that type. Entries are evicted when the cache grows
past max_size (least recently used first) or when an entry has not been
accessed for expire_after_access_seconds.

Key design decisions:
- OrderedDict as the LRU index: move_to_end() on access, popitem(last=False) on overflow
- Stored trees are deep copies: later mutation of a live entity (or of the
  tree returned from a miss) cannot corrupt a baseline
- Per-key population locks: concurrent missers for one type wait for the
  first loader instead of capturing redundantly
- Listeners are diagnostics only: their exceptions are logged, never raised
"""

from __future__ import annotations

import copy
import threading
from collections import OrderedDict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from worldlog.contracts import AttributeTree, EntityTypeTag
from worldlog.core.clock import DEFAULT_CLOCK, Clock

if TYPE_CHECKING:
    from worldlog.core.config import CacheSettings

logger = structlog.get_logger(__name__)

RemovalListener = Callable[[EntityTypeTag, AttributeTree, "RemovalCause"], None]


class RemovalCause(StrEnum):
    """Why an entry left the cache."""

    EXPLICIT = "explicit"
    REPLACED = "replaced"
    SIZE = "size"
    EXPIRED = "expired"

    @property
    def was_evicted(self) -> bool:
        """Whether the cache removed the entry on its own."""
        return self in (RemovalCause.SIZE, RemovalCause.EXPIRED)


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Counters recorded when record_stats is enabled."""

    hits: int = 0
    misses: int = 0
    loads: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        requests = self.hits + self.misses
        return self.hits / requests if requests else 1.0


@dataclass
class _Entry:
    tree: AttributeTree
    last_access: float


@dataclass
class _LoadLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class DefaultStateCache:
    """Size- and idle-time-bounded cache of baseline AttributeTrees.

    Thread Safety:
        All public methods are thread-safe. A single lock guards the index;
        loaders run outside it under a per-key lock, so a slow capture for
        one type never blocks hits on other types.
    """

    def __init__(
        self,
        max_size: int,
        expire_after_access_seconds: float,
        *,
        clock: Clock | None = None,
        record_stats: bool = False,
        on_evict: RemovalListener | None = None,
        on_remove: RemovalListener | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            max_size: Maximum number of cached entity types
            expire_after_access_seconds: Idle time after which an entry expires
            clock: Time source for idle tracking (defaults to the system clock)
            record_stats: Track hit/miss/load/eviction counters
            on_evict: Called for SIZE and EXPIRED removals
            on_remove: Called for every removal, including explicit ones

        Raises:
            ValueError: If max_size < 1 or expiry is not positive.
        """
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if expire_after_access_seconds <= 0:
            raise ValueError(f"expire_after_access_seconds must be > 0, got {expire_after_access_seconds}")
        self._max_size = max_size
        self._expire_after = expire_after_access_seconds
        self._clock = clock if clock is not None else DEFAULT_CLOCK
        self._record_stats = record_stats
        self._on_evict = on_evict
        self._on_remove = on_remove

        self._entries: OrderedDict[EntityTypeTag, _Entry] = OrderedDict()
        self._lock = threading.Lock()
        # Present only while a load for the key is in flight or awaited
        self._load_locks: dict[EntityTypeTag, _LoadLock] = {}

        self._hits = 0
        self._misses = 0
        self._loads = 0
        self._evictions = 0

    @classmethod
    def from_settings(cls, settings: CacheSettings, *, clock: Clock | None = None) -> DefaultStateCache:
        """Build the cache from CacheSettings; eviction and removal are logged at DEBUG."""
        defaults = settings.entity_defaults
        # 10 minutes, matching the EntityDefaultsCacheSettings default
        expiry = defaults.expires_after_access.to_seconds(600.0)
        return cls(
            max_size=defaults.max_size,
            expire_after_access_seconds=expiry,
            clock=clock,
            record_stats=settings.record_stats,
            on_evict=_log_eviction,
            on_remove=_log_removal,
        )

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, entity_type: object) -> bool:
        """Non-touching membership check (does not refresh access time)."""
        now = self._clock.monotonic()
        with self._lock:
            entry = self._entries.get(entity_type)  # type: ignore[call-overload]  # any hashable key is fine
            return entry is not None and not self._is_expired(entry, now)

    def get_if_present(self, entity_type: EntityTypeTag) -> AttributeTree | None:
        """Return the cached baseline, or None on miss.

        A hit refreshes the entry's recency and access time. The returned tree
        is the cached object itself; callers must treat it as read-only.
        """
        removed: list[tuple[EntityTypeTag, AttributeTree, RemovalCause]] = []
        now = self._clock.monotonic()
        with self._lock:
            tree = self._lookup(entity_type, now, removed)
            if self._record_stats:
                if tree is None:
                    self._misses += 1
                else:
                    self._hits += 1
        self._notify(removed)
        return tree

    def put(self, entity_type: EntityTypeTag, tree: AttributeTree) -> None:
        """Store a detached copy of tree for entity_type."""
        detached = copy.deepcopy(tree)
        removed: list[tuple[EntityTypeTag, AttributeTree, RemovalCause]] = []
        now = self._clock.monotonic()
        with self._lock:
            self._store(entity_type, detached, now, removed)
        self._notify(removed)

    def get_or_populate(self, entity_type: EntityTypeTag, loader: Callable[[], AttributeTree]) -> AttributeTree:
        """Return the baseline for entity_type, loading it on a miss.

        On a miss the loader runs under a per-key lock. The cache keeps a deep
        copy and this call returns the loader's original tree, saving a
        second copy on the populating path. Concurrent callers for the same
        type block on the key lock and then see the cached entry.

        Loader exceptions propagate and leave the cache unchanged.
        """
        cached = self.get_if_present(entity_type)
        if cached is not None:
            return cached

        with self._load_lock(entity_type):
            # Another caller may have populated while we waited
            removed: list[tuple[EntityTypeTag, AttributeTree, RemovalCause]] = []
            now = self._clock.monotonic()
            with self._lock:
                cached = self._lookup(entity_type, now, removed)
            self._notify(removed)
            if cached is not None:
                return cached

            tree = loader()
            detached = copy.deepcopy(tree)
            removed = []
            now = self._clock.monotonic()
            with self._lock:
                self._store(entity_type, detached, now, removed)
                if self._record_stats:
                    self._loads += 1
            self._notify(removed)
            return tree

    def invalidate(self, entity_type: EntityTypeTag) -> None:
        """Explicitly remove one entry (no-op when absent)."""
        with self._lock:
            entry = self._entries.pop(entity_type, None)
        if entry is not None:
            self._notify([(entity_type, entry.tree, RemovalCause.EXPLICIT)])

    def invalidate_all(self) -> None:
        """Explicitly remove every entry."""
        with self._lock:
            entries = list(self._entries.items())
            self._entries.clear()
        self._notify([(key, entry.tree, RemovalCause.EXPLICIT) for key, entry in entries])

    def cleanup(self) -> int:
        """Evict all expired entries.

        Returns:
            Number of entries evicted.
        """
        removed: list[tuple[EntityTypeTag, AttributeTree, RemovalCause]] = []
        now = self._clock.monotonic()
        with self._lock:
            self._evict_expired(now, removed)
        self._notify(removed)
        return len(removed)

    def stats(self) -> CacheStats:
        """Snapshot of counters (all zero unless record_stats is enabled)."""
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, loads=self._loads, evictions=self._evictions)

    # Internals below assume self._lock is held unless noted

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return now - entry.last_access >= self._expire_after

    def _lookup(
        self,
        entity_type: EntityTypeTag,
        now: float,
        removed: list[tuple[EntityTypeTag, AttributeTree, RemovalCause]],
    ) -> AttributeTree | None:
        entry = self._entries.get(entity_type)
        if entry is None:
            return None
        if self._is_expired(entry, now):
            del self._entries[entity_type]
            self._record_eviction(entity_type, entry, RemovalCause.EXPIRED, removed)
            return None
        entry.last_access = now
        self._entries.move_to_end(entity_type)
        return entry.tree

    def _store(
        self,
        entity_type: EntityTypeTag,
        tree: AttributeTree,
        now: float,
        removed: list[tuple[EntityTypeTag, AttributeTree, RemovalCause]],
    ) -> None:
        previous = self._entries.pop(entity_type, None)
        if previous is not None:
            removed.append((entity_type, previous.tree, RemovalCause.REPLACED))
        self._entries[entity_type] = _Entry(tree=tree, last_access=now)
        self._evict_expired(now, removed)
        while len(self._entries) > self._max_size:
            key, entry = self._entries.popitem(last=False)
            self._record_eviction(key, entry, RemovalCause.SIZE, removed)

    def _evict_expired(
        self,
        now: float,
        removed: list[tuple[EntityTypeTag, AttributeTree, RemovalCause]],
    ) -> None:
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            entry = self._entries.pop(key)
            self._record_eviction(key, entry, RemovalCause.EXPIRED, removed)

    def _record_eviction(
        self,
        entity_type: EntityTypeTag,
        entry: _Entry,
        cause: RemovalCause,
        removed: list[tuple[EntityTypeTag, AttributeTree, RemovalCause]],
    ) -> None:
        if self._record_stats:
            self._evictions += 1
        removed.append((entity_type, entry.tree, cause))

    @contextmanager
    def _load_lock(self, entity_type: EntityTypeTag) -> Iterator[None]:
        with self._lock:
            load_lock = self._load_locks.get(entity_type)
            if load_lock is None:
                load_lock = self._load_locks[entity_type] = _LoadLock()
            load_lock.users += 1
        try:
            with load_lock.lock:
                yield
        finally:
            with self._lock:
                load_lock.users -= 1
                if load_lock.users == 0:
                    del self._load_locks[entity_type]

    def _notify(self, removed: list[tuple[EntityTypeTag, AttributeTree, RemovalCause]]) -> None:
        """Run listeners outside the index lock."""
        for key, tree, cause in removed:
            if cause.was_evicted and self._on_evict is not None:
                self._call_listener(self._on_evict, key, tree, cause)
            if self._on_remove is not None:
                self._call_listener(self._on_remove, key, tree, cause)

    @staticmethod
    def _call_listener(listener: RemovalListener, key: EntityTypeTag, tree: AttributeTree, cause: RemovalCause) -> None:
        try:
            listener(key, tree, cause)
        except Exception as e:
            logger.warning(
                "Default state cache listener failed",
                entity_type=key,
                cause=cause.value,
                error=str(e),
                error_type=type(e).__name__,
            )


def _log_eviction(entity_type: EntityTypeTag, tree: AttributeTree, cause: RemovalCause) -> None:
    logger.debug("Evicting default entity state from cache", entity_type=entity_type, attributes=len(tree), cause=cause.value)


def _log_removal(entity_type: EntityTypeTag, tree: AttributeTree, cause: RemovalCause) -> None:
    logger.debug("Removing default entity state from cache", entity_type=entity_type, attributes=len(tree), cause=cause.value)

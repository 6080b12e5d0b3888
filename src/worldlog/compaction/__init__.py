"""Entity state compaction.

Strips default and volatile state from entity snapshots before they are
recorded. Baselines come from a bounded DefaultStateCache; the diff itself
is a pure function.
"""

from worldlog.compaction.defaults_cache import CacheStats, DefaultStateCache, RemovalCause
from worldlog.compaction.differ import ENTITY_REJECT_KEYS, compact, extract_difference, strip_keys
from worldlog.compaction.service import EntityStateCompactor

__all__ = [
    "ENTITY_REJECT_KEYS",
    "CacheStats",
    "DefaultStateCache",
    "EntityStateCompactor",
    "RemovalCause",
    "compact",
    "extract_difference",
    "strip_keys",
]

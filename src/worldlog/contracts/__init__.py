"""Shared contracts for cross-boundary data types.

This package is a LEAF MODULE with no outbound dependencies to core,
compaction, storage or purge. Settings classes are NOT re-exported here -
import them from worldlog.core.config.

Import patterns:
    from worldlog.contracts import AttributeTree, PurgeResult, StateCaptureError
"""

from worldlog.contracts.entities import (
    UNKNOWN_ENTITY_TYPE,
    AttributeTree,
    Entity,
    EntityTypeTag,
    StateCapture,
    TransientInstanceFactory,
)
from worldlog.contracts.errors import (
    PurgeQueueError,
    SchemaCompatibilityError,
    StateCaptureError,
    WorldlogError,
)
from worldlog.contracts.purge import CycleBounds, PurgeCycleResult, PurgeResult

__all__ = [
    "UNKNOWN_ENTITY_TYPE",
    "AttributeTree",
    "CycleBounds",
    "Entity",
    "EntityTypeTag",
    "PurgeCycleResult",
    "PurgeQueueError",
    "PurgeResult",
    "SchemaCompatibilityError",
    "StateCapture",
    "StateCaptureError",
    "TransientInstanceFactory",
    "WorldlogError",
]

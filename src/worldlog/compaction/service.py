# src/worldlog/compaction/service.py
"""Entity state compaction service.

Ties the default-state cache and the differencer to the host's
transient-instance factory and state capture:

    entity -> baseline for its type (cached, sampled from a transient instance on miss)
           -> live state capture
           -> compact(live, baseline)
           -> consumer / return value
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

import structlog

from worldlog.compaction.defaults_cache import DefaultStateCache
from worldlog.compaction.differ import ENTITY_REJECT_KEYS, compact
from worldlog.contracts import (
    UNKNOWN_ENTITY_TYPE,
    AttributeTree,
    Entity,
    EntityTypeTag,
    StateCapture,
    StateCaptureError,
    TransientInstanceFactory,
)
from worldlog.core.canonical import diagnostic_length

if TYPE_CHECKING:
    from worldlog.core.clock import Clock
    from worldlog.core.config import WorldlogSettings

logger = structlog.get_logger(__name__)


class EntityStateCompactor:
    """Produces compacted AttributeTrees for live entities.

    Failure handling:
        Factory and capture exceptions surface as StateCaptureError. A
        failed baseline load writes nothing to the cache, so the next call
        for that type simply tries again.
    """

    def __init__(
        self,
        cache: DefaultStateCache,
        factory: TransientInstanceFactory,
        capture: StateCapture,
        *,
        reject_keys: Iterable[str] = ENTITY_REJECT_KEYS,
    ) -> None:
        self._cache = cache
        self._factory = factory
        self._capture = capture
        self._reject_keys = frozenset(reject_keys)

    @classmethod
    def from_settings(
        cls,
        settings: WorldlogSettings,
        factory: TransientInstanceFactory,
        capture: StateCapture,
        *,
        clock: Clock | None = None,
    ) -> EntityStateCompactor:
        return cls(
            DefaultStateCache.from_settings(settings.cache, clock=clock),
            factory,
            capture,
            reject_keys=settings.reject_keys,
        )

    @property
    def cache(self) -> DefaultStateCache:
        return self._cache

    def process_entity(
        self,
        entity: Entity,
        consumer: Callable[[AttributeTree], None] | None = None,
    ) -> AttributeTree | None:
        """Compact the entity's current state against its type's baseline.

        Args:
            entity: Live entity to snapshot
            consumer: Optional callback receiving the compacted tree

        Returns:
            The compacted tree, or None when the entity type is unknown or
            has no concrete representation (consumer is not called).

        Raises:
            StateCaptureError: If sampling the baseline or capturing the entity fails
        """
        entity_type = entity.entity_type
        if entity_type == UNKNOWN_ENTITY_TYPE:
            return None
        if not self._factory.resolve(entity_type):
            return None

        baseline = self._cache.get_or_populate(entity_type, lambda: self._sample_default_state(entity_type, entity))
        filtered = compact(self._capture_state(entity_type, entity), baseline, self._reject_keys)

        if consumer is not None:
            consumer(filtered)
        return filtered

    def _sample_default_state(self, entity_type: EntityTypeTag, entity: Entity) -> AttributeTree:
        try:
            transient = self._factory.create(entity_type, entity.location)
        except Exception as e:
            raise StateCaptureError(entity_type, f"transient instance creation failed: {e}") from e
        default_state = self._capture_state(entity_type, transient)

        logger.debug(
            "Caching default entity state",
            entity_type=entity_type,
            byte_length=diagnostic_length(default_state),
        )
        return default_state

    def _capture_state(self, entity_type: EntityTypeTag, entity: Entity) -> AttributeTree:
        try:
            return self._capture.capture(entity)
        except StateCaptureError:
            raise
        except Exception as e:
            raise StateCaptureError(entity_type, f"state capture failed: {e}") from e

"""Entity state contracts.

The host runtime owns entities; worldlog only sees them through these
protocols. An AttributeTree is the JSON-safe snapshot of one entity's
serializable state (nested dicts, lists and scalars, insertion ordered).
"""

from typing import Any, Protocol

EntityTypeTag = str
AttributeTree = dict[str, Any]

# Reserved tag for entities the host cannot classify. Never cached, never diffed.
UNKNOWN_ENTITY_TYPE: EntityTypeTag = "unknown"


class Entity(Protocol):
    """A live entity reference handed in by the host."""

    @property
    def entity_type(self) -> EntityTypeTag: ...

    @property
    def location(self) -> Any: ...


class TransientInstanceFactory(Protocol):
    """Creates detached, non-persistent entity instances for baseline sampling.

    The instance lifecycle belongs to the host; worldlog only captures its
    state once.
    """

    def resolve(self, entity_type: EntityTypeTag) -> bool:
        """Whether the type has a concrete representation that can be created."""
        ...

    def create(self, entity_type: EntityTypeTag, location: Any) -> Entity:
        """Create a transient instance of the type at the given location."""
        ...


class StateCapture(Protocol):
    """Captures the current AttributeTree of an entity."""

    def capture(self, entity: Entity) -> AttributeTree: ...

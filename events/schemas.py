"""
Domain event shapes pushed by the fleet server over the live-update channel.

Every inbound frame is normalized into a single ``DomainEvent`` before routing,
whatever relation field names the server used for the owning mower or engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

# An ordered path of tokens naming one cached result set, e.g. ("assets", "42", "parts").
CacheKeyGroup = Tuple[str, ...]

ASSET_ID = "asset_id"
COMPONENT_ID = "component_id"


class EntityFamily(str, Enum):
    """Entity the event is about; the wire prefix of the event type."""

    ASSET = "asset"
    COMPONENT = "component"
    PART = "part"
    ALLOCATION = "asset-part"
    SERVICE_RECORD = "service"
    TASK = "task"
    CONNECTION = "connection"


class EventKind(str, Enum):
    """Closed set of event types understood by the bridge."""

    CONNECTION = "connection"

    ASSET_CREATED = "asset-created"
    ASSET_UPDATED = "asset-updated"
    ASSET_DELETED = "asset-deleted"

    COMPONENT_CREATED = "component-created"
    COMPONENT_UPDATED = "component-updated"
    COMPONENT_DELETED = "component-deleted"

    PART_CREATED = "part-created"
    PART_UPDATED = "part-updated"
    PART_DELETED = "part-deleted"

    ALLOCATION_CREATED = "asset-part-created"
    ALLOCATION_UPDATED = "asset-part-updated"
    ALLOCATION_DELETED = "asset-part-deleted"

    SERVICE_RECORD_CREATED = "service-created"
    SERVICE_RECORD_UPDATED = "service-updated"
    SERVICE_RECORD_DELETED = "service-deleted"

    TASK_CREATED = "task-created"
    TASK_UPDATED = "task-updated"
    TASK_DELETED = "task-deleted"

    @property
    def family(self) -> EntityFamily:
        if self is EventKind.CONNECTION:
            return EntityFamily.CONNECTION
        return EntityFamily(self.value.rsplit("-", 1)[0])

    @classmethod
    def from_wire(cls, value: str) -> Optional["EventKind"]:
        """Return the kind for a wire ``type`` string, or None when unknown."""
        alias = KIND_ALIASES.get(value)
        if alias is not None:
            return alias
        try:
            return cls(value)
        except ValueError:
            return None


# Engines are components; the server announces them under their own prefix.
KIND_ALIASES: Dict[str, EventKind] = {
    "engine-created": EventKind.COMPONENT_CREATED,
    "engine-updated": EventKind.COMPONENT_UPDATED,
    "engine-deleted": EventKind.COMPONENT_DELETED,
}


@dataclass(slots=True)
class DomainEvent:
    """A server-pushed notification that some fleet entity changed."""

    kind: EventKind
    subject_id: Optional[str] = None
    related_ids: Dict[str, str] = field(default_factory=dict)
    occurred_at: Optional[datetime] = None
    entity_type: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def family(self) -> EntityFamily:
        return self.kind.family

    @property
    def asset_id(self) -> Optional[str]:
        return self.related_ids.get(ASSET_ID)

    @property
    def component_id(self) -> Optional[str]:
        return self.related_ids.get(COMPONENT_ID)

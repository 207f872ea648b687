"""
Decode inbound live-update frames into ``DomainEvent`` objects.

Frames look like ``{"type": "...", "data": {"id": ..., ...}, "timestamp": "..."}``.
Malformed frames are dropped with a logged diagnostic; they never propagate as
errors to the connection layer.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from events.schemas import ASSET_ID, COMPONENT_ID, DomainEvent, EventKind

logger = logging.getLogger(__name__)

# Wire relation fields, in lookup order, for each normalized relation name.
RELATION_FIELDS: Dict[str, tuple[str, ...]] = {
    ASSET_ID: ("mowerId", "assetId"),
    COMPONENT_ID: ("componentId", "engineId"),
}


class FrameDecodeError(ValueError):
    """Raised when a frame cannot be turned into a domain event."""

    def __init__(self, message: str, frame: str | bytes | None = None) -> None:
        super().__init__(message)
        self.frame = frame


def parse_frame(frame: str | bytes) -> Optional[DomainEvent]:
    """
    Parse a raw frame.

    Returns None for well-formed frames whose type is not one the bridge knows
    about, and raises ``FrameDecodeError`` for anything structurally invalid.
    """
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = bytes(frame).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FrameDecodeError(f"frame is not valid UTF-8: {exc}", frame) from exc
    try:
        message = json.loads(frame)
    except (TypeError, json.JSONDecodeError) as exc:
        raise FrameDecodeError(f"frame is not valid JSON: {exc}", frame) from exc
    if not isinstance(message, dict):
        raise FrameDecodeError("frame is not a JSON object", frame)

    event_type = message.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise FrameDecodeError("frame is missing a string 'type'", frame)
    data = message.get("data")
    if not isinstance(data, dict):
        raise FrameDecodeError("frame is missing an object 'data'", frame)

    kind = EventKind.from_wire(event_type)
    if kind is None:
        logger.debug("Ignoring live-update frame of unknown type %r", event_type)
        return None

    subject_id = _normalize_id(data.get("id"))
    if subject_id is None and kind is not EventKind.CONNECTION:
        raise FrameDecodeError(f"{event_type} frame is missing 'data.id'", frame)

    entity_type = data.get("entityType")
    return DomainEvent(
        kind=kind,
        subject_id=subject_id,
        related_ids=_related_ids(data),
        occurred_at=_parse_timestamp(message.get("timestamp")),
        entity_type=entity_type if isinstance(entity_type, str) else None,
        payload=data,
    )


def decode_frame(frame: str | bytes) -> Optional[DomainEvent]:
    """Return the decoded event, or None when the frame is unknown or malformed."""
    try:
        return parse_frame(frame)
    except FrameDecodeError as exc:
        logger.warning("Dropping malformed live-update frame: %s", exc)
        return None


def _related_ids(data: Mapping[str, Any]) -> Dict[str, str]:
    related: Dict[str, str] = {}
    for name, fields in RELATION_FIELDS.items():
        for wire_field in fields:
            value = _normalize_id(data.get(wire_field))
            if value is not None:
                related[name] = value
                break
    return related


def _normalize_id(value: object) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        text = str(value).strip()
        return text or None
    return None


def _parse_timestamp(value: object) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

"""
Fan-out of domain events to every connected live-update client.

Delivery is fire-and-forget: clients that are gone or fail a send are dropped
and will catch up by refetching once they reconnect.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Protocol, Set

from events.schemas import EventKind

logger = logging.getLogger(__name__)


class ClientSocket(Protocol):
    async def send_text(self, data: str) -> None:
        ...


def build_event_message(kind: str, entity_type: str, entity_id: str | int, **extra: Any) -> Dict[str, Any]:
    """Return the wire envelope for an entity change."""
    return {
        "type": kind,
        "data": {"id": entity_id, "entityType": entity_type, **extra},
        "timestamp": datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    }


def connection_message() -> Dict[str, Any]:
    """Welcome frame sent to each client right after it connects."""
    return {
        "type": EventKind.CONNECTION.value,
        "data": {"message": "Connected to live updates"},
        "timestamp": datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    }


class EventBroadcaster:
    """Registry of connected sockets with best-effort broadcast."""

    def __init__(self) -> None:
        self._clients: Set[ClientSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connected_clients(self) -> int:
        return len(self._clients)

    async def register(self, client: ClientSocket) -> None:
        async with self._lock:
            self._clients.add(client)
        logger.info("Live-update client connected (%d total)", len(self._clients))

    async def unregister(self, client: ClientSocket) -> None:
        async with self._lock:
            self._clients.discard(client)
        logger.info("Live-update client disconnected (%d total)", len(self._clients))

    async def broadcast(self, message: Dict[str, Any]) -> int:
        """Send ``message`` to every client; returns how many received it."""
        payload = json.dumps(message, default=str)
        async with self._lock:
            clients = list(self._clients)
        logger.info("Broadcasting %s to %d clients", message.get("type"), len(clients))

        failed: List[ClientSocket] = []
        delivered = 0
        for client in clients:
            try:
                await client.send_text(payload)
            except Exception as exc:
                logger.warning("Dropping live-update client after failed send: %s", exc)
                failed.append(client)
            else:
                delivered += 1

        if failed:
            async with self._lock:
                for client in failed:
                    self._clients.discard(client)
        return delivered

    async def broadcast_entity_event(
        self,
        kind: str,
        entity_type: str,
        entity_id: str | int,
        **extra: Any,
    ) -> int:
        return await self.broadcast(build_event_message(kind, entity_type, entity_id, **extra))


broadcaster = EventBroadcaster()

"""
Live-update bridge: connection manager -> event decoder -> invalidation router -> cache.

Events are processed one frame at a time, synchronously on receipt. Delivery is
best effort and at most once: nothing missed while disconnected is replayed, so
consumers should treat cached data as possibly stale whenever
``status().live_updates_available`` is false.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import config
from cache.query_cache import CacheFacade
from events.decoder import decode_frame
from events.schemas import CacheKeyGroup, DomainEvent
from invalidation.router import InvalidationRouter
from realtime.connection import ConnectionManager, ConnectionState, Connector, Frame, endpoint_for_origin
from realtime.settings import BridgeSettings

logger = logging.getLogger(__name__)


class LiveUpdateListener:
    """Observer for bridge activity; every hook is a no-op by default."""

    def on_connect(self) -> None:
        pass

    def on_disconnect(self) -> None:
        pass

    def on_error(self, exc: BaseException) -> None:
        pass

    def on_event(self, event: DomainEvent) -> None:
        pass

    def on_invalidate(self, event: DomainEvent, groups: Sequence[CacheKeyGroup]) -> None:
        pass


@dataclass(slots=True)
class BridgeStatus:
    """Snapshot of the bridge connection for status indicators."""

    state: ConnectionState
    reconnect_attempts: int
    reconnect_pending: bool
    last_error: Optional[str]
    live_updates_available: bool


class LiveUpdateBridge:
    """
    Keep a query cache fresh from server-pushed domain events.

    With ``auto_refresh=False`` the bridge only decodes and reports events,
    which suits connection status indicators that must not trigger refetches.
    """

    def __init__(
        self,
        cache: CacheFacade,
        *,
        origin: Optional[str] = None,
        url: Optional[str] = None,
        settings: Optional[BridgeSettings] = None,
        listener: Optional[LiveUpdateListener] = None,
        router: Optional[InvalidationRouter] = None,
        connector: Optional[Connector] = None,
        auto_refresh: bool = True,
    ) -> None:
        self._settings = settings or BridgeSettings.from_config()
        self._cache = cache
        self._listener = listener or LiveUpdateListener()
        self._router = router or InvalidationRouter()
        self._auto_refresh = auto_refresh
        endpoint = url or endpoint_for_origin(origin or config.LIVE_UPDATES_ORIGIN, self._settings.path)
        self._connection = ConnectionManager(endpoint, self, self._settings, connector=connector)

    @property
    def url(self) -> str:
        return self._connection.url

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def settings(self) -> BridgeSettings:
        return self._settings

    def connect(self) -> None:
        self._connection.connect()

    def disconnect(self) -> None:
        self._connection.disconnect()

    def send(self, payload: Any) -> bool:
        return self._connection.send(payload)

    async def aclose(self) -> None:
        await self._connection.aclose()

    def status(self) -> BridgeStatus:
        connection = self._connection
        error = connection.last_error
        return BridgeStatus(
            state=connection.state,
            reconnect_attempts=connection.retry_count,
            reconnect_pending=connection.reconnect_pending,
            last_error=str(error) if error is not None else None,
            live_updates_available=not connection.reconnect_exhausted,
        )

    # ------------------------------------------------------------------
    # Connection callbacks
    # ------------------------------------------------------------------
    def on_connect(self) -> None:
        self._emit("on_connect")

    def on_disconnect(self) -> None:
        self._emit("on_disconnect")

    def on_error(self, exc: BaseException) -> None:
        self._emit("on_error", exc)

    def on_frame(self, frame: Frame) -> None:
        event = decode_frame(frame)
        if event is None:
            return
        self._emit("on_event", event)
        if not self._auto_refresh:
            return
        groups = self.apply(event)
        if groups:
            self._emit("on_invalidate", event, groups)

    def apply(self, event: DomainEvent) -> List[CacheKeyGroup]:
        """Invalidate the groups routed for ``event`` and return them."""
        groups = self._router.invalidate(event, self._cache)
        if groups:
            logger.info(
                "Invalidated %d query groups for %s: %s",
                len(groups),
                event.kind.value,
                ", ".join("/".join(group) for group in groups),
            )
        return groups

    def _emit(self, hook: str, *args: Any) -> None:
        try:
            getattr(self._listener, hook)(*args)
        except Exception:
            logger.exception("Live-update listener %s hook failed", hook)

"""
Live-update channel to the fleet server and the bridge that refreshes the cache.
"""

from __future__ import annotations

from typing import Any, Optional

from cache.query_cache import CacheFacade
from realtime.bridge import BridgeStatus, LiveUpdateBridge, LiveUpdateListener
from realtime.connection import ConnectionManager, ConnectionState, endpoint_for_origin
from realtime.manager import (
    bridge_status as _bridge_status,
    start_bridge as _start_bridge,
    stop_bridge as _stop_bridge,
)
from realtime.settings import BridgeSettings

__all__ = [
    "BridgeSettings",
    "BridgeStatus",
    "ConnectionManager",
    "ConnectionState",
    "LiveUpdateBridge",
    "LiveUpdateListener",
    "endpoint_for_origin",
    "live_updates_status",
    "start_live_updates",
    "stop_live_updates",
]


async def start_live_updates(cache: CacheFacade, **options: Any) -> LiveUpdateBridge:
    """Start (or reuse) the shared bridge refreshing ``cache``."""
    return await _start_bridge(cache, **options)


async def stop_live_updates() -> None:
    """Stop the shared bridge."""
    await _stop_bridge()


def live_updates_status() -> Optional[BridgeStatus]:
    """Return the shared bridge status, or None when it is not running."""
    return _bridge_status()

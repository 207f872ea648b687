"""
Process-wide lifecycle controls for a shared live-update bridge.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from cache.query_cache import CacheFacade
from realtime.bridge import BridgeStatus, LiveUpdateBridge

logger = logging.getLogger(__name__)

_MANAGER_LOCK = asyncio.Lock()
_BRIDGE: "LiveUpdateBridge | None" = None


async def start_bridge(cache: CacheFacade, **options: Any) -> LiveUpdateBridge:
    """Create the shared bridge on first use and make sure it is connecting."""
    global _BRIDGE
    async with _MANAGER_LOCK:
        if _BRIDGE is None:
            _BRIDGE = LiveUpdateBridge(cache, **options)
            logger.info("Live-update bridge created for %s", _BRIDGE.url)
        elif options:
            logger.debug("Live-update bridge already running; ignoring new options")
        _BRIDGE.connect()
        return _BRIDGE


async def stop_bridge() -> None:
    """Close and forget the shared bridge."""
    global _BRIDGE
    async with _MANAGER_LOCK:
        if _BRIDGE is None:
            return
        await _BRIDGE.aclose()
        logger.info("Live-update bridge stopped.")
        _BRIDGE = None


def get_bridge() -> Optional[LiveUpdateBridge]:
    return _BRIDGE


def bridge_status() -> Optional[BridgeStatus]:
    """Status of the shared bridge, or None when it is not running."""
    if _BRIDGE is None:
        return None
    return _BRIDGE.status()

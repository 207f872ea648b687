"""
Reconnect and endpoint configuration for the live-update bridge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

import config
from services.storage.settings_store import load_namespace, update_namespace

logger = logging.getLogger(__name__)

SETTINGS_NAMESPACE = "live_updates"


@dataclass(slots=True, frozen=True)
class BridgeSettings:
    """Connection policy consumed by the connection manager."""

    auto_reconnect: bool = True
    reconnect_interval_ms: int = 3000
    max_reconnect_attempts: int = 10
    path: str = "/ws"
    open_timeout_seconds: float = 10.0
    ping_interval_seconds: float | None = 20.0
    close_timeout_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.reconnect_interval_ms < 0:
            raise ValueError("reconnect_interval_ms must be non-negative")
        if self.max_reconnect_attempts < 0:
            raise ValueError("max_reconnect_attempts must be non-negative")
        if not self.path.startswith("/"):
            raise ValueError("path must start with '/'")

    @property
    def reconnect_interval_seconds(self) -> float:
        return self.reconnect_interval_ms / 1000.0

    def with_overrides(self, overrides: Mapping[str, Any]) -> "BridgeSettings":
        """Return a copy with known keys from ``overrides`` applied."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            logger.warning("Ignoring unknown live-update settings: %s", ", ".join(unknown))
        return replace(self, **{key: value for key, value in overrides.items() if key in known})

    @classmethod
    def from_config(cls) -> "BridgeSettings":
        """Build settings from ``config.py`` plus overrides saved in the settings store."""
        base = cls(
            auto_reconnect=bool(config.LIVE_UPDATES_AUTO_RECONNECT),
            reconnect_interval_ms=int(config.LIVE_UPDATES_RECONNECT_INTERVAL_MS),
            max_reconnect_attempts=int(config.LIVE_UPDATES_MAX_RECONNECT_ATTEMPTS),
            path=config.LIVE_UPDATES_PATH,
            open_timeout_seconds=float(config.LIVE_UPDATES_OPEN_TIMEOUT_SECONDS),
            ping_interval_seconds=_optional_seconds(config.LIVE_UPDATES_PING_INTERVAL_SECONDS),
            close_timeout_seconds=float(config.LIVE_UPDATES_CLOSE_TIMEOUT_SECONDS),
        )
        return base.with_overrides(load_namespace(SETTINGS_NAMESPACE))


def save_overrides(changes: Mapping[str, Any]) -> BridgeSettings:
    """Persist ``changes`` to the settings store and return the settings they produce."""
    known = {f.name for f in fields(BridgeSettings)}
    unknown = sorted(set(changes) - known)
    if unknown:
        raise ValueError(f"Unknown live-update settings: {', '.join(unknown)}")
    # Validate against the current settings before anything is written.
    settings = BridgeSettings.from_config().with_overrides(changes)
    update_namespace(SETTINGS_NAMESPACE, **changes)
    logger.info("Saved live-update settings: %s", ", ".join(sorted(changes)))
    return settings


def _optional_seconds(value: Any) -> float | None:
    # None disables the websockets keepalive.
    return None if value is None else float(value)

"""
Lifecycle of the single duplex channel feeding live updates to the client.

The manager keeps at most one channel open, reports connect / disconnect /
error / frame events through an explicit callback interface, and retries on
close at a fixed interval until the configured attempt budget is spent. After
that it stays disconnected until ``connect()`` is called again.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol, Set
from urllib.parse import urlsplit

import websockets

from realtime.settings import BridgeSettings

logger = logging.getLogger(__name__)

Frame = str | bytes


class Channel(Protocol):
    """Minimal surface of an open websocket connection."""

    def __aiter__(self) -> AsyncIterator[Frame]:
        ...

    async def send(self, message: str) -> None:
        ...

    async def close(self) -> None:
        ...


Connector = Callable[[str], Awaitable[Channel]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionCallbacks(Protocol):
    """Named hooks the connection manager invokes."""

    def on_connect(self) -> None:
        """Channel opened."""

    def on_disconnect(self) -> None:
        """Channel closed (or failed to open)."""

    def on_error(self, exc: BaseException) -> None:
        """Non-fatal channel error; a close notification follows separately."""

    def on_frame(self, frame: Frame) -> None:
        """Raw inbound frame."""


def endpoint_for_origin(origin: str, path: str = "/ws") -> str:
    """
    Map a page origin to the live-update endpoint on the same host.

    ``https://`` pages get a ``wss://`` channel, everything else ``ws://``.
    """
    parsed = urlsplit(origin if "://" in origin else f"//{origin}")
    if not parsed.netloc:
        raise ValueError(f"Cannot derive a websocket endpoint from origin {origin!r}")
    scheme = "wss" if parsed.scheme in {"https", "wss"} else "ws"
    return f"{scheme}://{parsed.netloc}{path}"


class ConnectionManager:
    """Owns the channel, its state and the reconnect timer for one bridge."""

    def __init__(
        self,
        url: str,
        callbacks: ConnectionCallbacks,
        settings: Optional[BridgeSettings] = None,
        *,
        connector: Optional[Connector] = None,
    ) -> None:
        self._url = url
        self._callbacks = callbacks
        self._settings = settings or BridgeSettings()
        self._connector = connector or self._open_websocket
        self._state = ConnectionState.DISCONNECTED
        self._retry_count = 0
        self._exhausted = False
        self._last_error: Optional[BaseException] = None
        self._channel: Optional[Channel] = None
        self._reader: Optional[asyncio.Task] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._background: Set[asyncio.Task] = set()
        # Bumped on every connect/disconnect; callbacks from older channels are ignored.
        self._generation = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def reconnect_exhausted(self) -> bool:
        """True once no automatic reconnect will follow and only a manual connect remains."""
        return self._exhausted and self._state is ConnectionState.DISCONNECTED

    def connect(self) -> None:
        """Open the channel unless one is already open or opening."""
        if self._state is not ConnectionState.DISCONNECTED:
            return
        loop = asyncio.get_running_loop()
        self._cancel_reconnect()
        self._exhausted = False
        self._last_error = None
        self._generation += 1
        self._state = ConnectionState.CONNECTING
        logger.debug("Opening live-update channel %s", self._url)
        self._reader = self._track(loop.create_task(self._run(self._generation), name="live-updates-reader"))

    def disconnect(self) -> None:
        """Cancel any pending reconnect and close the channel."""
        self._cancel_reconnect()
        was_connected = self._state is ConnectionState.CONNECTED
        self._generation += 1
        reader, self._reader = self._reader, None
        channel, self._channel = self._channel, None
        if reader is not None and not reader.done():
            if reader is _current_task():
                # Called from a callback on the reader itself; close out of band.
                if channel is not None:
                    self._track(asyncio.get_running_loop().create_task(_close_quietly(channel)))
            else:
                reader.cancel()
        self._state = ConnectionState.DISCONNECTED
        self._retry_count = 0
        self._exhausted = False
        if was_connected:
            logger.info("Live-update channel closed by client")
            self._notify("on_disconnect")

    def send(self, payload: Any) -> bool:
        """Queue ``payload`` on the open channel; returns False when it was discarded."""
        channel = self._channel
        if self._state is not ConnectionState.CONNECTED or channel is None:
            logger.warning("Live-update channel is not connected; dropping outbound message %r", payload)
            return False
        message = payload if isinstance(payload, str) else json.dumps(payload)
        self._track(asyncio.get_running_loop().create_task(self._deliver(channel, message)))
        return True

    async def aclose(self) -> None:
        """Disconnect and wait for the reader and queued sends to finish."""
        self.disconnect()
        pending = [task for task in self._background if task is not _current_task()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Channel lifecycle
    # ------------------------------------------------------------------
    async def _run(self, generation: int) -> None:
        try:
            channel = await self._connector(self._url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation == self._generation:
                self._handle_error(exc)
                self._handle_close()
            return

        if generation != self._generation:
            await _close_quietly(channel)
            return

        self._channel = channel
        self._state = ConnectionState.CONNECTED
        self._retry_count = 0
        logger.info("Live-update channel connected to %s", self._url)
        self._notify("on_connect")

        try:
            async for frame in channel:
                if generation != self._generation:
                    break
                self._notify("on_frame", frame)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation == self._generation:
                self._handle_error(exc)
        finally:
            if self._channel is channel:
                self._channel = None
            await _close_quietly(channel)

        if generation == self._generation:
            self._handle_close()

    def _handle_error(self, exc: BaseException) -> None:
        self._last_error = exc
        logger.warning("Live-update channel error on %s: %s", self._url, exc)
        self._notify("on_error", exc)

    def _handle_close(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._reader = None
        logger.info("Live-update channel disconnected from %s", self._url)
        self._notify("on_disconnect")

        if not self._settings.auto_reconnect:
            self._exhausted = True
            return
        if self._retry_count >= self._settings.max_reconnect_attempts:
            self._exhausted = True
            logger.warning(
                "Live-update reconnect budget exhausted after %d attempts; waiting for manual reconnect",
                self._retry_count,
            )
            return
        self._retry_count += 1
        logger.info(
            "Reconnecting live-update channel in %sms (%d/%d)",
            self._settings.reconnect_interval_ms,
            self._retry_count,
            self._settings.max_reconnect_attempts,
        )
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self._settings.reconnect_interval_seconds, self._reconnect)

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        self.connect()

    def _cancel_reconnect(self) -> None:
        handle, self._reconnect_handle = self._reconnect_handle, None
        if handle is not None:
            handle.cancel()

    async def _deliver(self, channel: Channel, message: str) -> None:
        try:
            await channel.send(message)
        except Exception as exc:
            logger.warning("Failed to send live-update message: %s", exc)

    def _notify(self, hook: str, *args: Any) -> None:
        try:
            getattr(self._callbacks, hook)(*args)
        except Exception:
            logger.exception("Live-update %s callback failed", hook)

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _open_websocket(self, url: str) -> Channel:
        return await websockets.connect(
            url,
            open_timeout=self._settings.open_timeout_seconds,
            ping_interval=self._settings.ping_interval_seconds,
            close_timeout=self._settings.close_timeout_seconds,
        )


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


async def _close_quietly(channel: Channel) -> None:
    try:
        await channel.close()
    except Exception as exc:
        logger.debug("Ignoring error while closing live-update channel: %s", exc)

"""
In-memory stand-ins for the websocket channel so connection tests stay offline.
"""

import asyncio

import pytest

from realtime.settings import BridgeSettings

_CLOSE = object()


class FakeChannel:
    """Channel whose inbound frames are pushed by the test."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._frames = asyncio.Queue()

    def push(self, frame):
        self._frames.put_nowait(frame)

    def drop(self):
        """Simulate the server closing the connection."""
        self._frames.put_nowait(_CLOSE)

    def fail(self, exc):
        self._frames.put_nowait(exc)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._frames.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, message):
        if self.closed:
            raise ConnectionError("channel closed")
        self.sent.append(message)

    async def close(self):
        if not self.closed:
            self.closed = True
            self._frames.put_nowait(_CLOSE)


class FakeConnector:
    """Connector recording every open attempt; fails while ``fail_with`` is set."""

    def __init__(self):
        self.calls = []
        self.channels = []
        self.fail_with = None

    async def __call__(self, url):
        self.calls.append(url)
        if self.fail_with is not None:
            raise self.fail_with
        channel = FakeChannel()
        self.channels.append(channel)
        return channel

    @property
    def channel(self):
        return self.channels[-1]


class RecordingCallbacks:
    def __init__(self):
        self.calls = []
        self.frames = []
        self.errors = []

    def on_connect(self):
        self.calls.append("connect")

    def on_disconnect(self):
        self.calls.append("disconnect")

    def on_error(self, exc):
        self.calls.append("error")
        self.errors.append(exc)

    def on_frame(self, frame):
        self.frames.append(frame)


async def _wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def callbacks():
    return RecordingCallbacks()


@pytest.fixture
def fast_settings():
    return BridgeSettings(reconnect_interval_ms=1, max_reconnect_attempts=3)


@pytest.fixture
def wait_until():
    return _wait_until

import asyncio
import json
import logging

import pytest
from flaky import flaky

from realtime.connection import ConnectionManager, ConnectionState, endpoint_for_origin
from realtime.settings import BridgeSettings

URL = "ws://fleet.test/ws"


def _manager(callbacks, connector, settings):
    return ConnectionManager(URL, callbacks, settings, connector=connector)


@pytest.mark.parametrize(
    "origin, expected",
    [
        ("https://fleet.example.com", "wss://fleet.example.com/ws"),
        ("http://localhost:5000", "ws://localhost:5000/ws"),
        ("localhost:5000", "ws://localhost:5000/ws"),
        ("https://fleet.example.com/mowers/42", "wss://fleet.example.com/ws"),
    ],
)
def test_endpoint_follows_page_scheme(origin, expected):
    assert endpoint_for_origin(origin) == expected


def test_endpoint_requires_a_host():
    with pytest.raises(ValueError):
        endpoint_for_origin("https://")


@pytest.mark.asyncio
async def test_connect_opens_channel_and_resets_retries(callbacks, connector, fast_settings, wait_until):
    manager = _manager(callbacks, connector, fast_settings)

    manager.connect()
    assert manager.state is ConnectionState.CONNECTING
    await wait_until(lambda: manager.is_connected)

    assert connector.calls == [URL]
    assert callbacks.calls == ["connect"]
    assert manager.retry_count == 0
    await manager.aclose()


@pytest.mark.asyncio
async def test_connect_is_noop_while_open(callbacks, connector, fast_settings, wait_until):
    manager = _manager(callbacks, connector, fast_settings)
    manager.connect()
    await wait_until(lambda: manager.is_connected)

    manager.connect()
    await asyncio.sleep(0.01)

    assert len(connector.calls) == 1
    await manager.aclose()


@pytest.mark.asyncio
async def test_frames_are_forwarded_in_order(callbacks, connector, fast_settings, wait_until):
    manager = _manager(callbacks, connector, fast_settings)
    manager.connect()
    await wait_until(lambda: manager.is_connected)

    connector.channel.push("first")
    connector.channel.push("second")
    await wait_until(lambda: len(callbacks.frames) == 2)

    assert callbacks.frames == ["first", "second"]
    await manager.aclose()


@pytest.mark.asyncio
async def test_server_close_schedules_reconnect(callbacks, connector, fast_settings, wait_until):
    manager = _manager(callbacks, connector, fast_settings)
    manager.connect()
    await wait_until(lambda: manager.is_connected)

    connector.channel.drop()
    await wait_until(lambda: len(connector.channels) == 2 and manager.is_connected)

    assert callbacks.calls == ["connect", "disconnect", "connect"]
    assert manager.retry_count == 0
    assert not manager.reconnect_pending
    await manager.aclose()


@flaky(max_runs=3)
@pytest.mark.asyncio
async def test_reconnect_stops_after_max_attempts_then_manual_connect_recovers(
    callbacks, connector, fast_settings, wait_until
):
    connector.fail_with = OSError("connection refused")
    manager = _manager(callbacks, connector, fast_settings)

    manager.connect()
    await wait_until(lambda: manager.reconnect_exhausted)
    await asyncio.sleep(0.02)

    # One initial open plus exactly max_reconnect_attempts retries.
    assert len(connector.calls) == 1 + fast_settings.max_reconnect_attempts
    assert manager.retry_count == fast_settings.max_reconnect_attempts
    assert manager.state is ConnectionState.DISCONNECTED
    assert not manager.reconnect_pending
    assert callbacks.calls == ["error", "disconnect"] * 4
    assert isinstance(manager.last_error, OSError)

    connector.fail_with = None
    manager.connect()
    await wait_until(lambda: manager.is_connected)

    assert manager.retry_count == 0
    assert not manager.reconnect_exhausted
    await manager.aclose()


@pytest.mark.asyncio
async def test_disconnect_cancels_pending_reconnect(callbacks, connector, wait_until):
    settings = BridgeSettings(reconnect_interval_ms=50, max_reconnect_attempts=5)
    connector.fail_with = OSError("connection refused")
    manager = _manager(callbacks, connector, settings)

    manager.connect()
    await wait_until(lambda: manager.reconnect_pending)
    manager.disconnect()
    await asyncio.sleep(0.15)

    assert len(connector.calls) == 1
    assert not manager.reconnect_pending
    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.retry_count == 0


@pytest.mark.asyncio
async def test_manual_connect_releases_pending_timer(callbacks, connector, wait_until):
    settings = BridgeSettings(reconnect_interval_ms=200, max_reconnect_attempts=5)
    connector.fail_with = OSError("connection refused")
    manager = _manager(callbacks, connector, settings)
    manager.connect()
    await wait_until(lambda: manager.reconnect_pending)

    connector.fail_with = None
    manager.connect()
    await wait_until(lambda: manager.is_connected)
    await asyncio.sleep(0.3)

    assert len(connector.calls) == 2
    assert not manager.reconnect_pending
    await manager.aclose()


@pytest.mark.asyncio
async def test_manual_connect_keeps_retry_count(callbacks, connector, wait_until):
    settings = BridgeSettings(reconnect_interval_ms=200, max_reconnect_attempts=5)
    connector.fail_with = OSError("connection refused")
    manager = _manager(callbacks, connector, settings)
    manager.connect()
    await wait_until(lambda: manager.reconnect_pending)
    assert manager.retry_count == 1

    manager.connect()
    await wait_until(lambda: len(connector.calls) == 2 and manager.reconnect_pending)

    assert manager.retry_count == 2
    await manager.aclose()


@pytest.mark.asyncio
async def test_auto_reconnect_disabled_stays_disconnected(callbacks, connector, wait_until):
    settings = BridgeSettings(auto_reconnect=False, reconnect_interval_ms=1)
    manager = _manager(callbacks, connector, settings)
    manager.connect()
    await wait_until(lambda: manager.is_connected)

    connector.channel.drop()
    await wait_until(lambda: manager.state is ConnectionState.DISCONNECTED)
    await asyncio.sleep(0.02)

    assert len(connector.calls) == 1
    assert not manager.reconnect_pending
    assert manager.reconnect_exhausted


@pytest.mark.asyncio
async def test_manual_disconnect_closes_channel_without_reconnect(callbacks, connector, fast_settings, wait_until):
    manager = _manager(callbacks, connector, fast_settings)
    manager.connect()
    await wait_until(lambda: manager.is_connected)
    channel = connector.channel

    await manager.aclose()
    await asyncio.sleep(0.02)

    assert channel.closed
    assert callbacks.calls == ["connect", "disconnect"]
    assert len(connector.calls) == 1
    assert manager.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_channel_error_is_reported_before_close(callbacks, connector, fast_settings, wait_until):
    manager = _manager(callbacks, connector, fast_settings)
    manager.connect()
    await wait_until(lambda: manager.is_connected)

    connector.channel.fail(ConnectionResetError("reset by peer"))
    await wait_until(lambda: len(connector.channels) == 2 and manager.is_connected)

    assert callbacks.calls == ["connect", "error", "disconnect", "connect"]
    assert isinstance(callbacks.errors[0], ConnectionResetError)
    await manager.aclose()


@pytest.mark.asyncio
async def test_send_while_disconnected_is_discarded(callbacks, connector, fast_settings, caplog):
    manager = _manager(callbacks, connector, fast_settings)

    with caplog.at_level(logging.WARNING, logger="realtime.connection"):
        assert manager.send({"type": "ping"}) is False

    assert manager.state is ConnectionState.DISCONNECTED
    assert "not connected" in caplog.text
    assert connector.calls == []


@pytest.mark.asyncio
async def test_send_while_connected_serializes_payload(callbacks, connector, fast_settings, wait_until):
    manager = _manager(callbacks, connector, fast_settings)
    manager.connect()
    await wait_until(lambda: manager.is_connected)

    assert manager.send({"type": "ping"}) is True
    assert manager.send("raw text") is True
    await wait_until(lambda: len(connector.channel.sent) == 2)

    assert json.loads(connector.channel.sent[0]) == {"type": "ping"}
    assert connector.channel.sent[1] == "raw text"
    await manager.aclose()


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_the_reader(connector, fast_settings, wait_until, mocker):
    callbacks = mocker.Mock()
    callbacks.on_frame.side_effect = [RuntimeError("boom"), None]
    manager = _manager(callbacks, connector, fast_settings)
    manager.connect()
    await wait_until(lambda: manager.is_connected)

    connector.channel.push("one")
    connector.channel.push("two")
    await wait_until(lambda: callbacks.on_frame.call_count == 2)

    assert manager.is_connected
    await manager.aclose()


@pytest.mark.asyncio
async def test_disconnect_from_frame_callback(connector, fast_settings, wait_until):
    class StopOnFirstFrame:
        def __init__(self):
            self.manager = None
            self.disconnects = 0

        def on_connect(self):
            pass

        def on_disconnect(self):
            self.disconnects += 1

        def on_error(self, exc):
            pass

        def on_frame(self, frame):
            self.manager.disconnect()

    callbacks = StopOnFirstFrame()
    manager = _manager(callbacks, connector, fast_settings)
    callbacks.manager = manager
    manager.connect()
    await wait_until(lambda: manager.is_connected)

    connector.channel.push("bye")
    await wait_until(lambda: connector.channel.closed)
    await asyncio.sleep(0.02)

    assert manager.state is ConnectionState.DISCONNECTED
    assert callbacks.disconnects == 1
    assert len(connector.calls) == 1

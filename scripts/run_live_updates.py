"""
Run a live-update bridge against a fleet server and log what it invalidates.

Useful for checking a server's event stream by hand: every decoded event and
every invalidated cache group is printed, and the connection status is
reported whenever it changes.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

# Ensure repository root is importable when executed as a script.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from cache.query_cache import QueryCache
from events.schemas import CacheKeyGroup, DomainEvent
from realtime import (
    BridgeSettings,
    LiveUpdateListener,
    live_updates_status,
    start_live_updates,
    stop_live_updates,
)
from realtime.settings import save_overrides


class ConsoleListener(LiveUpdateListener):
    def on_connect(self) -> None:
        print("Connected")

    def on_disconnect(self) -> None:
        print("Disconnected")

    def on_error(self, exc: BaseException) -> None:
        print(f"Channel error: {exc}")

    def on_event(self, event: DomainEvent) -> None:
        related = ", ".join(f"{name}={value}" for name, value in sorted(event.related_ids.items()))
        print(f"[{event.kind.value}] id={event.subject_id} {related}".rstrip())

    def on_invalidate(self, event: DomainEvent, groups: Sequence[CacheKeyGroup]) -> None:
        for group in groups:
            print(f"  invalidate {'/'.join(group)}")


async def async_main(args: argparse.Namespace) -> None:
    overrides = {
        key: value
        for key, value in {
            "auto_reconnect": False if args.no_reconnect else None,
            "reconnect_interval_ms": args.interval_ms,
            "max_reconnect_attempts": args.max_attempts,
        }.items()
        if value is not None
    }
    if args.save and overrides:
        settings = save_overrides(overrides)
        print(f"Saved reconnect overrides: {', '.join(sorted(overrides))}")
    else:
        settings = BridgeSettings.from_config().with_overrides(overrides)
    options = {
        "settings": settings,
        "listener": ConsoleListener(),
        "auto_refresh": not args.status_only,
    }
    if args.url:
        options["url"] = args.url
    elif args.origin:
        options["origin"] = args.origin

    bridge = await start_live_updates(QueryCache(), **options)
    print(f"Listening on {bridge.url}")
    last_status = None
    loop = asyncio.get_running_loop()
    deadline = loop.time() + args.duration if args.duration else None
    try:
        while deadline is None or loop.time() < deadline:
            status = live_updates_status()
            if status is not None and status != last_status:
                print(
                    f"Status: {status.state.value} attempts={status.reconnect_attempts} "
                    f"available={status.live_updates_available}"
                )
                last_status = status
            await asyncio.sleep(0.5)
    except asyncio.CancelledError:
        print("Live-update loop cancelled, shutting down...")
    finally:
        await stop_live_updates()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the live-update bridge and log cache invalidations.")
    parser.add_argument("--origin", help="Page origin to derive the endpoint from (default config.LIVE_UPDATES_ORIGIN).")
    parser.add_argument("--url", help="Explicit websocket endpoint; overrides --origin.")
    parser.add_argument("--interval-ms", type=int, default=None, help="Reconnect interval in milliseconds.")
    parser.add_argument("--max-attempts", type=int, default=None, help="Maximum reconnect attempts.")
    parser.add_argument("--no-reconnect", action="store_true", help="Disable automatic reconnect.")
    parser.add_argument(
        "--status-only",
        action="store_true",
        help="Decode and print events without invalidating anything.",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Persist the reconnect overrides to the settings store for later runs.",
    )
    parser.add_argument("--duration", type=float, default=0.0, help="Stop after this many seconds (0 = run forever).")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default INFO).")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        asyncio.run(async_main(args))
    except KeyboardInterrupt:
        print("Interrupted")


if __name__ == "__main__":
    main()

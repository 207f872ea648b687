"""
Post a synthetic domain event to the development server for broadcast.

Example:
    python scripts/publish_event.py asset-part-created 17 --entity-type asset-part --mower-id 42
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import httpx

# Ensure repository root is importable when executed as a script.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import config
from events.schemas import EventKind

DEFAULT_ENTITY_TYPES = {
    "asset": "mower",
    "component": "component",
    "part": "part",
    "asset-part": "asset-part",
    "service": "service-record",
    "task": "task",
}


def build_payload(args: argparse.Namespace) -> dict:
    kind = EventKind.from_wire(args.type)
    if kind is None:
        raise SystemExit(f"Unknown event type: {args.type}")
    payload = {
        "type": args.type,
        "entityType": args.entity_type or DEFAULT_ENTITY_TYPES.get(kind.family.value, kind.family.value),
        "id": args.id,
    }
    if args.mower_id:
        payload["mowerId"] = args.mower_id
    if args.component_id:
        payload["componentId"] = args.component_id
    return payload


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Publish a live-update event through the dev server.")
    parser.add_argument("type", help="Event type, e.g. asset-updated or service-created.")
    parser.add_argument("id", help="Identifier of the changed entity.")
    parser.add_argument("--entity-type", help="Entity type reported in the event (defaults from the type).")
    parser.add_argument("--mower-id", help="Owning mower id.")
    parser.add_argument("--component-id", help="Owning component (engine) id.")
    parser.add_argument(
        "--server",
        default=f"http://localhost:{config.WEBAPP_PORT}",
        help="Base URL of the development server.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    payload = build_payload(args)
    try:
        response = httpx.post(f"{args.server.rstrip('/')}/api/events", json=payload, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise SystemExit(f"Failed to publish event: {exc}") from exc
    body = response.json()
    print(f"Published {body['type']} to {body['delivered']} clients")


if __name__ == "__main__":
    main()

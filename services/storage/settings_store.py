"""
JSON-backed key-value storage for runtime overrides of the bridge settings.

Each consumer owns a namespace (the live-update bridge uses ``live_updates``).
The file location can be moved with the ``MOWER_SETTINGS_FILE`` environment
variable.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Any, Dict

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = Path("data/settings_store.json")
_STORE_LOCK = Lock()


def settings_file() -> Path:
    override = os.environ.get("MOWER_SETTINGS_FILE")
    return Path(override) if override else DEFAULT_SETTINGS_FILE


def _read_store(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.debug("Unable to read settings store %s: %s", path, exc)
        return {}
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Settings store %s is corrupted; ignoring contents.", path)
        return {}
    return payload if isinstance(payload, dict) else {}


def _write_store(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".tmp")
    try:
        temp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        temp_path.replace(path)
    except OSError as exc:
        logger.error("Failed to write settings store %s: %s", path, exc)


def load_namespace(namespace: str) -> Dict[str, Any]:
    """Return a shallow copy of one namespace; missing namespaces are empty."""
    with _STORE_LOCK:
        payload = _read_store(settings_file()).get(namespace, {})
        return dict(payload) if isinstance(payload, dict) else {}


def save_namespace(namespace: str, payload: Dict[str, Any]) -> None:
    """Replace one namespace atomically."""
    if not isinstance(payload, dict):
        raise ValueError("payload must be a dictionary.")
    path = settings_file()
    with _STORE_LOCK:
        data = _read_store(path)
        data[namespace] = payload
        _write_store(path, data)


def update_namespace(namespace: str, **changes: Any) -> Dict[str, Any]:
    """Merge ``changes`` into a namespace and return the stored result."""
    path = settings_file()
    with _STORE_LOCK:
        data = _read_store(path)
        current = data.get(namespace)
        merged = dict(current) if isinstance(current, dict) else {}
        merged.update(changes)
        data[namespace] = merged
        _write_store(path, data)
        return dict(merged)

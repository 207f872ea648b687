"""
Development server publishing fleet change events over ``/ws``.

Only the live-update surface lives here: the websocket endpoint, an endpoint to
publish synthetic events, and a health probe.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field

import config
from events.schemas import EventKind
from services.webapp.broadcast import broadcaster, build_event_message, connection_message

app = FastAPI(
    title="mower-live-updates",
    description="Live-update channel for the mower fleet manager",
    version="0.1.0",
)

logger = logging.getLogger(__name__)


class PublishEventRequest(BaseModel):
    """Body of ``POST /api/events``."""

    type: str
    entity_type: str = Field(alias="entityType")
    id: Union[int, str]
    mower_id: Optional[Union[int, str]] = Field(default=None, alias="mowerId")
    component_id: Optional[Union[int, str]] = Field(default=None, alias="componentId")
    extra: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


@app.websocket(config.LIVE_UPDATES_PATH)
async def live_updates(websocket: WebSocket) -> None:
    await websocket.accept()
    await broadcaster.register(websocket)
    try:
        await websocket.send_text(json.dumps(connection_message()))
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON client frame")
                continue
            logger.debug("Live-update client message: %s", message)
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.unregister(websocket)


@app.post("/api/events")
async def publish_event(request: PublishEventRequest) -> dict:
    if EventKind.from_wire(request.type) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown event type {request.type!r}")
    extra = dict(request.extra)
    if request.mower_id is not None:
        extra["mowerId"] = request.mower_id
    if request.component_id is not None:
        extra["componentId"] = request.component_id
    message = build_event_message(request.type, request.entity_type, request.id, **extra)
    delivered = await broadcaster.broadcast(message)
    return {"type": request.type, "delivered": delivered}


@app.get("/api/health")
def health() -> dict:
    return {"status": "ok", "live_update_clients": broadcaster.connected_clients}

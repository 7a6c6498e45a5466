"""WebSocket endpoint pushing runtime updates to UIs.

``/ws/runtime`` sends the latest runtime snapshot cached on the bus (or the
orchestrator's state before any update), then every event emitted on the
bus. Clients may send ``ping`` and get ``pong``.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tabpilot.monitoring.event_bus import Event, EventBus

logger = logging.getLogger(__name__)

ws_router = APIRouter(tags=["websocket"])

KEEPALIVE_SEC = 30.0


class WebSocketSink:
    """Forwards events to a WebSocket client."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket
        self._closed = False

    async def handle_event(self, event: Event) -> None:
        """Send event JSON to the WebSocket client."""
        if self._closed:
            return
        try:
            await self._ws.send_text(event.to_jsonl())
        except Exception:
            self._closed = True

    @property
    def closed(self) -> bool:
        """Whether the WebSocket connection has been closed."""
        return self._closed


@ws_router.websocket("/ws/runtime")
async def ws_runtime(websocket: WebSocket) -> None:
    """Stream runtime updates to a WebSocket client."""
    await websocket.accept()

    orchestrator = websocket.app.state.orchestrator
    bus: EventBus = websocket.app.state.bus

    snapshot = bus.get_snapshot() or orchestrator.get_runtime_state().model_dump(mode="json")
    await websocket.send_json({"type": "snapshot", "data": snapshot})

    sink = WebSocketSink(websocket)
    bus.add_sink(sink)
    try:
        while not sink.closed:
            try:
                msg = await asyncio.wait_for(websocket.receive_text(), timeout=KEEPALIVE_SEC)
                if msg == "ping":
                    await websocket.send_text("pong")
            except asyncio.TimeoutError:
                try:
                    await websocket.send_json({"type": "keepalive"})
                except Exception:
                    break
    except WebSocketDisconnect:
        pass
    finally:
        bus.remove_sink(sink)
        logger.debug("Runtime client disconnected")

# comanda/ws.py
import asyncio
import json
import logging
from typing import Optional, Set
from fastapi import WebSocket

from .events import EVENT_TYPES, Event, EventFeed

log = logging.getLogger("comanda.ws")


class ConnectionManager:
    def __init__(self) -> None:
        self.active_connections: Set[WebSocket] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.add(websocket)

    def disconnect(self, websocket: WebSocket):
        self.active_connections.discard(websocket)

    async def broadcast_text(self, message: str):
        """Sends to every client; drops the dead ones."""
        dead = []
        for ws in list(self.active_connections):
            try:
                await ws.send_text(message)
            except Exception as e:
                log.warning("websocket send failed, dropping client: %s", e)
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    async def broadcast_json(self, payload: dict):
        await self.broadcast_text(json.dumps(payload))

    # ---- bridge from the (threaded) engine to the event loop ----

    def attach(self, feed: EventFeed, loop: asyncio.AbstractEventLoop) -> None:
        first = self._loop is None
        self._loop = loop
        if not first:
            return
        for event_type in EVENT_TYPES:
            feed.subscribe(event_type, self.forward)

    def forward(self, event: Event) -> None:
        if self._loop is None or self._loop.is_closed() or not self.active_connections:
            return
        payload = {"type": event.event_type, "id": event.record_id}
        # clients reconcile by polling; failures are only logged
        fut = asyncio.run_coroutine_threadsafe(self.broadcast_json(payload), self._loop)
        fut.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(fut) -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            log.warning("websocket broadcast failed: %r", exc)


manager = ConnectionManager()

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)

# Frames a reconnecting renderer needs to redraw without waiting for the next change.
REPLAYED_EVENTS = ("playback_changed", "debug_toggle")


class RenderHub:
    """Fan-out of playback and overlay updates to the local rendering clients."""

    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._revision = 0
        self._latest: dict[str, dict[str, Any]] = {}

    def _frame(self, event_type: str, payload: dict[str, Any] | None) -> dict[str, Any]:
        return {
            "type": event_type,
            "revision": self._revision,
            "payload": payload or {},
            "ts": datetime.now(timezone.utc).isoformat(),
        }

    async def connect(self, websocket: WebSocket, greeting: dict[str, Any] | None = None) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
            replay = [self._latest[name] for name in REPLAYED_EVENTS if name in self._latest]
        hello = self._frame("hello", greeting)
        hello["replay"] = replay
        await websocket.send_text(json.dumps(hello, default=str))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(websocket)

    async def publish(self, event_type: str, payload: dict[str, Any] | None = None) -> int:
        self._revision += 1
        frame = self._frame(event_type, payload)
        message = json.dumps(frame, default=str)
        async with self._lock:
            if event_type in REPLAYED_EVENTS:
                self._latest[event_type] = frame
            clients = list(self._clients)

        results = await asyncio.gather(*(self._send(client, message) for client in clients))
        stale = [client for client, delivered in zip(clients, results) if not delivered]
        if stale:
            logger.debug("Dropping %d stale rendering client(s)", len(stale))
            async with self._lock:
                self._clients.difference_update(stale)
        return self._revision

    @staticmethod
    async def _send(client: WebSocket, message: str) -> bool:
        try:
            await client.send_text(message)
        except Exception:
            return False
        return True

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def client_count(self) -> int:
        return len(self._clients)


hub = RenderHub()

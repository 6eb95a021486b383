"""
WebSocket hub pushing server status snapshots to live clients.

A subscriber either watches every server or a fixed set of server ids
chosen when it connects; events for other servers are not sent to it.
"""

from __future__ import annotations

import logging
from asyncio import Lock
from datetime import datetime, timezone
from typing import Any, Iterable

from fastapi import WebSocket

logger = logging.getLogger("servers_api.websocket_hub")


class WebSocketHub:
    """Tracks subscribed clients and the servers each one watches."""

    def __init__(self):
        # websocket -> watched server ids, None for all servers
        self._subscribers: dict[WebSocket, frozenset[str] | None] = {}
        self._lock = Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def watching(self, server_id: str) -> int:
        """Number of subscribers that would receive an event for server_id."""
        return sum(1 for ids in self._subscribers.values() if ids is None or server_id in ids)

    async def subscribe(self, websocket: WebSocket, server_ids: Iterable[str] | None = None):
        await websocket.accept()
        watched = frozenset(server_ids) if server_ids else None
        async with self._lock:
            self._subscribers[websocket] = watched

    async def unsubscribe(self, websocket: WebSocket):
        async with self._lock:
            self._subscribers.pop(websocket, None)

    async def publish(self, event_type: str, data: Any, server_id: str | None = None) -> int:
        """
        Send one event to every subscriber watching ``server_id``.

        Events without a server id go to everyone. Subscribers whose send
        fails are dropped. Returns how many subscribers received the event.
        """
        event = {
            "event_type": event_type,
            "data": data,
            "ts": datetime.now(timezone.utc).isoformat(),
        }
        async with self._lock:
            targets = [
                ws for ws, ids in self._subscribers.items()
                if server_id is None or ids is None or server_id in ids
            ]

        dropped: list[WebSocket] = []
        for ws in targets:
            try:
                await ws.send_json(event)
            except Exception as e:
                logger.debug(f"Dropping subscriber after send failure: {e}")
                dropped.append(ws)

        if dropped:
            async with self._lock:
                for ws in dropped:
                    self._subscribers.pop(ws, None)
        return len(targets) - len(dropped)

"""
Background status monitor.

Polls every configured server on a worker thread, keeps the latest
aggregated snapshot per server and publishes it to WebSocket subscribers.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time

from gsclient import (
    GameServerError, ServerEndpoint, StatusHelperRegistry,
    UnsupportedGameTypeError,
)

from .config import STATUS_POLL_INTERVAL
from .websocket_hub import WebSocketHub

logger = logging.getLogger("servers_api.monitor")


class StatusMonitor:
    def __init__(
        self,
        servers: dict[str, ServerEndpoint],
        helpers: StatusHelperRegistry,
        hub: WebSocketHub | None = None,
        interval: float = STATUS_POLL_INTERVAL,
        clock=time.time,
    ):
        self.servers = servers
        self.helpers = helpers
        self.hub = hub
        self.interval = interval
        self._clock = clock
        self._snapshots: dict[str, tuple[float, dict]] = {}
        self._lock = threading.Lock()

    def record(self, server_id: str, payload: dict):
        with self._lock:
            self._snapshots[server_id] = (self._clock(), payload)

    def snapshot(self, server_id: str, max_age: float | None = None) -> dict | None:
        """Latest payload for a server, or None when missing or older than max_age."""
        with self._lock:
            entry = self._snapshots.get(server_id)
        if entry is None:
            return None
        taken_at, payload = entry
        if max_age is not None and self._clock() - taken_at > max_age:
            return None
        return payload

    def poll_server(self, endpoint: ServerEndpoint) -> dict | None:
        """Blocking: query (and RCON-sync) one server and store the snapshot."""
        try:
            status = self.helpers.get(endpoint).get_server_status()
        except UnsupportedGameTypeError as e:
            logger.warning(f"[{endpoint.key}] {e}")
            return None
        except (GameServerError, OSError) as e:
            logger.error(f"[{endpoint.key}] Status poll failed: {e}")
            return None

        payload = status.to_dict()
        self.record(endpoint.key, payload)
        return payload

    async def poll_once(self) -> int:
        """Poll every server once; returns the number of fresh snapshots."""
        updated = 0
        for endpoint in list(self.servers.values()):
            payload = await asyncio.to_thread(self.poll_server, endpoint)
            if payload is None:
                continue
            updated += 1
            if self.hub is not None and self.hub.watching(endpoint.key):
                await self.hub.publish("status_update", payload, server_id=endpoint.key)
        return updated

    async def run_loop(self):
        logger.info(f"Status monitor polling {len(self.servers)} server(s) every {self.interval:.0f}s")
        while True:
            updated = await self.poll_once()
            logger.debug(f"Status poll refreshed {updated}/{len(self.servers)} server(s)")
            await asyncio.sleep(self.interval)

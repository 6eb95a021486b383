"""
Aggregated server status.

The query roster is canonical: every player it lists is surfaced, and RCON
rows only enrich those players with slot, guid, address and rate. The two
protocols share no identifier, so rows are paired by normalized name.
"""

from __future__ import annotations

import logging
import threading
import time

from .defs import RCON_RESYNC_INTERVAL
from .errors import GameServerError
from .factory import ClientRegistry, QueryClientFactory, RconClientFactory
from .models import (
    GameServerPlayer, GameServerStatus, QueryResponse, RconPlayer,
    ServerEndpoint,
)

logger = logging.getLogger("gsclient.status")


def _attach_rcon(players: list[GameServerPlayer], rcon_players: list[RconPlayer], label: str = "") -> int:
    by_name = {}
    for rcon_player in rcon_players:
        by_name.setdefault(rcon_player.normalized_name, rcon_player)

    matched = set()
    for player in players:
        rcon_player = by_name.get(player.normalized_name)
        if rcon_player is not None:
            player.attach(rcon_player)
            matched.add(player.normalized_name)

    for name in by_name.keys() - matched:
        logger.debug(f"[{label}] No query player to sync with rcon player '{name}'")
    return len(matched)


def _status(response: QueryResponse, players: list[GameServerPlayer],
            endpoint: ServerEndpoint | None) -> GameServerStatus:
    status = GameServerStatus(
        server_name=response.server_name,
        map=response.map,
        mod=response.mod,
        player_count=response.player_count,
        max_players=response.max_players,
        players=players,
    )
    if endpoint is not None:
        status.server_id = endpoint.server_id
        status.game_type = endpoint.game_type
        status.hostname = endpoint.hostname
        status.query_port = endpoint.query_port
    return status


def merge_status(response: QueryResponse, rcon_players: list[RconPlayer],
                 endpoint: ServerEndpoint | None = None) -> GameServerStatus:
    """Merge one query snapshot and one RCON player list."""
    players = [GameServerPlayer.from_query(p) for p in response.players]
    _attach_rcon(players, rcon_players, endpoint.key if endpoint else "")
    return _status(response, players, endpoint)


class GameServerStatusHelper:
    """
    Keeps the last merged roster of one server.

    Query runs on every call. RCON ``status`` is comparatively expensive, so
    it only runs when a query player is new or still unmatched, or when the
    previous RCON sync is older than ``resync_interval``.
    """

    def __init__(self, endpoint: ServerEndpoint, query_client, rcon_client=None,
                 resync_interval: float = RCON_RESYNC_INTERVAL, clock=time.monotonic):
        self.endpoint = endpoint
        self.query_client = query_client
        self.rcon_client = rcon_client
        self.resync_interval = resync_interval
        self._clock = clock
        self._last_rcon_sync = None
        self._lock = threading.Lock()
        self.players: list[GameServerPlayer] = []

    def _needs_rcon_sync(self, response: QueryResponse, previous: dict) -> bool:
        if self._last_rcon_sync is None:
            return True
        if self._clock() - self._last_rcon_sync >= self.resync_interval:
            return True
        for query_player in response.players:
            existing = previous.get(query_player.normalized_name)
            if existing is None or existing.rcon_player is None:
                return True
        return False

    def get_server_status(self) -> GameServerStatus:
        with self._lock:
            response = self.query_client.get_server_status()
            previous = {p.normalized_name: p for p in self.players}

            players = []
            for query_player in response.players:
                player = GameServerPlayer.from_query(query_player)
                existing = previous.get(player.normalized_name)
                if existing is not None and existing.rcon_player is not None:
                    player.attach(existing.rcon_player)
                players.append(player)

            if self.rcon_client is not None and self._needs_rcon_sync(response, previous):
                self._sync_rcon(players)

            self.players = players
            return _status(response, players, self.endpoint)

    def _sync_rcon(self, players: list[GameServerPlayer]):
        label = self.endpoint.key
        try:
            rcon_players = self.rcon_client.get_players()
        except (GameServerError, OSError) as e:
            logger.warning(f"[{label}] RCON sync failed, serving query view only: {e}")
            return
        self._last_rcon_sync = self._clock()
        matched = _attach_rcon(players, rcon_players, label)
        logger.debug(f"[{label}] RCON sync matched {matched}/{len(players)} players")


class StatusHelperRegistry:
    """One ``GameServerStatusHelper`` per server identity."""

    def __init__(self, query_clients: ClientRegistry | None = None,
                 rcon_clients: ClientRegistry | None = None,
                 resync_interval: float = RCON_RESYNC_INTERVAL):
        self.query_clients = query_clients or ClientRegistry(QueryClientFactory())
        self.rcon_clients = rcon_clients or ClientRegistry(RconClientFactory())
        self.resync_interval = resync_interval
        self._helpers: dict[str, GameServerStatusHelper] = {}
        self._lock = threading.Lock()

    def get(self, endpoint: ServerEndpoint) -> GameServerStatusHelper:
        with self._lock:
            helper = self._helpers.get(endpoint.key)
            if helper is None:
                query_client = self.query_clients.get(endpoint)
                rcon_client = self.rcon_clients.get(endpoint) if endpoint.rcon_password else None
                helper = GameServerStatusHelper(
                    endpoint, query_client, rcon_client, resync_interval=self.resync_interval,
                )
                self._helpers[endpoint.key] = helper
            return helper

    def close_all(self):
        with self._lock:
            self._helpers.clear()
        self.query_clients.close_all()
        self.rcon_clients.close_all()

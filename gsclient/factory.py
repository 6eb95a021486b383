"""
Client factories.

A game type maps to an engine family through a fixed table; the family
picks the concrete query or RCON class. ``ClientRegistry`` wraps either
factory and hands out one cached client per server, so a Source RCON
connection stays authenticated between calls.
"""

from __future__ import annotations

import logging
import threading

from .defs import ENGINE_FAMILIES, EngineFamily, GameType
from .errors import UnsupportedGameTypeError
from .models import ServerEndpoint
from .query import BaseQueryClient, Quake3QueryClient, SourceQueryClient
from .rcon import BaseRconClient, Quake3RconClient
from .retry import RetrySpec
from .source_rcon import SourceRconClient

logger = logging.getLogger("gsclient.factory")

QUERY_CLIENTS = {
    EngineFamily.QUAKE3: Quake3QueryClient,
    EngineFamily.SOURCE: SourceQueryClient,
}

RCON_CLIENTS = {
    EngineFamily.QUAKE3: Quake3RconClient,
    EngineFamily.SOURCE: SourceRconClient,
}


def resolve_game_type(game_type) -> tuple[GameType, EngineFamily]:
    """Map a game type (member, name or short name) to its engine family."""
    parsed = GameType.parse(game_type)
    family = ENGINE_FAMILIES.get(parsed)
    if family is None:
        raise UnsupportedGameTypeError(f"Unsupported game type: {game_type}")
    return parsed, family


class QueryClientFactory:
    def create_instance(self, game_type, hostname: str, query_port: int) -> BaseQueryClient:
        _, family = resolve_game_type(game_type)
        client = QUERY_CLIENTS[family]()
        return client.configure(hostname, query_port)

    def create_for(self, endpoint: ServerEndpoint) -> BaseQueryClient:
        return self.create_instance(endpoint.game_type, endpoint.hostname, endpoint.query_port)


class RconClientFactory:
    def __init__(self, retry_override: RetrySpec | None = None, cancel: threading.Event | None = None):
        self.retry_override = retry_override
        self.cancel = cancel

    def create_instance(
        self,
        game_type,
        server_id,
        hostname: str,
        query_port: int,
        rcon_password: str,
        retry_override: RetrySpec | None = None,
    ) -> BaseRconClient:
        parsed, family = resolve_game_type(game_type)
        client = RCON_CLIENTS[family](parsed)
        return client.configure(
            server_id,
            hostname,
            query_port,
            rcon_password,
            retry_override=retry_override or self.retry_override,
            cancel=self.cancel,
        )

    def create_for(self, endpoint: ServerEndpoint) -> BaseRconClient:
        return self.create_instance(
            endpoint.game_type,
            endpoint.server_id,
            endpoint.hostname,
            endpoint.query_port,
            endpoint.rcon_password,
        )


class ClientRegistry:
    """
    Process-wide cache of clients keyed by server identity.

    The identity is the server id when one is known, otherwise
    ``hostname:port``. Lookups and inserts happen under one lock so
    concurrent callers never build two clients for the same server.
    """

    def __init__(self, factory):
        self.factory = factory
        self._clients: dict[str, object] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, key: str) -> bool:
        return key in self._clients

    def get(self, endpoint: ServerEndpoint):
        key = endpoint.key
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                client = self.factory.create_for(endpoint)
                self._clients[key] = client
                logger.debug(f"Created {type(client).__name__} for {key}")
            return client

    def create_instance(self, game_type, hostname: str, query_port: int,
                        rcon_password: str = "", server_id=None):
        endpoint = ServerEndpoint(
            game_type=GameType.parse(game_type),
            hostname=hostname,
            query_port=int(query_port),
            rcon_password=rcon_password,
            server_id=server_id,
        )
        if endpoint.game_type not in ENGINE_FAMILIES:
            raise UnsupportedGameTypeError(f"Unsupported game type: {game_type}")
        return self.get(endpoint)

    def evict(self, key: str):
        with self._lock:
            client = self._clients.pop(key, None)
        if client is not None and hasattr(client, "close"):
            client.close()

    def close_all(self):
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            if hasattr(client, "close"):
                client.close()
        logger.info(f"Closed {len(clients)} cached client(s)")

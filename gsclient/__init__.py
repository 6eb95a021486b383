"""Query and RCON clients for Quake3-derived and Source game servers."""

from .defs import EngineFamily, GameType
from .errors import (
    CommandCancelledError,
    GameServerError,
    PacketError,
    QueryError,
    RconAuthError,
    RconError,
    UnsupportedGameTypeError,
)
from .factory import ClientRegistry, QueryClientFactory, RconClientFactory
from .models import (
    GameServerPlayer,
    GameServerStatus,
    QueryPlayer,
    QueryResponse,
    RconPlayer,
    ServerEndpoint,
    normalize_name,
)
from .retry import RetrySpec
from .status import GameServerStatusHelper, StatusHelperRegistry, merge_status

__all__ = [
    "GameType",
    "EngineFamily",
    "GameServerError",
    "UnsupportedGameTypeError",
    "QueryError",
    "RconError",
    "RconAuthError",
    "PacketError",
    "CommandCancelledError",
    "QueryClientFactory",
    "RconClientFactory",
    "ClientRegistry",
    "ServerEndpoint",
    "QueryPlayer",
    "QueryResponse",
    "RconPlayer",
    "GameServerPlayer",
    "GameServerStatus",
    "normalize_name",
    "RetrySpec",
    "GameServerStatusHelper",
    "StatusHelperRegistry",
    "merge_status",
]

"""
Data model shared by the query clients, RCON clients and the status aggregator.

Query and RCON protocols share no player identifier, so players from both
sides are compared through ``normalize_name``.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import asdict, dataclass, field
from typing import Optional

from .defs import GameType

COLOUR_CODE_RE = re.compile(r"\^[0-9]")
CLAN_TAG_RE = re.compile(r"^\[.*?\]")


def normalize_name(name: str) -> str:
    """Canonical form of a player name used to match query and RCON rows."""
    text = unicodedata.normalize("NFKC", name or "")
    text = COLOUR_CODE_RE.sub("", text).casefold().strip()
    if text.startswith("["):
        text = CLAN_TAG_RE.sub("", text, count=1)
    return text.strip()


@dataclass(frozen=True)
class ServerEndpoint:
    """One physical game server."""
    game_type: GameType
    hostname: str
    query_port: int
    rcon_password: str = ""
    server_id: Optional[str] = None

    @property
    def key(self) -> str:
        return self.server_id or f"{self.hostname}:{self.query_port}"


@dataclass
class QueryPlayer:
    name: str
    score: int = 0
    ping: int = 0
    duration: float = 0.0  # seconds connected (Source only)

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)


@dataclass
class QueryResponse:
    server_name: str = ""
    map: str = ""
    mod: str = ""
    max_players: int = 0
    player_count: int = 0
    params: dict[str, str] = field(default_factory=dict)
    players: list[QueryPlayer] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RconPlayer:
    slot_num: str
    guid: str
    name: str
    ip_address: str
    ping: str = ""
    rate: str = ""
    score: str = ""
    qport: str = ""

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GameServerPlayer:
    """A query roster entry, enriched with RCON details when a name matched."""
    name: str
    score: int = 0
    ping: int = 0
    num: str = ""
    guid: str = ""
    ip_address: str = ""
    rate: str = ""
    normalized_name: str = ""
    rcon_player: Optional[RconPlayer] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_query(cls, player: QueryPlayer) -> "GameServerPlayer":
        return cls(
            name=player.name,
            score=player.score,
            ping=player.ping,
            normalized_name=player.normalized_name,
        )

    def attach(self, rcon_player: RconPlayer):
        self.rcon_player = rcon_player
        self.num = rcon_player.slot_num
        self.guid = rcon_player.guid
        self.ip_address = rcon_player.ip_address
        self.rate = rcon_player.rate


@dataclass
class GameServerStatus:
    server_id: Optional[str] = None
    game_type: GameType = GameType.Unknown
    hostname: str = ""
    query_port: int = 0
    server_name: str = ""
    map: str = ""
    mod: str = ""
    player_count: int = 0
    max_players: int = 0
    players: list[GameServerPlayer] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "server_id": self.server_id,
            "game_type": self.game_type.name,
            "hostname": self.hostname,
            "query_port": self.query_port,
            "server_name": self.server_name,
            "map": self.map,
            "mod": self.mod,
            "player_count": self.player_count,
            "max_players": self.max_players,
            "players": [
                {
                    "num": p.num,
                    "guid": p.guid,
                    "name": p.name,
                    "ip_address": p.ip_address,
                    "score": p.score,
                    "ping": p.ping,
                    "rate": p.rate,
                    "normalized_name": p.normalized_name,
                }
                for p in self.players
            ],
        }

"""Request and response schemas for the servers API."""

from typing import Optional

from pydantic import BaseModel, Field


class ServerInfo(BaseModel):
    id: str
    game_type: str
    host: str
    port: int
    rcon_enabled: bool


class QueryPlayerResponse(BaseModel):
    name: str
    score: int
    ping: int = 0
    duration: float = 0.0


class QueryStatusResponse(BaseModel):
    server_name: str
    map: str
    mod: str
    max_players: int
    player_count: int
    players: list[QueryPlayerResponse]


class RconPlayerResponse(BaseModel):
    num: str
    guid: str
    name: str
    ip_address: str
    ping: str = ""
    rate: str = ""


class ServerPlayerResponse(BaseModel):
    num: str = ""
    guid: str = ""
    name: str
    ip_address: str = ""
    score: int = 0
    ping: int = 0
    rate: str = ""
    normalized_name: str = ""


class ServerStatusResponse(BaseModel):
    server_id: Optional[str]
    game_type: str
    hostname: str
    query_port: int
    server_name: str
    map: str
    mod: str
    player_count: int
    max_players: int
    players: list[ServerPlayerResponse]


class SayRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=512)


class SlotRequest(BaseModel):
    slot: int = Field(..., ge=0)


class CommandResult(BaseModel):
    result: str

"""Exceptions raised by the query and RCON clients."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class GameServerError(Exception):
    message: str
    server: str | None = None

    def __str__(self) -> str:
        if self.server is None:
            return self.message
        return f"[{self.server}] {self.message}"


class UnsupportedGameTypeError(GameServerError, ValueError):
    pass


class QueryError(GameServerError):
    pass


class RconError(GameServerError):
    pass


class RconAuthError(RconError):
    pass


class PacketError(GameServerError):
    pass


class CommandCancelledError(GameServerError):
    pass

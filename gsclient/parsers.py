"""
Parsers turning raw server replies into model objects.

Quake3 engines answer in text (``getstatus`` replies and RCON ``status``
tables), Source engines answer A2S queries with little-endian binary
structures. Every parser here is pure: bytes or text in, rows out.
"""

import logging
import re
import struct

from .defs import (
    A2S_INFO_RESPONSE, A2S_PLAYER_RESPONSE, OOB_PREFIX, STATUS_HEADER_LINES,
    GameType,
)
from .errors import QueryError
from .models import QueryPlayer, QueryResponse, RconPlayer

logger = logging.getLogger("gsclient.parsers")

# Quake3 engines speak single-byte text; latin-1 keeps one char per byte
QUAKE3_ENCODING = "latin-1"

QUAKE3_PLAYER_RE = re.compile(r'^\s*(?P<score>-?[0-9]+)\s+(?P<ping>[0-9]+)\s+"(?P<name>.*)"\s*$')

_IP = (
    r"((?:(?:25[0-5]|2[0-4][0-9]|1[0-9][0-9]|[1-9]?[0-9])\.){3}"
    r"(?:25[0-5]|2[0-4][0-9]|1[0-9][0-9]|[1-9]?[0-9]))"
)

# num score ping guid name lastmsg ip:port qport rate
COD2_STATUS_RE = re.compile(
    r"^\s*([0-9]+)\s+([0-9-]+)\s+([0-9]+)\s+([0-9]+)\s+(.*?)\s+([0-9]+?)\s*"
    + _IP + r":?(-?[0-9]{1,5})\s*(-?[0-9]{1,5})\s+([0-9]+)$"
)
COD4_STATUS_RE = re.compile(
    r"^\s*([0-9]+)\s+([0-9-]+)\s+([0-9]+)\s+([0-9a-f]{32})\s+(.*?)\s+([0-9]+?)\s*"
    + _IP + r":?(-?[0-9]{1,5})\s*(-?[0-9]{1,5})\s+([0-9]+)$"
)
COD5_STATUS_RE = COD2_STATUS_RE

# # userid ? "name" uniqueid connected ping loss state rate adr
SOURCE_STATUS_RE = re.compile(
    r'^\#\s([0-9]+)\s([0-9]+)\s"(.+)"\s([STEAM0-9:_]+)\s+([0-9:]+)\s([0-9]+)\s([0-9]+)'
    r"\s([a-z]+)\s([0-9]+)\s" + _IP + r":?(-?[0-9]{1,5})"
)

STATUS_REGEXES = {
    GameType.CallOfDuty2: COD2_STATUS_RE,
    GameType.CallOfDuty4: COD4_STATUS_RE,
    GameType.CallOfDuty5: COD5_STATUS_RE,
    GameType.Insurgency: SOURCE_STATUS_RE,
}


# --- Binary helpers ---

def unpack_byte(data: bytes):
    return data[0], data[1:]


def unpack_short(data: bytes):
    return struct.unpack("<h", data[:2])[0], data[2:]


def unpack_long(data: bytes):
    return struct.unpack("<l", data[:4])[0], data[4:]


def unpack_float(data: bytes):
    return struct.unpack("<f", data[:4])[0], data[4:]


def unpack_string(data: bytes):
    text, sep, rest = data.partition(b"\x00")
    if not sep:
        raise ValueError("unterminated string")
    return text.decode("utf-8", errors="replace"), rest


def _to_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# --- Quake3 text ---

def parse_quake3_params(line: str) -> dict[str, str]:
    """Parse a ``\\key\\value\\key\\value`` server info line."""
    params = {}
    parts = line.split("\\")
    i = 0
    while i < len(parts):
        key = parts[i]
        if not key:
            i += 1
            continue
        value = parts[i + 1] if i + 1 < len(parts) else ""
        i += 2
        if key == "final":
            break
        if key == "querid":
            continue
        params[key] = value
    return params


def parse_quake3_player(line: str):
    match = QUAKE3_PLAYER_RE.match(line)
    if not match:
        return None
    return QueryPlayer(
        name=match.group("name"),
        score=int(match.group("score")),
        ping=int(match.group("ping")),
    )


def parse_quake3_status(data) -> QueryResponse:
    """
    Parse a ``getstatus`` reply.

    Line 0 echoes the request, line 1 holds the server params and every
    following line is one ``score ping "name"`` player row.
    """
    if isinstance(data, bytes):
        if data.startswith(OOB_PREFIX):
            data = data[len(OOB_PREFIX):]
        data = data.decode(QUAKE3_ENCODING)
    text = data.replace("\x00", "")

    lines = text.split("\n")
    if len(lines) < 2:
        raise QueryError(f"Malformed status reply: {len(lines)} line(s)")

    params = parse_quake3_params(lines[1])
    players = []
    for line in lines[2:]:
        if not line.strip():
            continue
        player = parse_quake3_player(line)
        if player is None:
            logger.debug(f"Skipping unparsable player row: {line!r}")
            continue
        players.append(player)

    return QueryResponse(
        server_name=params.get("sv_hostname", ""),
        map=params.get("mapname", ""),
        mod=params.get("fs_game", ""),
        max_players=_to_int(params.get("sv_maxclients")),
        player_count=len(players),
        params=params,
        players=players,
    )


def strip_print_header(text: str) -> str:
    """Drop the ``\\xff\\xff\\xff\\xffprint\\n`` framing of an RCON reply datagram."""
    if text.find("print") == 4:
        return text[10:]
    return text


# --- Source A2S binary ---

def parse_info(data: bytes) -> dict[str, str]:
    """Parse an A2S_INFO reply (OOB prefix included) into string params."""
    if len(data) < 6 or data[4] != A2S_INFO_RESPONSE:
        raise QueryError("Not an A2S_INFO reply")

    raw = data[5:]
    try:
        protocol, raw = unpack_byte(raw)
        hostname, raw = unpack_string(raw)
        mapname, raw = unpack_string(raw)
        folder, raw = unpack_string(raw)
        game, raw = unpack_string(raw)
        appid, raw = unpack_short(raw)
        numplayers, raw = unpack_byte(raw)
        maxplayers, raw = unpack_byte(raw)
        bots, raw = unpack_byte(raw)
        servertype, raw = unpack_byte(raw)
        serveros, raw = unpack_byte(raw)
        passworded, raw = unpack_byte(raw)
        secure, raw = unpack_byte(raw)
        version, raw = unpack_string(raw)
    except (IndexError, ValueError, struct.error) as e:
        raise QueryError(f"Truncated A2S_INFO reply: {e}") from e

    return {
        "protocolver": str(protocol),
        "hostname": hostname,
        "mapname": mapname,
        "mod": folder,
        "modname": game,
        "appid": str(appid),
        "numplayers": str(numplayers),
        "maxplayers": str(maxplayers),
        "botcount": str(bots),
        "servertype": chr(servertype),
        "serveros": chr(serveros),
        "passworded": str(passworded),
        "secureserver": str(secure),
        "version": version,
    }


def parse_challenge(data: bytes) -> bytes:
    """The 4-byte challenge token carried at bytes 5..9 of a challenge reply."""
    if len(data) < 9:
        raise QueryError(f"Challenge reply too short ({len(data)} bytes)")
    return data[5:9]


def parse_players(data: bytes) -> list[QueryPlayer]:
    """Parse an A2S_PLAYER reply (OOB prefix included)."""
    if len(data) < 6 or data[4] != A2S_PLAYER_RESPONSE:
        raise QueryError("Not an A2S_PLAYER reply")

    count = data[5]
    raw = data[6:]
    players = []
    for _ in range(count):
        try:
            _index, raw = unpack_byte(raw)
            name, raw = unpack_string(raw)
            score, raw = unpack_long(raw)
            duration, raw = unpack_float(raw)
        except (IndexError, ValueError, struct.error):
            logger.warning(f"A2S_PLAYER reply truncated after {len(players)} of {count} players")
            break
        players.append(QueryPlayer(name=name, score=score, duration=duration))
    return players


def query_response_from_info(params: dict[str, str], players: list[QueryPlayer]) -> QueryResponse:
    return QueryResponse(
        server_name=params.get("hostname", ""),
        map=params.get("mapname", ""),
        mod=params.get("mod", ""),
        max_players=_to_int(params.get("maxplayers")),
        player_count=_to_int(params.get("numplayers")),
        params=params,
        players=players,
    )


# --- RCON status tables ---

def parse_rcon_players(game_type: GameType, text: str) -> list[RconPlayer]:
    """
    Parse the output of the ``status`` console command.

    Blank lines are ignored, the first three lines are headers and rows the
    engine regex does not match are dropped.
    """
    regex = STATUS_REGEXES.get(game_type)
    if regex is None:
        raise ValueError(f"No status grammar for {game_type.name}")

    lines = [line.rstrip() for line in text.split("\n") if line.strip()]
    players = []
    for line in lines[STATUS_HEADER_LINES:]:
        match = regex.match(line)
        if not match:
            continue
        if regex is SOURCE_STATUS_RE:
            players.append(RconPlayer(
                slot_num=match.group(1),
                name=match.group(3),
                guid=match.group(4),
                ping=match.group(6),
                rate=match.group(9),
                ip_address=match.group(10),
            ))
        else:
            players.append(RconPlayer(
                slot_num=match.group(1),
                score=match.group(2),
                ping=match.group(3),
                guid=match.group(4),
                name=match.group(5).strip(),
                ip_address=match.group(7),
                qport=match.group(9),
                rate=match.group(10),
            ))
    return players

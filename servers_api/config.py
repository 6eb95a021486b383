"""
Game server list and service settings, read from the environment.
"""

import json
import logging
import os

from gsclient import GameType, ServerEndpoint

logger = logging.getLogger("servers_api.config")

SERVICE_SECRET = os.environ.get("SERVICE_SECRET", "")
STATUS_POLL_INTERVAL = float(os.environ.get("STATUS_POLL_INTERVAL", "60"))
# snapshots older than this are refreshed live by the status endpoint
STATUS_MAX_AGE = float(os.environ.get("STATUS_MAX_AGE", str(STATUS_POLL_INTERVAL * 2)))


def _load_server_list() -> list[dict]:
    """Load game server list from GAME_SERVERS env var (JSON array)."""
    raw = os.environ.get("GAME_SERVERS", "")
    if raw:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid GAME_SERVERS JSON, using defaults")

    # Fallback: single server from legacy env vars
    return [{
        "id": "server-1",
        "game_type": os.environ.get("GAME_SERVER_TYPE", "CallOfDuty4"),
        "host": os.environ.get("GAME_SERVER_HOST", "localhost"),
        "port": int(os.environ.get("GAME_SERVER_PORT", "28960")),
        "rcon_password": os.environ.get("RCON_PASSWORD", ""),
    }]


def load_servers(entries: list[dict] | None = None) -> dict[str, ServerEndpoint]:
    """Build endpoints keyed by server id; malformed entries are skipped."""
    if entries is None:
        entries = _load_server_list()

    servers = {}
    for entry in entries:
        try:
            endpoint = ServerEndpoint(
                game_type=GameType.parse(entry["game_type"]),
                hostname=entry["host"],
                query_port=int(entry["port"]),
                rcon_password=entry.get("rcon_password", ""),
                server_id=str(entry["id"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed server entry {entry!r}: {e}")
            continue
        if endpoint.game_type is GameType.Unknown:
            logger.warning(f"Server {endpoint.server_id} has unknown game type {entry['game_type']!r}")
        servers[endpoint.server_id] = endpoint
    return servers

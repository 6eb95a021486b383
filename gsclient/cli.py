#!/usr/bin/env python3
"""
Command line runner for the game server clients.

Usage:
    gsclient query --game-type COD4 --host 203.0.113.5 --port 28960
    gsclient players --game-type INS --host 203.0.113.9 --port 27015 --password secret
    gsclient rcon --game-type COD4 --host 203.0.113.5 --port 28960 --password secret say "hello"
    gsclient status --game-type COD4 --host 203.0.113.5 --port 28960 --password secret

Results are printed as JSON on stdout.
"""

import argparse
import json
import logging
import sys

from .errors import GameServerError, UnsupportedGameTypeError
from .factory import QueryClientFactory, RconClientFactory
from .models import ServerEndpoint
from .defs import GameType
from .retry import RetrySpec
from .status import GameServerStatusHelper

logger = logging.getLogger("gsclient.cli")

# rcon sub-command -> (client method, takes an argument)
RCON_COMMANDS = {
    "status": ("player_status", False),
    "kick": ("kick_player", True),
    "ban": ("ban_player", True),
    "say": ("say", True),
    "restart": ("restart_server", False),
    "restart-map": ("restart_map", False),
    "fast-restart": ("fast_restart_map", False),
    "next-map": ("next_map", False),
    "map-rotation": ("map_rotation", False),
}


def _add_server_args(parser, password_required=False):
    parser.add_argument("--game-type", required=True,
                        help="Game type name or short name (CallOfDuty4, COD4, INS, ...)")
    parser.add_argument("--host", required=True, help="Server hostname or IP")
    parser.add_argument("--port", type=int, required=True, help="Query port")
    parser.add_argument("--password", required=password_required, default="",
                        help="RCON password")
    parser.add_argument("--server-id", default=None, help="Label used in log lines")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gsclient", description="Game server query and RCON client")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--no-retry", action="store_true",
                        help="Run UDP RCON commands once without the backoff schedule")
    sub = parser.add_subparsers(dest="action", required=True)

    _add_server_args(sub.add_parser("query", help="Query server info and players"))
    _add_server_args(sub.add_parser("players", help="List players via RCON status"), password_required=True)
    rcon = sub.add_parser("rcon", help="Run an RCON command")
    _add_server_args(rcon, password_required=True)
    rcon.add_argument("command", choices=sorted(RCON_COMMANDS))
    rcon.add_argument("args", nargs="*", help="Slot number or message")
    _add_server_args(sub.add_parser("status", help="Query view merged with RCON details"))
    return parser


def _rcon_client(args):
    retry = RetrySpec.none() if args.no_retry else None
    return RconClientFactory(retry_override=retry).create_instance(
        args.game_type, args.server_id, args.host, args.port, args.password,
    )


def run(args) -> object:
    if args.action == "query":
        client = QueryClientFactory().create_instance(args.game_type, args.host, args.port)
        return client.get_server_status().to_dict()

    if args.action == "status":
        query_client = QueryClientFactory().create_instance(args.game_type, args.host, args.port)
        rcon_client = _rcon_client(args) if args.password else None
        endpoint = ServerEndpoint(
            game_type=GameType.parse(args.game_type),
            hostname=args.host,
            query_port=args.port,
            rcon_password=args.password,
            server_id=args.server_id,
        )
        try:
            return GameServerStatusHelper(endpoint, query_client, rcon_client).get_server_status().to_dict()
        finally:
            if rcon_client is not None:
                rcon_client.close()

    client = _rcon_client(args)
    try:
        if args.action == "players":
            return [p.to_dict() for p in client.get_players()]

        method, takes_arg = RCON_COMMANDS[args.command]
        if takes_arg:
            if not args.args:
                raise SystemExit(f"rcon {args.command} needs an argument")
            return {"result": getattr(client, method)(" ".join(args.args))}
        return {"result": getattr(client, method)()}
    finally:
        client.close()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s',
    )

    try:
        result = run(args)
    except UnsupportedGameTypeError as e:
        logger.error(str(e))
        return 2
    except (GameServerError, OSError) as e:
        logger.error(f"Request failed: {e}")
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == '__main__':
    sys.exit(main())

"""
RCON clients: the shared command surface plus the Quake3/CoD UDP client.

Every engine receives the same fixed console verbs; the concrete client
decides how a command reaches the server. Quake3-derived engines take
``rcon <password> <command>`` in a connectionless datagram and answer with
one or more ``print`` datagrams.
"""

from __future__ import annotations

import logging
import socket
import threading
import time

from .defs import (
    OOB_PREFIX, RCON_SETTLE_DELAY, RCON_TIMEOUT, EngineFamily, GameType,
)
from .models import RconPlayer
from .parsers import QUAKE3_ENCODING, parse_rcon_players, strip_print_header
from .query import data_available
from .retry import RetrySpec, call_with_retry

logger = logging.getLogger("gsclient.rcon")

RECV_SIZE = 65536
RESTART_ACK = "Restart command sent to the server"


class BaseRconClient:
    engine: EngineFamily = None

    def __init__(self, game_type: GameType):
        self.game_type = game_type
        self.server_id = None
        self.hostname = None
        self.query_port = 0
        self.rcon_password = ""
        self.retry_spec: RetrySpec | None = None
        self.cancel: threading.Event | None = None

    def configure(
        self,
        server_id,
        hostname: str,
        query_port: int,
        rcon_password: str,
        retry_override: RetrySpec | None = None,
        cancel: threading.Event | None = None,
    ):
        if not hostname or not hostname.strip():
            raise ValueError("hostname is required")
        if not query_port:
            raise ValueError("query_port is required")
        self.server_id = server_id
        self.hostname = hostname
        self.query_port = int(query_port)
        self.rcon_password = rcon_password or ""
        self.retry_spec = retry_override
        self.cancel = cancel
        return self

    @property
    def label(self) -> str:
        return str(self.server_id) if self.server_id is not None else f"{self.hostname}:{self.query_port}"

    def execute(self, command: str) -> str:
        raise NotImplementedError

    def close(self):
        pass

    # --- Command surface ---

    def player_status(self) -> str:
        return self.execute("status")

    def kick_player(self, slot) -> str:
        logger.debug(f"[{self.label}] Kicking slot {slot}")
        return self.execute(f"clientkick {slot}")

    def ban_player(self, slot) -> str:
        logger.debug(f"[{self.label}] Banning slot {slot}")
        return self.execute(f"banclient {slot}")

    def restart_server(self) -> str:
        logger.debug(f"[{self.label}] Restarting server")
        return self.execute("quit")

    def restart_map(self) -> str:
        return self.execute("map_restart")

    def fast_restart_map(self) -> str:
        return self.execute("fast_restart")

    def next_map(self) -> str:
        return self.execute("map_rotate")

    def map_rotation(self) -> str:
        return self.execute("sv_maprotation")

    def say(self, message: str) -> str:
        logger.debug(f"[{self.label}] Sending '{message}' to the server")
        return self.execute(f'say "{message}"')

    def get_players(self) -> list[RconPlayer]:
        players = parse_rcon_players(self.game_type, self.player_status())
        logger.debug(f"[{self.label}] Parsed {len(players)} players from status")
        return players


class Quake3RconClient(BaseRconClient):
    """Connectionless RCON for CoD2/CoD4/CoD5; every command is retried."""

    engine = EngineFamily.QUAKE3

    def __init__(self, game_type: GameType, timeout: float = RCON_TIMEOUT,
                 settle_delay: float = RCON_SETTLE_DELAY):
        super().__init__(game_type)
        self.timeout = timeout
        self.settle_delay = settle_delay

    def _build_packet(self, command: str) -> bytes:
        # characters outside latin-1 become "?" rather than failing the send
        text = f"rcon {self.rcon_password} {command}"
        return OOB_PREFIX + text.encode(QUAKE3_ENCODING, errors="replace")

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.settimeout(self.timeout)
        sock.connect((self.hostname, self.query_port))
        return sock

    def _execute_command_internal(self, packet: bytes, skip_receive: bool = False) -> str:
        sock = self._open_socket()
        try:
            sock.send(packet)
            if skip_receive:
                return ""

            datagrams = []
            while True:
                datagrams.append(sock.recv(RECV_SIZE))
                if not data_available(sock):
                    # slow engines queue the next datagram late
                    time.sleep(self.settle_delay)
                if not data_available(sock):
                    break
        except OSError as e:
            logger.error(f"[{self.label}] Failed to execute rcon command: {e}")
            raise
        finally:
            sock.close()

        logger.debug(f"[{self.label}] rcon command returned {len(datagrams)} datagram(s)")
        text = "".join(strip_print_header(d.decode(QUAKE3_ENCODING)) for d in datagrams)
        return text.replace("\x00", "")

    def _with_retry(self, command: str, skip_receive: bool = False) -> str:
        spec = self.retry_spec or RetrySpec.default()
        packet = self._build_packet(command)
        return call_with_retry(
            lambda: self._execute_command_internal(packet, skip_receive),
            spec,
            server=self.label,
            cancel=self.cancel,
        )

    def execute(self, command: str) -> str:
        return self._with_retry(command)

    def restart_server(self) -> str:
        # the server goes down before it can answer
        logger.debug(f"[{self.label}] Restarting server")
        self._with_retry("quit", skip_receive=True)
        return RESTART_ACK

"""
Source engine RCON over a persistent TCP connection.

One connection per client, authenticated once and kept open. A single
reader thread owns the socket's receive side: it reassembles
length-prefixed packets and hands each decoded packet to ``_dispatch``.
Commands are serialized. A long reply arrives as several RESPONSE_VALUE
packets carrying the command's id, so every command is followed by an empty
marker packet: the server answers it only after the last packet of the
command's reply.
"""

from __future__ import annotations

import itertools
import logging
import socket
import threading
import time
from contextlib import suppress
from dataclasses import dataclass, field

from .defs import (
    SOURCE_RCON_AUTH_FAILED_ID, SOURCE_RCON_AUTH_REQUEST_ID,
    SOURCE_RCON_CONNECT_TIMEOUT, SOURCE_RCON_FIRST_COMMAND_ID,
    SOURCE_RCON_POLL_INTERVAL, SOURCE_RCON_RESPONSE_TIMEOUT, EngineFamily,
    GameType,
)
from .errors import (
    CommandCancelledError, GameServerError, PacketError, RconAuthError,
    RconError,
)
from .packet import LENGTH_FIELD, MIN_PAYLOAD_SIZE, RconPacket, decode_payload, read_packet_length
from .rcon import BaseRconClient

logger = logging.getLogger("gsclient.source_rcon")

MAX_PACKET_SIZE = 1 << 20


@dataclass
class ConnectionState:
    """Progress of the packet currently being reassembled by the reader."""
    is_packet_length: bool = True
    packet_length: int = LENGTH_FIELD.size
    bytes_so_far: int = 0
    data: bytearray = field(default_factory=bytearray)
    packet_count: int = 0

    @property
    def remaining(self) -> int:
        return self.packet_length - self.bytes_so_far

    def expect(self, length: int, is_packet_length: bool):
        self.is_packet_length = is_packet_length
        self.packet_length = length
        self.bytes_so_far = 0
        self.data = bytearray()


@dataclass
class PendingReply:
    """Packets collected for one command until its marker is echoed back."""
    marker_id: int
    parts: list[str] = field(default_factory=list)
    complete: bool = False

    @property
    def text(self) -> str:
        return "".join(self.parts)


class SourceRconClient(BaseRconClient):
    engine = EngineFamily.SOURCE

    def __init__(
        self,
        game_type: GameType,
        connect_timeout: float = SOURCE_RCON_CONNECT_TIMEOUT,
        response_timeout: float = SOURCE_RCON_RESPONSE_TIMEOUT,
        poll_interval: float = SOURCE_RCON_POLL_INTERVAL,
    ):
        super().__init__(game_type)
        self.connect_timeout = connect_timeout
        self.response_timeout = response_timeout
        self.poll_interval = poll_interval

        self._sock = None
        self._reader = None
        self._authenticated = False
        self._auth_replied = threading.Event()
        self._command_lock = threading.RLock()
        self._results_lock = threading.Lock()
        self._pending: dict[int, PendingReply] = {}
        # marker id -> command id
        self._markers: dict[int, int] = {}
        self._ids = itertools.count(SOURCE_RCON_FIRST_COMMAND_ID)

    @property
    def connected(self) -> bool:
        return self._sock is not None and self._authenticated

    # --- Connection lifecycle ---

    def _open_socket(self) -> socket.socket:
        return socket.create_connection((self.hostname, self.query_port), timeout=self.connect_timeout)

    def connect(self) -> bool:
        with self._command_lock:
            if self.connected:
                return True
            self._teardown()

            logger.info(f"[{self.label}] Connecting to {self.hostname}:{self.query_port}")
            sock = self._open_socket()
            sock.settimeout(None)
            self._sock = sock
            self._authenticated = False
            self._auth_replied.clear()
            self._ids = itertools.count(SOURCE_RCON_FIRST_COMMAND_ID)

            self._reader = threading.Thread(
                target=self._read_loop,
                args=(sock,),
                name=f"source-rcon-{self.label}",
                daemon=True,
            )
            self._reader.start()

            try:
                self._send(RconPacket.auth(SOURCE_RCON_AUTH_REQUEST_ID, self.rcon_password))
                self._wait_until(self._auth_replied.is_set, "auth response")
            except (OSError, GameServerError):
                self._teardown()
                raise
            if self._sock is None:
                raise RconError("Connection closed during authentication", server=self.label)
            if not self._authenticated:
                self._teardown()
                raise RconAuthError("RCON authentication rejected", server=self.label)

            logger.info(f"[{self.label}] Authenticated")
            return True

    def close(self):
        with self._command_lock:
            if self._sock is not None:
                logger.info(f"[{self.label}] Closing RCON connection")
            self._teardown()

    def _teardown(self):
        sock, self._sock = self._sock, None
        self._authenticated = False
        if sock is not None:
            with suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            sock.close()
        reader, self._reader = self._reader, None
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=1.0)

    def _send(self, packet: RconPacket):
        sock = self._sock
        if sock is None:
            raise RconError("Not connected", server=self.label)
        logger.debug(f"[{self.label}] -> id={packet.request_id} type={packet.type}")
        sock.sendall(packet.encode())

    # --- Reader loop ---

    def _fill(self, sock, state: ConnectionState):
        while state.remaining > 0:
            chunk = sock.recv(state.remaining)
            if not chunk:
                raise ConnectionError("Connection closed by server")
            state.data += chunk
            state.bytes_so_far += len(chunk)

    def _read_loop(self, sock):
        state = ConnectionState()
        try:
            while True:
                self._fill(sock, state)
                if state.is_packet_length:
                    length = read_packet_length(bytes(state.data))
                    if not MIN_PAYLOAD_SIZE <= length <= MAX_PACKET_SIZE:
                        raise PacketError(f"Invalid packet length {length}", server=self.label)
                    state.expect(length, is_packet_length=False)
                    continue

                packet = decode_payload(bytes(state.data))
                state.packet_count += 1
                self._dispatch(packet)
                state.expect(LENGTH_FIELD.size, is_packet_length=True)
        except (OSError, PacketError) as e:
            if sock is self._sock:
                logger.error(f"[{self.label}] RCON reader stopped after {state.packet_count} packet(s): {e}")
        finally:
            if sock is self._sock:
                self._authenticated = False
                self._sock = None
                sock.close()
            self._auth_replied.set()

    def _dispatch(self, packet: RconPacket):
        logger.debug(f"[{self.label}] <- id={packet.request_id} type={packet.type} ({len(packet.body1)} chars)")
        if packet.is_auth_response:
            if packet.request_id == SOURCE_RCON_AUTH_FAILED_ID:
                logger.error(f"[{self.label}] RCON authentication failed")
                self._authenticated = False
            else:
                self._authenticated = True
            self._auth_replied.set()
        elif packet.is_response_value:
            with self._results_lock:
                pending = self._pending.get(packet.request_id)
                if pending is not None and not pending.complete:
                    pending.parts.append(packet.body1)
                    return
                command_id = self._markers.get(packet.request_id)
                if command_id is not None:
                    # servers answer the marker twice; the second echo is a no-op
                    self._pending[command_id].complete = True
                    return
            logger.debug(f"[{self.label}] Ignoring unsolicited response id={packet.request_id}")
        else:
            logger.warning(f"[{self.label}] Unknown packet type {packet.type} id={packet.request_id}")

    # --- Commands ---

    def _pause(self):
        if self.cancel is None:
            time.sleep(self.poll_interval)
        elif self.cancel.wait(self.poll_interval):
            raise CommandCancelledError("Cancelled while waiting for a response", server=self.label)

    def _wait_until(self, predicate, what: str):
        deadline = time.monotonic() + self.response_timeout
        while not predicate():
            if time.monotonic() >= deadline:
                raise RconError(f"Timed out waiting for {what}", server=self.label)
            self._pause()

    def _poll_result(self, request_id: int) -> str:
        pending = self._pending[request_id]

        def ready():
            if self._sock is None:
                raise RconError("Connection lost", server=self.label)
            return pending.complete

        self._wait_until(ready, f"response to request {request_id}")
        with self._results_lock:
            logger.debug(f"[{self.label}] Request {request_id} answered in {len(pending.parts)} packet(s)")
            return pending.text

    def execute(self, command: str) -> str:
        verb = command.split(" ", 1)[0]
        with self._command_lock:
            try:
                self.connect()
                request_id = next(self._ids)
                marker_id = next(self._ids)
                with self._results_lock:
                    self._pending[request_id] = PendingReply(marker_id)
                    self._markers[marker_id] = request_id
                try:
                    self._send(RconPacket.command(request_id, command))
                    self._send(RconPacket.response_marker(marker_id))
                    return self._poll_result(request_id)
                finally:
                    with self._results_lock:
                        self._pending.pop(request_id, None)
                        self._markers.pop(marker_id, None)
            except CommandCancelledError:
                logger.warning(f"[{self.label}] {verb} cancelled")
                return ""
            except (OSError, GameServerError) as e:
                logger.error(f"[{self.label}] Failed to execute {verb}: {e}")
                if isinstance(e, OSError):
                    self._teardown()
                return ""

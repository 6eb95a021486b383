"""
Read-only status queries over UDP.

Quake3 engines answer a single ``getstatus`` datagram with a text reply;
Source engines answer the A2S_INFO / A2S_PLAYER binary queries. Each call
opens and closes its own socket, so clients are safe to share.
"""

import logging
import select
import socket
import struct

from .defs import (
    A2S_INFO, A2S_INFO_PAYLOAD, A2S_NO_CHALLENGE, A2S_PLAYER,
    A2S_PLAYER_RESPONSE, EngineFamily, OOB_PREFIX, QUERY_TIMEOUT,
    S2C_CHALLENGE, SOURCE_SPLIT, SOURCE_WHOLE,
)
from .errors import QueryError
from .models import QueryResponse
from .parsers import (
    parse_challenge, parse_info, parse_players, parse_quake3_status,
    query_response_from_info, unpack_byte, unpack_long, unpack_short,
)

logger = logging.getLogger("gsclient.query")

RECV_SIZE = 65536


def data_available(sock) -> bool:
    """True when a datagram is already queued on ``sock``."""
    readable, _, _ = select.select([sock], [], [], 0)
    return bool(readable)


class BaseQueryClient:
    engine: EngineFamily = None

    def __init__(self, timeout: float = QUERY_TIMEOUT):
        self.timeout = timeout
        self.hostname = None
        self.query_port = 0

    def configure(self, hostname: str, query_port: int):
        if not hostname or not hostname.strip():
            raise ValueError("hostname is required")
        if not query_port:
            raise ValueError("query_port is required")
        self.hostname = hostname
        self.query_port = int(query_port)
        return self

    @property
    def address(self) -> str:
        return f"{self.hostname}:{self.query_port}"

    def _open_socket(self) -> socket.socket:
        if self.hostname is None:
            raise QueryError("Client used before configure()")
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.settimeout(self.timeout)
        sock.connect((self.hostname, self.query_port))
        return sock

    def get_server_status(self) -> QueryResponse:
        raise NotImplementedError


class Quake3QueryClient(BaseQueryClient):
    engine = EngineFamily.QUAKE3

    def _query(self, command: str) -> bytes:
        logger.info(f"[{self.address}] Executing {command} query")
        sock = self._open_socket()
        try:
            sock.send(OOB_PREFIX + command.encode("ascii"))
            chunks = [sock.recv(RECV_SIZE)]
            while data_available(sock):
                chunks.append(sock.recv(RECV_SIZE))
        finally:
            sock.close()
        logger.debug(f"[{self.address}] Received {len(chunks)} datagram(s)")
        return b"".join(chunks)

    def get_server_status(self) -> QueryResponse:
        try:
            data = self._query("getstatus")
        except OSError as e:
            logger.error(f"[{self.address}] getstatus failed: {e}")
            raise QueryError(f"getstatus failed: {e}", server=self.address) from e
        response = parse_quake3_status(data)
        logger.debug(f"[{self.address}] {response.player_count} players on {response.map}")
        return response


class SourceQueryClient(BaseQueryClient):
    engine = EngineFamily.SOURCE

    def _receive(self, sock) -> bytes:
        """Receive one reply, reassembling split packets."""
        raw = sock.recv(RECV_SIZE)
        header, body = unpack_long(raw)
        if header == SOURCE_WHOLE:
            return raw
        if header != SOURCE_SPLIT:
            raise QueryError(f"Unknown packet header {header}", server=self.address)

        response_id, body = unpack_long(body)
        if response_id & 0x80000000:
            raise QueryError("Compressed split replies are not supported", server=self.address)
        total, body = unpack_byte(body)
        number, body = unpack_byte(body)
        _size, body = unpack_short(body)
        parts = [None] * total
        parts[number] = body

        while any(part is None for part in parts):
            raw = sock.recv(RECV_SIZE)
            header, body = unpack_long(raw)
            inner_id, body = unpack_long(body)
            if header != SOURCE_SPLIT or inner_id != response_id:
                raise QueryError("Interleaved split reply", server=self.address)
            _total, body = unpack_byte(body)
            number, body = unpack_byte(body)
            _size, body = unpack_short(body)
            parts[number] = body

        combined = b"".join(parts)
        if not combined.startswith(OOB_PREFIX):
            raise QueryError("Reassembled reply lacks a single-packet header", server=self.address)
        return combined

    def _exchange(self, sock, payload: bytes) -> bytes:
        sock.send(payload)
        return self._receive(sock)

    def _query_info(self, sock) -> dict[str, str]:
        request = OOB_PREFIX + A2S_INFO + A2S_INFO_PAYLOAD
        reply = self._exchange(sock, request)
        if len(reply) > 4 and reply[4] == S2C_CHALLENGE:
            reply = self._exchange(sock, request + parse_challenge(reply))
        return parse_info(reply)

    def _query_players(self, sock):
        reply = self._exchange(sock, OOB_PREFIX + A2S_PLAYER + A2S_NO_CHALLENGE)
        if len(reply) > 4 and reply[4] != A2S_PLAYER_RESPONSE:
            challenge = parse_challenge(reply)
            reply = self._exchange(sock, OOB_PREFIX + A2S_PLAYER + challenge)
        return parse_players(reply)

    def get_server_status(self) -> QueryResponse:
        logger.info(f"[{self.address}] Executing A2S_INFO/A2S_PLAYER query")
        try:
            sock = self._open_socket()
            try:
                params = self._query_info(sock)
                players = self._query_players(sock)
            finally:
                sock.close()
        except (OSError, struct.error, IndexError) as e:
            logger.error(f"[{self.address}] A2S query failed: {e}")
            raise QueryError(f"A2S query failed: {e}", server=self.address) from e
        except QueryError as e:
            if e.server is None:
                e.server = self.address
            raise
        return query_response_from_info(params, players)

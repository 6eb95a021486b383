"""
Shared test fixtures for the game server client test suite.

Provides:
- Scripted UDP socket standing in for query / Quake3 RCON servers
- Scripted TCP socket standing in for a Source RCON server
- Builders for A2S binary replies
- Canned RCON status tables
"""

import json
import os
import socket
import struct
import sys
import threading

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Set required env vars BEFORE importing anything from the packages
os.environ.setdefault("SERVICE_SECRET", "test-service-secret")
os.environ.setdefault("STATUS_POLL_INTERVAL", "0")
os.environ.setdefault("RCON_SETTLE_DELAY", "0")
os.environ.setdefault("GAME_SERVERS", json.dumps([
    {"id": "cod4-1", "game_type": "CallOfDuty4", "host": "192.0.2.10", "port": 28960, "rcon_password": "secret"},
    {"id": "ins-1", "game_type": "INS", "host": "192.0.2.20", "port": 27015, "rcon_password": "secret"},
    {"id": "cod2-norcon", "game_type": "COD2", "host": "192.0.2.30", "port": 28961},
    {"id": "mc-1", "game_type": "Minecraft", "host": "192.0.2.40", "port": 25565, "rcon_password": "x"},
]))

from gsclient import query, rcon
from gsclient.packet import RconPacket, decode_packet


OOB = b"\xff\xff\xff\xff"


class FakeUdpSocket:
    """UDP socket replaying scripted datagrams; records everything sent."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.sent: list[bytes] = []
        self.error = error
        self.closed = False
        self.timeout = None

    def settimeout(self, timeout):
        self.timeout = timeout

    def connect(self, address):
        self.address = address

    def send(self, data):
        if self.error is not None:
            raise self.error
        self.sent.append(data)
        return len(data)

    def recv(self, size):
        if not self.replies:
            raise socket.timeout("timed out")
        return self.replies.pop(0)

    def has_data(self) -> bool:
        return bool(self.replies)

    def close(self):
        self.closed = True


class FakeTcpSocket:
    """
    TCP socket backed by a scripted Source RCON server.

    ``responder(packet)`` receives every decoded packet the client sends and
    returns the packets the server answers with. ``chunk`` caps how many bytes
    one recv() returns, to exercise reassembly.
    """

    def __init__(self, responder, chunk=None):
        self.responder = responder
        self.chunk = chunk
        self.sent: list[RconPacket] = []
        self.closed = False
        self._buffer = bytearray()
        self._cond = threading.Condition()

    def settimeout(self, timeout):
        pass

    def push(self, data: bytes):
        with self._cond:
            self._buffer += data
            self._cond.notify_all()

    def sendall(self, data):
        if self.closed:
            raise OSError("socket closed")
        packet = decode_packet(data)
        self.sent.append(packet)
        for reply in self.responder(packet) or []:
            if reply is None:
                self.server_close()
                return
            self.push(reply.encode())

    def recv(self, size):
        with self._cond:
            while not self._buffer and not self.closed:
                self._cond.wait(0.05)
            if not self._buffer:
                return b""
            size = min(size, self.chunk or size)
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            return data

    def server_close(self):
        with self._cond:
            self.closed = True
            self._cond.notify_all()

    def shutdown(self, how):
        self.server_close()

    def close(self):
        self.server_close()


def build_info_reply(hostname="XI Insurgency", mapname="ministry", folder="insurgency",
                     game="Insurgency", appid=17700, players=3, max_players=32,
                     bots=0, version="2.4.0.5", header=OOB):
    return (
        header + b"I" + bytes([17])
        + hostname.encode() + b"\x00"
        + mapname.encode() + b"\x00"
        + folder.encode() + b"\x00"
        + game.encode() + b"\x00"
        + struct.pack("<h", appid)
        + bytes([players, max_players, bots, ord("d"), ord("l"), 0, 1])
        + version.encode() + b"\x00"
    )


def build_players_reply(players, count=None):
    """players: iterable of (name, score, duration)."""
    players = list(players)
    data = OOB + b"D" + bytes([len(players) if count is None else count])
    for index, (name, score, duration) in enumerate(players):
        data += bytes([index]) + name.encode() + b"\x00" + struct.pack("<if", score, duration)
    return data


def challenge_reply(token=b"\x0a\x0b\x0c\x0d"):
    return OOB + b"A" + token


COD4_STATUS = (
    "map: mp_crash\n"
    "num score ping guid                             name            lastmsg address               qport rate\n"
    "--- ----- ---- -------------------------------- --------------- ------- --------------------- ----- -----\n"
    "  0    12   48 0123456789abcdef0123456789abcdef ^1Dave^7              0 198.51.100.7:28960    1234 25000\n"
    "  1     3   95 fedcba9876543210fedcba9876543210 [XI]Erin              50 198.51.100.8:-28960   4321 25000\n"
    "  2     0  999 abcdef0123456789abcdef0123456789 Zombie                 0 loopback              0 0\n"
    "\n"
)

SOURCE_STATUS = (
    "hostname: XI Insurgency\n"
    "version : 2.4.0.5/24050 secure\n"
    "map     : ministry\n"
    "# userid name uniqueid connected ping loss state rate adr\n"
    '# 2 1 "Eve" STEAM_1:0:12345 05:12 60 0 active 80000 203.0.113.5:27005\n'
    '# 3 2 "Frank the Tank" STEAM_1:1:999 1:05:12 120 0 active 30000 203.0.113.6:27005\n'
    "#end\n"
)


@pytest.fixture
def no_select(monkeypatch):
    """Availability checks consult the fake socket instead of select()."""
    check = lambda sock: sock.has_data()
    monkeypatch.setattr(query, "data_available", check)
    monkeypatch.setattr(rcon, "data_available", check)
    return check


@pytest.fixture
def udp_socket(monkeypatch, no_select):
    """Route every UDP client socket to one scripted FakeUdpSocket."""
    fake = FakeUdpSocket()
    monkeypatch.setattr(query.BaseQueryClient, "_open_socket", lambda self: fake)
    monkeypatch.setattr(rcon.Quake3RconClient, "_open_socket", lambda self: fake)
    return fake

"""
Source engine RCON packet codec.

Wire layout (all integers little-endian)::

    int32 length | int32 request_id | int32 type | body1 \\0 | body2 \\0 | \\0

``length`` counts every byte after the length field itself.
"""

import struct
from dataclasses import dataclass

from .defs import (
    SERVERDATA_AUTH, SERVERDATA_AUTH_RESPONSE, SERVERDATA_EXECCOMMAND,
    SERVERDATA_RESPONSE_VALUE,
)
from .errors import PacketError

LENGTH_FIELD = struct.Struct("<i")
HEADER = struct.Struct("<ii")
# request_id + type + the NUL terminating body1
MIN_PAYLOAD_SIZE = HEADER.size + 1


@dataclass
class RconPacket:
    request_id: int
    type: int
    body1: str = ""
    body2: str = ""

    @classmethod
    def auth(cls, request_id: int, password: str) -> "RconPacket":
        return cls(request_id, SERVERDATA_AUTH, password)

    @classmethod
    def command(cls, request_id: int, command: str) -> "RconPacket":
        return cls(request_id, SERVERDATA_EXECCOMMAND, command)

    @classmethod
    def response_marker(cls, request_id: int) -> "RconPacket":
        """Empty RESPONSE_VALUE; the server mirrors it after the last packet of a reply."""
        return cls(request_id, SERVERDATA_RESPONSE_VALUE)

    @property
    def is_response_value(self) -> bool:
        return self.type == SERVERDATA_RESPONSE_VALUE

    @property
    def is_auth_response(self) -> bool:
        return self.type == SERVERDATA_AUTH_RESPONSE

    def encode(self) -> bytes:
        return encode_packet(self)


def encode_packet(packet: RconPacket) -> bytes:
    payload = (
        HEADER.pack(packet.request_id, packet.type)
        + packet.body1.encode("utf-8") + b"\x00"
        + packet.body2.encode("utf-8") + b"\x00"
        + b"\x00"
    )
    return LENGTH_FIELD.pack(len(payload)) + payload


def read_packet_length(data: bytes) -> int:
    """Decode the 4-byte length prefix that precedes every packet."""
    if len(data) < LENGTH_FIELD.size:
        raise PacketError(f"Length prefix needs {LENGTH_FIELD.size} bytes, got {len(data)}")
    return LENGTH_FIELD.unpack_from(data)[0]


def decode_payload(payload: bytes) -> RconPacket:
    """Decode the bytes that follow the length prefix."""
    if len(payload) < MIN_PAYLOAD_SIZE:
        raise PacketError(f"RCON packet too short ({len(payload)} bytes)")

    request_id, pkt_type = HEADER.unpack_from(payload)
    body1, _, rest = payload[HEADER.size:].partition(b"\x00")
    # body2 may be missing entirely; trailing padding is ignored
    body2, _, _ = rest.partition(b"\x00")

    return RconPacket(
        request_id=request_id,
        type=pkt_type,
        body1=body1.decode("utf-8", errors="replace"),
        body2=body2.decode("utf-8", errors="replace"),
    )


def decode_packet(data: bytes) -> RconPacket:
    """Inverse of ``encode_packet``: decode a complete length-prefixed packet."""
    length = read_packet_length(data)
    payload = data[LENGTH_FIELD.size:]
    if length > len(payload):
        raise PacketError(f"RCON packet truncated: expected {length} bytes, got {len(payload)}")
    return decode_payload(payload[:length])

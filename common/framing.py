"""
common.framing

Length-framed wire packets:

    | header (2) | protocol (1) | length (2, big-endian, unsigned) | payload |

The header and payload are opaque. A Packet always holds a complete frame;
partially read data never leaves read_packet().
"""

from __future__ import annotations

from dataclasses import dataclass

from common.config import (
    HEADER_SIZE,
    LENGTH_SIZE,
    MAX_PAYLOAD,
    PREFIX_SIZE,
    PROTOCOL_SIZE,
)
from common.errors import FramingError


@dataclass(frozen=True)
class Packet:
    raw: bytes

    def __post_init__(self):
        if len(self.raw) < PREFIX_SIZE:
            raise ValueError(f"packet needs at least {PREFIX_SIZE} bytes, got {len(self.raw)}")
        if self.length != len(self.raw) - PREFIX_SIZE:
            raise ValueError(
                f"length field says {self.length} bytes, payload has {len(self.raw) - PREFIX_SIZE}"
            )

    @property
    def header(self) -> bytes:
        return self.raw[:HEADER_SIZE]

    @property
    def protocol_id(self) -> int:
        return self.raw[HEADER_SIZE]

    @property
    def length(self) -> int:
        return int.from_bytes(self.raw[HEADER_SIZE + PROTOCOL_SIZE:PREFIX_SIZE], "big")

    @property
    def payload(self) -> bytes:
        return self.raw[PREFIX_SIZE:]

    def hex(self) -> str:
        return hexdump(self.raw)

    def __len__(self):
        return len(self.raw)


def hexdump(data: bytes) -> str:
    return data.hex().upper()


def encode_packet(header: bytes, protocol_id: int, payload: bytes = b"") -> Packet:
    if len(header) != HEADER_SIZE:
        raise ValueError(f"header must be {HEADER_SIZE} bytes, got {len(header)}")
    if not 0 <= protocol_id <= 0xFF:
        raise ValueError(f"protocol id out of range: {protocol_id}")
    if len(payload) > MAX_PAYLOAD:
        raise ValueError(f"payload too large: {len(payload)} > {MAX_PAYLOAD}")

    raw = (
        bytes(header)
        + bytes([protocol_id])
        + len(payload).to_bytes(LENGTH_SIZE, "big")
        + bytes(payload)
    )
    return Packet(raw)


def read_exact(sock, n: int, what: str = "data") -> bytes:
    """
    Read exactly n bytes from sock, looping over recv() until satisfied.
    Raises FramingError if the peer closes first. Socket timeouts propagate.
    """
    buf = bytearray()
    while len(buf) < n:
        chunk = sock.recv(n - len(buf))
        if not chunk:
            raise FramingError(
                f"stream closed while reading {what}: got {len(buf)} of {n} bytes"
            )
        buf += chunk
    return bytes(buf)


def read_packet(sock) -> Packet:
    header = read_exact(sock, HEADER_SIZE, "header")
    protocol = read_exact(sock, PROTOCOL_SIZE, "protocol id")
    length = read_exact(sock, LENGTH_SIZE, "length")
    payload = read_exact(sock, int.from_bytes(length, "big"), "payload")
    return Packet(header + protocol + length + payload)

"""Build IPv4/IPv6 + TCP headers around payload-only chunks.

Nothing here was observed on a wire: ports and addresses come from the traced
connection, the sequence number is the running byte count of the direction,
and every checksum is left at zero. Analyzers reading the output must be told
to skip checksum validation.

The flag byte defaults to SYN+PSH on every segment. Real flags cannot be
recovered from payload alone; SYN+PSH keeps analyzers treating each record as
a data-carrying segment of a fresh stream.
"""

from __future__ import annotations

from synthcap.encoding import (
    IPPROTO_TCP,
    IPV4_HEADER,
    IPV4_HEADER_LEN,
    IPV6_HEADER,
    IPV6_HEADER_LEN,
    TCP_HEADER,
    TCP_HEADER_LEN,
    UINT16_MAX,
)
from synthcap.model.connection import ConnectionState, Direction
from synthcap.model.endpoint import AddressEndpoint, AddressFamily

TH_FIN = 0x01
TH_SYN = 0x02
TH_RST = 0x04
TH_PUSH = 0x08
TH_ACK = 0x10
TH_URG = 0x20
TH_ECE = 0x40
TH_CWR = 0x80

_FLAG_LETTERS = (
    (TH_FIN, "F"),
    (TH_SYN, "S"),
    (TH_RST, "R"),
    (TH_PUSH, "P"),
    (TH_ACK, "A"),
    (TH_URG, "U"),
    (TH_ECE, "E"),
    (TH_CWR, "C"),
)

DEFAULT_FLAGS = TH_SYN | TH_PUSH
TCP_WINDOW = 0xFFFF
IPV4_TTL = 128
IPV6_HOP_LIMIT = 64
_TCP_DATA_OFFSET = (TCP_HEADER_LEN // 4) << 4


def parse_flags(value: str | int) -> int:
    """Turn a flag string such as ``"SP"`` (or a raw integer) into a flag byte."""

    if isinstance(value, int):
        if not 0 <= value <= 0xFF:
            raise ValueError(f"TCP flags out of range: {value}")
        return value

    letters = {letter: bit for bit, letter in _FLAG_LETTERS}
    flags = 0
    for char in value.strip().upper():
        if char not in letters:
            raise ValueError(f"Unknown TCP flag letter {char!r} in {value!r}")
        flags |= letters[char]
    return flags


def flag_string(flags: int) -> str:
    return "".join(letter for bit, letter in _FLAG_LETTERS if flags & bit)


def header_length(family: AddressFamily) -> int:
    """Bytes of synthesized header preceding the payload for a family."""

    network = IPV4_HEADER_LEN if family is AddressFamily.IPV4 else IPV6_HEADER_LEN
    return network + TCP_HEADER_LEN


def _tcp_header(src: AddressEndpoint, dst: AddressEndpoint, seq: int, flags: int) -> bytes:
    return TCP_HEADER.pack(src.port, dst.port, seq, 0, _TCP_DATA_OFFSET, flags, TCP_WINDOW, 0, 0)


def _ipv4_header(src: AddressEndpoint, dst: AddressEndpoint, segment_length: int) -> bytes:
    return IPV4_HEADER.pack(
        (4 << 4) | (IPV4_HEADER_LEN // 4),
        0,
        IPV4_HEADER_LEN + segment_length,
        0,
        0,
        IPV4_TTL,
        IPPROTO_TCP,
        0,
        src.address,
        dst.address,
    )


def _ipv6_header(src: AddressEndpoint, dst: AddressEndpoint, segment_length: int) -> bytes:
    # payload length excludes the fixed 40-byte header
    return IPV6_HEADER.pack(6 << 28, segment_length, IPPROTO_TCP, IPV6_HOP_LIMIT, src.address, dst.address)


def synthesize_headers(
    state: ConnectionState,
    direction: Direction,
    payload_length: int,
    flags: int = DEFAULT_FLAGS,
) -> bytes:
    """Return fabricated network + TCP headers for one chunk.

    The sequence number is the direction's counter as it stands, so callers
    advance the counter only after synthesizing.
    """

    src, dst = state.endpoints(direction)
    tcp = _tcp_header(src, dst, state.sequence(direction), flags)
    segment_length = len(tcp) + payload_length

    if src.family is AddressFamily.IPV4:
        network = _ipv4_header(src, dst, segment_length)
    else:
        network = _ipv6_header(src, dst, segment_length)
    return network + tcp


class HeaderSynthesizer:
    """Callable wrapper binding a fixed TCP flag byte."""

    def __init__(self, flags: str | int = DEFAULT_FLAGS) -> None:
        self.flags = parse_flags(flags)

    def __call__(self, state: ConnectionState, direction: Direction, payload_length: int) -> bytes:
        return synthesize_headers(state, direction, payload_length, self.flags)

    def max_payload(self, family: AddressFamily, snaplen: int) -> int:
        """Largest payload whose record still fits ``snaplen`` and a 16-bit length field."""

        return min(snaplen, UINT16_MAX) - header_length(family)

    def __repr__(self) -> str:
        return f"HeaderSynthesizer(flags={flag_string(self.flags)!r})"


__all__ = [
    "DEFAULT_FLAGS",
    "HeaderSynthesizer",
    "flag_string",
    "header_length",
    "parse_flags",
    "synthesize_headers",
]

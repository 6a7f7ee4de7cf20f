"""Binary layouts shared by the header synthesizer and the capture writer.

All multi-byte fields are big-endian (network order), including the libpcap
global and record headers.
"""

from __future__ import annotations

import struct
from typing import Tuple

PCAP_MAGIC = 0xA1B2C3D4
PCAP_VERSION_MAJOR = 2
PCAP_VERSION_MINOR = 4
PCAP_SNAPLEN = 65535
LINKTYPE_RAW = 101

IPPROTO_TCP = 6
IPV4_HEADER_LEN = 20
IPV6_HEADER_LEN = 40
TCP_HEADER_LEN = 20

UINT16_MAX = 0xFFFF
UINT32_MASK = 0xFFFFFFFF

# magic, major, minor, thiszone, sigfigs, snaplen, linktype
GLOBAL_HEADER = struct.Struct(">IHHiIII")
# ts_sec, ts_usec, incl_len, orig_len
RECORD_HEADER = struct.Struct(">IIII")
# ver/ihl, tos, total_len, id, flags/frag, ttl, proto, checksum, src, dst
IPV4_HEADER = struct.Struct(">BBHHHBBH4s4s")
# ver/tc/flow label, payload_len, next header, hop limit, src, dst
IPV6_HEADER = struct.Struct(">IHBB16s16s")
# sport, dport, seq, ack, data offset, flags, window, checksum, urgent
TCP_HEADER = struct.Struct(">HHIIBBHHH")


def wrap_u32(value: int) -> int:
    """Reduce ``value`` modulo 2**32."""

    return value & UINT32_MASK


def split_timestamp(timestamp: float) -> Tuple[int, int]:
    """Split epoch seconds into whole seconds and microseconds."""

    seconds = int(timestamp)
    micros = int(round((timestamp - seconds) * 1_000_000))
    if micros >= 1_000_000:
        seconds += 1
        micros -= 1_000_000
    return wrap_u32(seconds), micros


def pack_global_header(snaplen: int = PCAP_SNAPLEN) -> bytes:
    return GLOBAL_HEADER.pack(PCAP_MAGIC, PCAP_VERSION_MAJOR, PCAP_VERSION_MINOR, 0, 0, snaplen, LINKTYPE_RAW)


def pack_record_header(timestamp: float, length: int) -> bytes:
    seconds, micros = split_timestamp(timestamp)
    return RECORD_HEADER.pack(seconds, micros, length, length)


__all__ = [
    "GLOBAL_HEADER",
    "IPPROTO_TCP",
    "IPV4_HEADER",
    "IPV4_HEADER_LEN",
    "IPV6_HEADER",
    "IPV6_HEADER_LEN",
    "LINKTYPE_RAW",
    "PCAP_MAGIC",
    "PCAP_SNAPLEN",
    "RECORD_HEADER",
    "TCP_HEADER",
    "TCP_HEADER_LEN",
    "UINT16_MAX",
    "pack_global_header",
    "pack_record_header",
    "split_timestamp",
    "wrap_u32",
]

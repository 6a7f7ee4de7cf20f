"""dpkt-based reader for raw-IP captures produced by the writer."""

from __future__ import annotations

import ipaddress
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import dpkt

from synthcap.encoding import LINKTYPE_RAW
from synthcap.logging_utils import get_logger
from synthcap.synth.headers import flag_string

LOGGER = get_logger(__name__)


@dataclass
class CapturedSegment:
    """One TCP segment decoded from a capture record."""

    ts: float
    ip_version: int
    src: str
    dst: str
    sport: int
    dport: int
    seq: int
    ack: int
    flags: str
    payload: bytes
    captured_len: int

    @property
    def flow_id(self) -> str:
        return _build_flow_id(self.src, self.sport, self.dst, self.dport)


def iter_capture(pcap_path: str | Path) -> Iterator[CapturedSegment]:
    """Yield decoded TCP segments; records that are not TCP are skipped."""

    path = Path(pcap_path)
    if not path.exists():
        raise FileNotFoundError(f"PCAP not found: {path}")

    with path.open("rb") as handle:
        try:
            reader = dpkt.pcap.Reader(handle)
        except (dpkt.UnpackError, ValueError) as exc:
            raise ValueError(f"{path} is not a readable pcap file ({exc})") from exc
        datalink = reader.datalink()
        for ts, buf in reader:
            try:
                segment = _decode_frame(float(ts), buf, datalink)
            except (ValueError, AttributeError, dpkt.UnpackError) as exc:
                LOGGER.debug("Skipping undecodable record at ts=%s: %s", ts, exc)
                continue
            if segment is not None:
                yield segment


def _decode_frame(ts: float, buf: bytes, datalink: int) -> Optional[CapturedSegment]:
    if datalink in (LINKTYPE_RAW, dpkt.pcap.DLT_RAW):
        version = buf[0] >> 4 if buf else 0
        if version == 4:
            ip: Any = dpkt.ip.IP(buf)
        elif version == 6:
            ip = dpkt.ip6.IP6(buf)
        else:
            return None
    elif datalink == dpkt.pcap.DLT_EN10MB:
        ip = dpkt.ethernet.Ethernet(buf).data
    else:
        raise ValueError(f"Unsupported link type {datalink}")

    if not isinstance(ip, (dpkt.ip.IP, dpkt.ip6.IP6)):
        return None
    tcp = ip.data
    if not isinstance(tcp, dpkt.tcp.TCP):
        return None

    return CapturedSegment(
        ts=ts,
        ip_version=6 if isinstance(ip, dpkt.ip6.IP6) else 4,
        src=_format_ip(ip.src),
        dst=_format_ip(ip.dst),
        sport=int(tcp.sport),
        dport=int(tcp.dport),
        seq=int(tcp.seq),
        ack=int(tcp.ack),
        flags=flag_string(int(tcp.flags)),
        payload=bytes(tcp.data),
        captured_len=len(buf),
    )


def summarize_capture(pcap_path: str | Path) -> Dict[str, Any]:
    """Count records and payload bytes, overall and per directional flow."""

    flows: Dict[str, Dict[str, int]] = defaultdict(lambda: {"segments": 0, "bytes": 0})
    summary: Dict[str, Any] = {"records": 0, "ipv4": 0, "ipv6": 0, "payload_bytes": 0}

    for segment in iter_capture(pcap_path):
        summary["records"] += 1
        summary["ipv6" if segment.ip_version == 6 else "ipv4"] += 1
        summary["payload_bytes"] += len(segment.payload)
        flow = flows[segment.flow_id]
        flow["segments"] += 1
        flow["bytes"] += len(segment.payload)

    summary["flows"] = dict(flows)
    return summary


def _build_flow_id(src: str, sport: int, dst: str, dport: int) -> str:
    return f"{src}:{sport}->{dst}:{dport}"


def _format_ip(raw: bytes) -> str:
    return str(ipaddress.ip_address(bytes(raw)))


__all__ = ["CapturedSegment", "iter_capture", "summarize_capture"]

"""Decode JSON-lines capture feeds and drive a dispatcher with them.

Each line is one object with a ``type`` of ``open``, ``data`` or ``close``::

    {"type": "open", "conn": "1", "local": {"addr": "127.0.0.1", "port": 40000},
     "remote": {"addr": "93.184.216.34", "port": 80}}
    {"type": "data", "conn": "1", "dir": "out", "ts": 1700000000.25, "payload": "R0VU"}
    {"type": "close", "conn": "1"}

``payload`` is base64; ``payload_hex`` may be given instead.
"""

from __future__ import annotations

import base64
import binascii
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

from synthcap.dispatcher import CaptureDispatcher
from synthcap.errors import FeedError, MalformedEndpointError
from synthcap.logging_utils import get_logger
from synthcap.model.connection import CaptureEvent, Direction
from synthcap.model.endpoint import AddressEndpoint

LOGGER = get_logger(__name__)

RECORD_TYPES = ("open", "data", "close")


@dataclass
class FeedRecord:
    """A decoded feed line."""

    kind: str
    connection_id: str
    local: Optional[AddressEndpoint] = None
    remote: Optional[AddressEndpoint] = None
    event: Optional[CaptureEvent] = None


def parse_feed_line(
    line: str | bytes,
    line_number: int | None = None,
    clock: Callable[[], float] = time.time,
) -> Optional[FeedRecord]:
    """Decode one feed line (text or raw UTF-8 bytes); blank lines yield None."""

    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FeedError(f"invalid UTF-8 at byte {exc.start}", line_number) from exc

    line = line.strip()
    if not line:
        return None

    try:
        obj = json.loads(line)
    except json.JSONDecodeError as exc:
        raise FeedError(f"invalid JSON ({exc.msg})", line_number) from exc
    if not isinstance(obj, dict):
        raise FeedError("record must be a JSON object", line_number)

    kind = obj.get("type")
    if kind not in RECORD_TYPES:
        raise FeedError(f"unknown record type {kind!r}", line_number)
    if obj.get("conn") is None:
        raise FeedError("record has no 'conn' field", line_number)
    connection_id = str(obj["conn"])

    if kind == "open":
        return FeedRecord(
            kind=kind,
            connection_id=connection_id,
            local=_endpoint(obj.get("local"), "local", line_number),
            remote=_endpoint(obj.get("remote"), "remote", line_number),
        )

    if kind == "close":
        return FeedRecord(kind=kind, connection_id=connection_id)

    try:
        direction = Direction.parse(obj.get("dir", ""))
    except ValueError as exc:
        raise FeedError(str(exc), line_number) from exc

    ts = obj.get("ts")
    try:
        timestamp = float(ts) if ts is not None else clock()
    except (TypeError, ValueError) as exc:
        raise FeedError(f"invalid timestamp {ts!r}", line_number) from exc

    event = CaptureEvent(
        connection_id=connection_id,
        direction=direction,
        payload=_payload(obj, line_number),
        timestamp=timestamp,
    )
    return FeedRecord(kind=kind, connection_id=connection_id, event=event)


def _endpoint(value: Any, name: str, line_number: int | None) -> AddressEndpoint:
    if not isinstance(value, Mapping):
        raise FeedError(f"'{name}' endpoint must be an object with 'addr' and 'port'", line_number)
    try:
        return AddressEndpoint.parse(str(value.get("addr", "")), int(value.get("port", -1)))
    except (MalformedEndpointError, TypeError, ValueError) as exc:
        raise FeedError(f"bad '{name}' endpoint: {exc}", line_number) from exc


def _payload(obj: Mapping[str, Any], line_number: int | None) -> bytes:
    field_name = "payload_hex" if "payload_hex" in obj else "payload"
    value = obj.get(field_name, "")
    if not isinstance(value, str):
        raise FeedError(f"'{field_name}' must be a string, got {type(value).__name__}", line_number)
    try:
        if field_name == "payload_hex":
            return bytes.fromhex(value)
        return base64.b64decode(value, validate=True)
    except (ValueError, binascii.Error) as exc:
        raise FeedError(f"undecodable payload ({exc})", line_number) from exc


def iter_feed(feed_path: str | Path) -> Iterator[FeedRecord]:
    """Yield records from a finished feed file, raising FeedError on bad lines."""

    path = Path(feed_path)
    if not path.exists():
        raise FileNotFoundError(f"Feed not found: {path}")

    with path.open("rb") as handle:
        for line_number, line in enumerate(handle, start=1):
            record = parse_feed_line(line, line_number)
            if record is not None:
                yield record


def apply_record(dispatcher: CaptureDispatcher, record: FeedRecord) -> bool:
    """Apply one record; True if it changed tracing state or wrote a record."""

    if record.kind == "open":
        dispatcher.start_trace(record.connection_id, record.local, record.remote)
        return True
    if record.kind == "close":
        return dispatcher.stop_trace(record.connection_id)
    return dispatcher.on_event(record.event)


def replay_feed(feed_path: str | Path, dispatcher: CaptureDispatcher) -> Dict[str, int]:
    """Drive ``dispatcher`` with every record of a feed file and return counters."""

    counts = {"opened": 0, "closed": 0, "events": 0, "written": 0, "dropped": 0}
    for record in iter_feed(feed_path):
        applied = apply_record(dispatcher, record)
        if record.kind == "open":
            counts["opened"] += 1
        elif record.kind == "close":
            counts["closed"] += int(applied)
        else:
            counts["events"] += 1
            counts["written" if applied else "dropped"] += 1
    LOGGER.info("Replayed %s: %s", feed_path, counts)
    return counts


__all__ = ["FeedRecord", "apply_record", "iter_feed", "parse_feed_line", "replay_feed"]

"""Append-only writer for big-endian libpcap files with raw-IP link type."""

from __future__ import annotations

import threading
from pathlib import Path

from synthcap.encoding import PCAP_SNAPLEN, pack_global_header, pack_record_header
from synthcap.logging_utils import get_logger

LOGGER = get_logger(__name__)


class CaptureFileWriter:
    """Write records to one capture file, creating its global header on demand.

    The file is opened and closed for every write. The global header is
    written whenever the file is missing or empty, so a writer may be pointed
    at an existing capture to extend it. ``OSError`` from the filesystem is
    never caught here; an interrupted write can leave a truncated trailing
    record behind.
    """

    def __init__(self, path: str | Path, snaplen: int = PCAP_SNAPLEN) -> None:
        self.path = Path(path)
        self.snaplen = snaplen
        self.records_written = 0
        self._lock = threading.Lock()

    def ensure_header(self) -> bool:
        """Write the global header if the file is absent or zero-length.

        Returns True when the header was written by this call.
        """

        if self.path.exists() and self.path.stat().st_size > 0:
            return False
        with self.path.open("ab") as handle:
            handle.write(pack_global_header(self.snaplen))
        LOGGER.info("Initialised raw-IP capture file %s (snaplen=%s)", self.path, self.snaplen)
        return True

    def append_record(self, timestamp: float, header_bytes: bytes, payload: bytes) -> int:
        """Append one record and return its captured length."""

        length = len(header_bytes) + len(payload)
        if length > self.snaplen:
            raise ValueError(f"Record of {length} bytes exceeds snapshot length {self.snaplen}")
        record = pack_record_header(timestamp, length) + header_bytes + payload
        with self.path.open("ab") as handle:
            handle.write(record)
        self.records_written += 1
        LOGGER.debug("Appended %s-byte record to %s", length, self.path)
        return length

    def write_record(self, timestamp: float, header_bytes: bytes, payload: bytes) -> int:
        """``ensure_header`` followed by ``append_record`` as one locked unit."""

        with self._lock:
            self.ensure_header()
            return self.append_record(timestamp, header_bytes, payload)

    def __repr__(self) -> str:
        return f"CaptureFileWriter(path={str(self.path)!r})"


__all__ = ["CaptureFileWriter"]

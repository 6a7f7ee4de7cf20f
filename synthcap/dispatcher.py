"""Route capture events to per-connection state and the capture writer."""

from __future__ import annotations

import threading
from typing import Dict, Hashable, List, Optional

from synthcap.errors import CaptureError, UntracedConnectionError
from synthcap.logging_utils import get_logger
from synthcap.model.connection import CaptureEvent, ConnectionState
from synthcap.model.endpoint import AddressEndpoint
from synthcap.synth.headers import DEFAULT_FLAGS, HeaderSynthesizer
from synthcap.writer.pcap_writer import CaptureFileWriter

LOGGER = get_logger(__name__)


class CaptureDispatcher:
    """Own the table of traced connections and turn events into records.

    Only connections armed with ``start_trace`` accept events. Events for any
    other id are dropped (``on_event`` returns False) or, with ``strict=True``,
    rejected with ``UntracedConnectionError``.
    """

    def __init__(
        self,
        writer: CaptureFileWriter,
        flags: str | int = DEFAULT_FLAGS,
        strict: bool = False,
    ) -> None:
        self.writer = writer
        self.synthesizer = HeaderSynthesizer(flags)
        self.strict = strict
        self.dropped_events = 0
        self._connections: Dict[Hashable, ConnectionState] = {}
        self._lock = threading.Lock()

    def start_trace(self, connection_id: Hashable, local: AddressEndpoint, remote: AddressEndpoint) -> ConnectionState:
        with self._lock:
            if connection_id in self._connections:
                raise CaptureError(f"Connection {connection_id!r} is already traced")
            state = ConnectionState(connection_id, local, remote)
            self._connections[connection_id] = state
        LOGGER.info("Tracing connection %r (%s)", connection_id, state.flow_id)
        return state

    def stop_trace(self, connection_id: Hashable) -> bool:
        """Discard a connection's state. Returns False if it was not traced."""

        with self._lock:
            state = self._connections.pop(connection_id, None)
        if state is None:
            LOGGER.debug("stop_trace for untraced connection %r ignored", connection_id)
            return False
        LOGGER.info(
            "Stopped tracing connection %r (seq_out=%s seq_in=%s)",
            connection_id,
            state.seq_out,
            state.seq_in,
        )
        return True

    def stop_all(self) -> int:
        with self._lock:
            count = len(self._connections)
            self._connections.clear()
        if count:
            LOGGER.info("Stopped tracing %s connection(s)", count)
        return count

    def is_traced(self, connection_id: Hashable) -> bool:
        with self._lock:
            return connection_id in self._connections

    def get_state(self, connection_id: Hashable) -> Optional[ConnectionState]:
        with self._lock:
            return self._connections.get(connection_id)

    def traced_ids(self) -> List[Hashable]:
        with self._lock:
            return list(self._connections)

    def on_event(self, event: CaptureEvent) -> bool:
        """Write one event as one or more records; True if anything was written."""

        with self._lock:
            state = self._connections.get(event.connection_id)
            if state is None:
                self.dropped_events += 1
                if self.strict:
                    raise UntracedConnectionError(event.connection_id)
                LOGGER.debug("Dropping %s event for untraced connection %r", event.direction.name, event.connection_id)
                return False

            max_payload = self.synthesizer.max_payload(state.family, self.writer.snaplen)
            if max_payload <= 0:
                raise CaptureError(f"Snapshot length {self.writer.snaplen} leaves no room for payload")
            payload = event.payload
            offset = 0
            # an empty payload still yields one record
            while True:
                segment = payload[offset : offset + max_payload]
                headers = self.synthesizer(state, event.direction, len(segment))
                self.writer.write_record(event.timestamp, headers, segment)
                state.advance(event.direction, len(segment))
                offset += len(segment)
                if offset >= len(payload):
                    break
        return True


__all__ = ["CaptureDispatcher"]

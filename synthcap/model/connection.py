"""Per-connection tracing state and the transient capture event."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Hashable, Tuple

from synthcap.encoding import wrap_u32
from synthcap.errors import MalformedEndpointError
from synthcap.model.endpoint import AddressEndpoint, AddressFamily


class Direction(enum.Enum):
    OUTBOUND = "out"
    INBOUND = "in"

    @classmethod
    def parse(cls, value: str) -> "Direction":
        key = str(value).strip().lower()
        if key in ("out", "outbound", "send", "tx"):
            return cls.OUTBOUND
        if key in ("in", "inbound", "recv", "rx"):
            return cls.INBOUND
        raise ValueError(f"Unknown direction: {value!r}")


@dataclass
class ConnectionState:
    """Endpoints and per-direction sequence counters of one traced connection."""

    id: Hashable
    local: AddressEndpoint
    remote: AddressEndpoint
    seq_out: int = 0
    seq_in: int = 0

    def __post_init__(self) -> None:
        if self.local.family is not self.remote.family:
            raise MalformedEndpointError(
                f"Connection {self.id!r} mixes address families: "
                f"local={self.local.family.name} remote={self.remote.family.name}"
            )

    @property
    def family(self) -> AddressFamily:
        return self.local.family

    def endpoints(self, direction: Direction) -> Tuple[AddressEndpoint, AddressEndpoint]:
        """Return ``(source, destination)`` for a direction."""

        if direction is Direction.OUTBOUND:
            return self.local, self.remote
        return self.remote, self.local

    def sequence(self, direction: Direction) -> int:
        return self.seq_out if direction is Direction.OUTBOUND else self.seq_in

    def advance(self, direction: Direction, length: int) -> int:
        """Add ``length`` to the direction's counter (mod 2**32) and return the new value."""

        if direction is Direction.OUTBOUND:
            self.seq_out = wrap_u32(self.seq_out + length)
            return self.seq_out
        self.seq_in = wrap_u32(self.seq_in + length)
        return self.seq_in

    @property
    def flow_id(self) -> str:
        return f"{self.local}->{self.remote}"


@dataclass(frozen=True)
class CaptureEvent:
    """One chunk of application data observed on a traced connection."""

    connection_id: Hashable
    direction: Direction
    payload: bytes
    timestamp: float


__all__ = ["CaptureEvent", "ConnectionState", "Direction"]

"""Typed peer endpoints (address family, raw address bytes, port)."""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass

from synthcap.errors import MalformedEndpointError


class AddressFamily(enum.Enum):
    IPV4 = 4
    IPV6 = 6


_FAMILY_BY_LENGTH = {4: AddressFamily.IPV4, 16: AddressFamily.IPV6}


@dataclass(frozen=True)
class AddressEndpoint:
    """One side of a traced connection.

    The address family is derived from the address length; an endpoint whose
    address is neither 4 nor 16 bytes long cannot be constructed.
    """

    address: bytes
    port: int

    def __post_init__(self) -> None:
        if not isinstance(self.address, (bytes, bytearray)):
            raise MalformedEndpointError(f"Endpoint address must be bytes, got {type(self.address).__name__}")
        if len(self.address) not in _FAMILY_BY_LENGTH:
            raise MalformedEndpointError(
                f"Endpoint address must be 4 or 16 bytes, got {len(self.address)}"
            )
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 0 <= self.port <= 0xFFFF:
            raise MalformedEndpointError(f"Endpoint port out of range: {self.port!r}")
        object.__setattr__(self, "address", bytes(self.address))

    @property
    def family(self) -> AddressFamily:
        return _FAMILY_BY_LENGTH[len(self.address)]

    @property
    def host(self) -> str:
        return str(ipaddress.ip_address(self.address))

    @classmethod
    def parse(cls, host: str, port: int) -> "AddressEndpoint":
        """Build an endpoint from a textual IPv4/IPv6 address."""

        try:
            address = ipaddress.ip_address(host)
        except ValueError as exc:
            raise MalformedEndpointError(f"Invalid endpoint address: {host!r}") from exc
        return cls(address.packed, port)

    def __str__(self) -> str:
        if self.family is AddressFamily.IPV6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


__all__ = ["AddressEndpoint", "AddressFamily"]

"""Connection and endpoint models."""

from .connection import CaptureEvent, ConnectionState, Direction
from .endpoint import AddressEndpoint, AddressFamily

__all__ = ["AddressEndpoint", "AddressFamily", "CaptureEvent", "ConnectionState", "Direction"]

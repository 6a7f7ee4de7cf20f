"""Synthesize libpcap captures from application-level payload streams."""

from .dispatcher import CaptureDispatcher
from .errors import CaptureError, FeedError, MalformedEndpointError, UntracedConnectionError
from .model import AddressEndpoint, AddressFamily, CaptureEvent, ConnectionState, Direction
from .writer import CaptureFileWriter

__version__ = "0.1.0"

__all__ = [
    "AddressEndpoint",
    "AddressFamily",
    "CaptureDispatcher",
    "CaptureError",
    "CaptureEvent",
    "CaptureFileWriter",
    "ConnectionState",
    "Direction",
    "FeedError",
    "MalformedEndpointError",
    "UntracedConnectionError",
]

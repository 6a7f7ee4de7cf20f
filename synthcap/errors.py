"""Exception types raised by synthcap."""

from __future__ import annotations


class CaptureError(RuntimeError):
    """Base class for capture synthesis failures."""


class MalformedEndpointError(CaptureError, ValueError):
    """Raised when an endpoint cannot be mapped to IPv4 or IPv6."""


class UntracedConnectionError(CaptureError):
    """Raised in strict mode when an event targets a connection that is not traced."""

    def __init__(self, connection_id: object) -> None:
        super().__init__(f"Connection {connection_id!r} is not traced")
        self.connection_id = connection_id


class FeedError(CaptureError, ValueError):
    """Raised when an event feed record cannot be decoded."""

    def __init__(self, message: str, line_number: int | None = None) -> None:
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)
        self.line_number = line_number


__all__ = ["CaptureError", "FeedError", "MalformedEndpointError", "UntracedConnectionError"]

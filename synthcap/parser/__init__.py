"""Read synthesized captures back into decoded segments."""

from .capture_reader import CapturedSegment, iter_capture, summarize_capture

__all__ = ["CapturedSegment", "iter_capture", "summarize_capture"]

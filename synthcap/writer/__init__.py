"""Append-only libpcap file output."""

from .pcap_writer import CaptureFileWriter

__all__ = ["CaptureFileWriter"]

"""Fabricated network/transport header synthesis."""

from .headers import DEFAULT_FLAGS, HeaderSynthesizer, header_length, parse_flags, synthesize_headers

__all__ = ["DEFAULT_FLAGS", "HeaderSynthesizer", "header_length", "parse_flags", "synthesize_headers"]

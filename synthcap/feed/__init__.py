"""JSON-lines event feeds standing in for the instrumentation layer."""

from .jsonl_feed import FeedRecord, apply_record, iter_feed, parse_feed_line, replay_feed
from .follow import follow_feed

__all__ = ["FeedRecord", "apply_record", "follow_feed", "iter_feed", "parse_feed_line", "replay_feed"]

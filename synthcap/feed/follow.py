"""Incremental following of a growing JSON-lines feed."""

from __future__ import annotations

import os
from pathlib import Path
from threading import Event as ThreadEvent
from typing import Iterator, Optional, Tuple

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from synthcap.errors import FeedError
from synthcap.feed.jsonl_feed import FeedRecord, parse_feed_line
from synthcap.logging_utils import get_logger

LOGGER = get_logger(__name__)


def follow_feed(
    feed_path: str | Path,
    poll_interval: float = 1.0,
    stop_event: Optional[ThreadEvent] = None,
    from_start: bool = True,
) -> Iterator[FeedRecord]:
    """Yield records appended to a feed file until ``stop_event`` is set.

    Only complete lines are decoded; a trailing partial line is held back until
    its newline arrives. Malformed lines are logged and skipped. When the file
    shrinks it is assumed to have been truncated and is re-read from the start.
    Change notifications come from a watchdog observer; ``poll_interval`` caps
    how long to wait between checks when no notification arrives.
    """

    path = Path(feed_path)
    if not path.exists():
        raise FileNotFoundError(f"Feed not found: {path}")

    offset = 0 if from_start else path.stat().st_size
    pending = b""
    line_number = 0

    observer, change_event = _start_watchdog(path)
    LOGGER.info("Following %s (poll_interval=%ss)", path, poll_interval)

    try:
        while True:
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                raise FileNotFoundError(f"Feed not found: {path}") from None

            if size < offset:
                LOGGER.info("Detected truncation of %s; restarting from the beginning", path)
                offset = 0
                pending = b""
                line_number = 0

            if size > offset:
                with path.open("rb") as handle:
                    handle.seek(offset)
                    chunk = handle.read(size - offset)
                offset += len(chunk)
                *lines, pending = (pending + chunk).split(b"\n")
                for raw in lines:
                    line_number += 1
                    try:
                        record = parse_feed_line(raw, line_number)
                    except FeedError as exc:
                        LOGGER.warning("Skipping malformed feed record in %s: %s", path, exc)
                        continue
                    if record is not None:
                        yield record

            if stop_event is not None and stop_event.is_set():
                return

            LOGGER.debug("Awaiting filesystem events up to %ss", poll_interval)
            change_event.wait(timeout=poll_interval)
            change_event.clear()
    finally:
        observer.stop()
        observer.join()


class _FeedChangeHandler(FileSystemEventHandler):
    """Set ``changed`` whenever the followed file is written or recreated."""

    def __init__(self, path: Path, changed: ThreadEvent) -> None:
        super().__init__()
        self.target = path.resolve()
        self.changed = changed

    def _notify(self, event) -> None:
        if not event.is_directory and Path(os.fsdecode(event.src_path)).resolve() == self.target:
            self.changed.set()

    on_modified = _notify
    on_created = _notify


def _start_watchdog(path: Path) -> Tuple[BaseObserver, ThreadEvent]:
    changed = ThreadEvent()
    observer = Observer()
    observer.schedule(_FeedChangeHandler(path, changed), str(path.parent), recursive=False)
    observer.start()
    return observer, changed


__all__ = ["follow_feed"]

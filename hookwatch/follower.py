"""Live follower for the tail view.

Keeps a byte offset that always points at a record boundary and advances it
one record at a time, only after the sink has accepted the record. A failed
storage read is retried from the same offset, so bursts and outages never
drop or repeat records.

The offset lives in memory by default. With a checkpoint path it is also
persisted (write to temp file, then rename) after every delivered batch, and a
restarted follower resumes from it.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from .errors import StoreUnavailable
from .models import HookEvent
from .store import EventStore

logger = logging.getLogger(__name__)

Sink = Callable[[HookEvent], None]


def load_checkpoint(path: Path) -> dict:
    """Load the last delivered position (byte offset + event count)."""
    if not path.exists():
        return {"byte_offset": 0, "event_count": 0}
    try:
        data = json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable checkpoint %s: %s", path, exc)
        return {"byte_offset": 0, "event_count": 0}
    if not isinstance(data, dict) or not isinstance(data.get("byte_offset"), int):
        logger.warning("Ignoring malformed checkpoint %s", path)
        return {"byte_offset": 0, "event_count": 0}
    return data


def save_checkpoint(path: Path, byte_offset: int, event_count: int = 0) -> bool:
    """Record the follower position; readers see either the old or the new file.

    Returns False (and logs) if the position could not be written.
    """
    record = {"byte_offset": byte_offset, "event_count": event_count, "updated_at": time.time()}
    staging = path.parent / f".{path.name}.{os.getpid()}"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        staging.write_text(json.dumps(record))
        os.replace(staging, path)
    except OSError as exc:
        logger.error("Could not save tail position to %s: %s", path, exc)
        staging.unlink(missing_ok=True)
        return False
    return True


class LiveFollower:
    """Delivers newly appended events to a sink, in append order."""

    def __init__(
        self,
        store: EventStore,
        sink: Sink,
        since_offset: Optional[int] = None,
        checkpoint: "Path | str | None" = None,
        session_id: Optional[str] = None,
        poll_interval: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> None:
        self.store = store
        self.sink = sink
        self.session_id = session_id
        self.poll_interval = store.poll_interval if poll_interval is None else poll_interval
        self.max_retries = max_retries
        self.checkpoint = Path(checkpoint) if checkpoint else None

        self.offset = since_offset or 0
        self.delivered = 0
        self.skipped = 0
        if self.checkpoint is not None and since_offset is None:
            saved = load_checkpoint(self.checkpoint)
            self.offset = saved["byte_offset"]
            self.delivered = saved.get("event_count", 0)
            if self.offset:
                logger.info("Resuming %s from byte %d", store.path, self.offset)

    def poll_once(self) -> int:
        """Read whatever is new and deliver it. Returns the number delivered.

        Raises StoreUnavailable if the log cannot be read; the offset is left
        where it was.
        """
        before = self.offset
        scan = self.store.scan(self.offset)
        delivered = 0
        try:
            for record in scan:
                if self.session_id is None or record.event.session_id == self.session_id:
                    self.sink(record.event)
                    delivered += 1
                    self.delivered += 1
                self.offset = record.end
            # Covers trailing malformed lines and a restart from 0 after truncation.
            self.offset = scan.offset
        finally:
            self.skipped += scan.skipped
            if self.offset != before:
                self._persist()
        return delivered

    def run(self, cancel: Optional[threading.Event] = None) -> None:
        """Poll until ``cancel`` is set.

        Consecutive read failures are retried from the same offset after
        ``poll_interval``; after ``max_retries`` of them the last error is
        raised.
        """
        cancel = cancel or threading.Event()
        failures = 0
        while not cancel.is_set():
            try:
                delivered = self.poll_once()
                failures = 0
            except StoreUnavailable as exc:
                failures += 1
                if self.max_retries is not None and failures > self.max_retries:
                    raise
                logger.warning("Read failed at byte %d (attempt %d), retrying: %s", self.offset, failures, exc)
                delivered = 0
            if not delivered:
                cancel.wait(self.poll_interval)

    def _persist(self) -> None:
        if self.checkpoint is None:
            return
        save_checkpoint(self.checkpoint, self.offset, self.delivered)

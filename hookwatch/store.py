"""Append-only JSONL event store shared by many concurrent hook processes.

Write serialization: each append opens the log with O_APPEND and holds an
exclusive ``fcntl.flock`` on it for the duration of the write. The lock belongs
to the open file description, so writers in separate processes (or threads
with their own descriptors) exclude each other without knowing about each
other. The kernel drops the lock if a writer dies.

Readers never lock. They consume bytes only up to the last newline; an
unterminated tail is a record still being written and is left for the next
read.
"""

from __future__ import annotations

import fcntl
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional

from .codec import decode, encode
from .errors import DecodeError, StoreUnavailable
from .models import HookEvent

logger = logging.getLogger(__name__)

# Sleep between non-blocking lock attempts while another writer holds the lock
_LOCK_RETRY_SECONDS = 0.005


@dataclass
class StoredRecord:
    """A decoded record and the byte range it occupies in the log."""

    event: HookEvent
    offset: int
    end: int


@dataclass
class ReadResult:
    records: list[StoredRecord] = field(default_factory=list)
    skipped: int = 0
    offset: int = 0
    pending_bytes: int = 0

    @property
    def events(self) -> list[HookEvent]:
        return [r.event for r in self.records]

    def __len__(self) -> int:
        return len(self.records)


class LogScan:
    """Single streaming pass over the log from a byte offset.

    Iterating yields StoredRecords in append order. While iterating, ``offset``
    tracks the first byte not yet consumed, ``skipped`` counts malformed lines
    and ``pending_bytes`` is the size of an unterminated tail, if any.
    """

    def __init__(
        self,
        path: Path,
        offset: int = 0,
        limit: Optional[int] = None,
        until: Optional[int] = None,
    ) -> None:
        self.path = path
        self.start = offset
        self.limit = limit
        self.until = until
        self.offset = offset
        self.skipped = 0
        self.pending_bytes = 0

    def __iter__(self) -> Iterator[StoredRecord]:
        try:
            with open(self.path, "rb") as f:
                f.seek(0, os.SEEK_END)
                size = f.tell()
                position = self.start
                if position > size:
                    logger.warning(
                        "Offset %d is beyond end of %s (%d bytes); restarting from 0", position, self.path, size
                    )
                    position = 0
                self.offset = position
                f.seek(position)

                emitted = 0
                while self.limit is None or emitted < self.limit:
                    if self.until is not None and position >= self.until:
                        break
                    line = f.readline()
                    if not line:
                        break
                    if not line.endswith(b"\n"):
                        self.pending_bytes = len(line)
                        break

                    start, position = position, position + len(line)
                    self.offset = position
                    if not line.strip():
                        continue
                    try:
                        event = decode(line)
                    except DecodeError as exc:
                        self.skipped += 1
                        logger.debug("Skipping malformed record at byte %d of %s: %s", start, self.path, exc)
                        continue
                    emitted += 1
                    yield StoredRecord(event=event, offset=start, end=position)
        except FileNotFoundError as exc:
            if self.start > 0:
                # Keep the caller's position; a log that comes back smaller is reset above.
                raise StoreUnavailable(f"Event log {self.path} is missing at byte {self.start}") from exc
            self.offset = 0
        except OSError as exc:
            raise StoreUnavailable(f"Cannot read event log {self.path}: {exc}") from exc


class EventStore:
    """Durable, append-only log of HookEvents at a single path."""

    def __init__(
        self,
        path: "Path | str",
        lock_timeout: float = 2.0,
        fsync: bool = False,
        poll_interval: float = 0.5,
    ) -> None:
        self.path = Path(path)
        self.lock_timeout = lock_timeout
        self.fsync = fsync
        self.poll_interval = poll_interval

    @classmethod
    def from_config(cls, config) -> "EventStore":
        return cls(
            config.store_path,
            lock_timeout=config.lock_timeout,
            fsync=config.fsync,
            poll_interval=config.poll_interval,
        )

    def __repr__(self) -> str:
        return f"EventStore({str(self.path)!r})"

    def exists(self) -> bool:
        return self.path.exists()

    def size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0
        except OSError as exc:
            raise StoreUnavailable(f"Cannot stat event log {self.path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def append(self, event: HookEvent) -> int:
        """Append one record atomically. Returns the log size after the write.

        Raises StoreUnavailable if the log cannot be opened or written, or the
        write lock is not granted within ``lock_timeout``. A failed write is
        rolled back so no partial record is left behind.
        """
        data = (encode(event) + "\n").encode("utf-8")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(self.path), os.O_RDWR | os.O_APPEND | os.O_CREAT, 0o644)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot open event log {self.path}: {exc}") from exc

        try:
            self._acquire(fd)
            try:
                return self._write_locked(fd, data)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot append to event log {self.path}: {exc}") from exc
        finally:
            os.close(fd)

    def _acquire(self, fd: int) -> None:
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise StoreUnavailable(
                        f"Timed out after {self.lock_timeout}s waiting for the write lock on {self.path}"
                    ) from None
                time.sleep(_LOCK_RETRY_SECONDS)

    def _write_locked(self, fd: int, data: bytes) -> int:
        size = os.fstat(fd).st_size
        if size > 0 and os.pread(fd, 1, size - 1) != b"\n":
            # A previous writer died mid-record; close the fragment off as its own line.
            logger.warning("Terminating torn record at end of %s (%d bytes)", self.path, size)
            self._write_all(fd, b"\n")
            size += 1

        try:
            self._write_all(fd, data)
            if self.fsync:
                os.fsync(fd)
        except OSError:
            try:
                os.ftruncate(fd, size)
            except OSError as exc:
                logger.error("Could not roll back partial write to %s: %s", self.path, exc)
            raise
        return size + len(data)

    @staticmethod
    def _write_all(fd: int, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = os.write(fd, view)
            view = view[written:]

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def scan(self, offset: int = 0, limit: Optional[int] = None, until: Optional[int] = None) -> LogScan:
        """Stream records from ``offset`` without materializing the whole log.

        ``until`` bounds the scan to a byte offset returned by an earlier scan,
        so several passes see the same snapshot.
        """
        return LogScan(self.path, offset=offset, limit=limit, until=until)

    def read_from(self, offset: int = 0, limit: Optional[int] = None) -> ReadResult:
        scan = self.scan(offset, limit=limit)
        records = list(scan)
        return ReadResult(records=records, skipped=scan.skipped, offset=scan.offset, pending_bytes=scan.pending_bytes)

    def read_all(self) -> ReadResult:
        """Replay every complete record in append order."""
        return self.read_from(0)

    def follow(
        self,
        offset: int = 0,
        cancel: Optional[threading.Event] = None,
        poll_interval: Optional[float] = None,
    ) -> Iterator[HookEvent]:
        """Yield stored events, then new ones as they are appended.

        Never ends on its own; set ``cancel`` to stop. Holds no lock between
        polls, so stopping at any point leaves the store untouched.
        """
        cancel = cancel or threading.Event()
        interval = self.poll_interval if poll_interval is None else poll_interval
        position = offset

        while not cancel.is_set():
            result = self.read_from(position)
            for record in result.records:
                yield record.event
                if cancel.is_set():
                    return
            position = result.offset
            if not result.records:
                cancel.wait(interval)

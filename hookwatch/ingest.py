#!/usr/bin/env python3
"""Hook entry point: record one hook firing in the event log.

Hook protocol:
- Reads one JSON object from stdin (session_id, hook_event_name, optional
  tool_name and cwd, anything else kept verbatim)
- Writes nothing to stdout or stderr
- Always exits 0, whatever happens inside

Diagnostics go to the side-channel log (``logPath``, default
``~/.hookwatch/hookwatch.log``).

Registered as a command hook for every event type, e.g.::

    {"type": "command", "command": "hookwatch-ingest"}
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional, TextIO

from .codec import from_hook_payload
from .config import HookwatchConfig, defaults, load_config
from .errors import ConfigInvalid, DecodeError, StoreUnavailable
from .store import EventStore

logger = logging.getLogger("hookwatch.ingest")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def main(
    stdin: Optional[TextIO] = None,
    config_path: "Path | str | None" = None,
    overrides: Optional[dict] = None,
) -> int:
    """Run one ingestion. Exit status and stdout are the same on every path."""
    handler: Optional[logging.Handler] = None
    try:
        config: Optional[HookwatchConfig] = None
        config_error: Optional[ConfigInvalid] = None
        try:
            config = load_config(config_path, overrides=overrides)
        except ConfigInvalid as exc:
            config_error = exc

        if config is not None:
            log_path = config.log_path
        else:
            log_path = Path(os.environ.get("HOOKWATCH_LOG_PATH") or defaults()["logPath"]).expanduser()
        handler = _attach_side_channel(log_path, config.log_level_number if config else logging.INFO)

        if config_error is not None:
            logger.error("Not recording hook event: %s", config_error)
            return 0

        raw = (stdin or sys.stdin).read()
        _record(raw, EventStore.from_config(config))
    except Exception:
        logger.exception("Unexpected ingestion failure")
    finally:
        if handler is not None:
            _detach_side_channel(handler)
    return 0


def _record(raw: str, store: EventStore) -> None:
    try:
        event = from_hook_payload(raw)
    except DecodeError as exc:
        logger.warning("Dropping hook input (%d bytes): %s", len(raw), exc)
        return

    try:
        store.append(event)
    except StoreUnavailable as exc:
        logger.error("Lost %s event for session %s: %s", event.event_type, event.session_id, exc)
        return

    logger.debug("Recorded %s event for session %s", event.event_type, event.session_id)


def _attach_side_channel(log_path: Path, level: int) -> logging.Handler:
    """Route hookwatch logging to the side-channel file, never to stdout/stderr."""
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_path, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    except OSError:
        handler = logging.NullHandler()

    package_logger = logging.getLogger("hookwatch")
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False
    return handler


def _detach_side_channel(handler: logging.Handler) -> None:
    package_logger = logging.getLogger("hookwatch")
    package_logger.removeHandler(handler)
    package_logger.propagate = True
    handler.close()


if __name__ == "__main__":
    sys.exit(main())

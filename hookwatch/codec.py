"""Record codec: one HookEvent <-> one line of JSON.

The durable format is one JSON object per line with the keys ``sessionId``,
``timestamp``, ``eventType``, ``toolName``, ``cwd`` and ``rawJson``. JSON string
escaping guarantees an encoded record never contains a raw newline, so the
newline is the record delimiter.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import ValidationError

from .errors import DecodeError
from .models import HookEvent

REQUIRED_PAYLOAD_FIELDS = ("session_id", "hook_event_name")


def encode(event: HookEvent) -> str:
    """Encode an event as a single newline-free line (no trailing newline)."""
    return event.model_dump_json(by_alias=True)


def decode(line: Union[str, bytes]) -> HookEvent:
    """Decode one stored line. Raises DecodeError on anything malformed."""
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Record is not valid UTF-8: {exc}") from exc

    line = line.strip()
    if not line:
        raise DecodeError("Empty record")

    try:
        return HookEvent.model_validate_json(line)
    except ValidationError as exc:
        raise DecodeError(f"Malformed record: {exc.error_count()} validation error(s)") from exc


def from_hook_payload(raw: str, now: Optional[datetime] = None) -> HookEvent:
    """Normalize a hook's stdin payload into a HookEvent.

    Only ``session_id`` and ``hook_event_name`` are required. ``tool_name`` and
    ``cwd`` are picked up when present; every other field survives untouched in
    ``raw_json``.
    """
    text = raw.strip()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Hook input is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise DecodeError(f"Hook input must be a JSON object, got {type(payload).__name__}")

    missing = [
        name for name in REQUIRED_PAYLOAD_FIELDS if not isinstance(payload.get(name), str) or not payload.get(name)
    ]
    if missing:
        raise DecodeError(f"Hook input is missing required field(s): {', '.join(missing)}")

    tool_name = payload.get("tool_name")
    cwd = payload.get("cwd")

    return HookEvent(
        session_id=payload["session_id"],
        timestamp=now or datetime.now(timezone.utc),
        event_type=payload["hook_event_name"],
        tool_name=tool_name if isinstance(tool_name, str) and tool_name else None,
        cwd=cwd if isinstance(cwd, str) else "",
        raw_json=text,
    )

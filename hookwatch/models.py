"""Data models for hook events and their derived audit views."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

# Event types that close a session. The set of event types as a whole is open.
TERMINAL_EVENT_TYPES = frozenset({"SessionEnd", "Stop"})

# Top-level payload keys that may carry a hook's observable output, in priority order.
OUTPUT_KEYS = ("hook_output", "output", "stdout")

# Top-level payload keys that may identify the hook command itself.
HOOK_ID_KEYS = ("hook_id", "hook_name", "hook_command")


class HookEvent(BaseModel):
    """One hook firing, as stored in the event log."""

    session_id: str = Field(alias="sessionId", min_length=1)
    timestamp: datetime
    event_type: str = Field(alias="eventType", min_length=1)
    tool_name: Optional[str] = Field(default=None, alias="toolName")
    cwd: str = ""
    raw_json: str = Field(default="{}", alias="rawJson")

    model_config = {"populate_by_name": True}

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def payload(self) -> dict[str, Any]:
        """The original hook payload, or an empty dict if it is not a JSON object."""
        try:
            parsed = json.loads(self.raw_json)
        except (json.JSONDecodeError, TypeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}

    @property
    def output(self) -> Optional[str]:
        """Observable hook output carried by the payload, if any."""
        payload = self.payload
        candidates = [payload.get(key) for key in OUTPUT_KEYS]
        specific = payload.get("hookSpecificOutput")
        if isinstance(specific, dict):
            candidates.append(specific.get("additionalContext"))

        for value in candidates:
            if value is None or value == "":
                continue
            if isinstance(value, str):
                return value
            return json.dumps(value, sort_keys=True)
        return None

    @property
    def hook_id(self) -> Optional[str]:
        payload = self.payload
        for key in HOOK_ID_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
        return None

    @property
    def is_terminal(self) -> bool:
        return self.event_type in TERMINAL_EVENT_TYPES


class SessionSummary(BaseModel):
    """Per-session fold of the event log."""

    session_id: str = Field(alias="sessionId")
    start_time: datetime = Field(alias="startTime")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    last_event_time: datetime = Field(alias="lastEventTime")
    event_count: int = Field(default=0, alias="eventCount")
    by_event_type: dict[str, int] = Field(default_factory=dict, alias="byEventType")
    by_tool: dict[str, int] = Field(default_factory=dict, alias="byTool")
    estimated_tokens: int = Field(default=0, alias="estimatedTokens")
    output_tokens: int = Field(default=0, alias="outputTokens")
    output_events: int = Field(default=0, alias="outputEvents")

    model_config = {"populate_by_name": True}

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration_seconds(self) -> float:
        closing = self.end_time or self.last_event_time
        return max(0.0, (closing - self.start_time).total_seconds())


class DuplicateReport(BaseModel):
    """Duplicate-output statistics for one hook identity."""

    hook_identity: str = Field(alias="hookIdentity")
    total_fires: int = Field(alias="totalFires")
    fires_with_output: int = Field(default=0, alias="firesWithOutput")
    top_fingerprint: Optional[str] = Field(default=None, alias="topFingerprint")
    top_count: int = Field(default=0, alias="topCount")
    duplicate_ratio: float = Field(default=0.0, alias="duplicateRatio")
    flagged: bool = False

    model_config = {"populate_by_name": True}

    @property
    def zero_output(self) -> bool:
        return self.fires_with_output == 0


class AuditReport(BaseModel):
    """Input for the audit view: summaries, duplicate reports and skipped records."""

    selector: str
    summaries: list[SessionSummary] = Field(default_factory=list)
    duplicates: list[DuplicateReport] = Field(default_factory=list)
    skipped: int = 0
    min_fires: int = Field(default=5, alias="minFires")
    threshold: float = 0.8

    model_config = {"populate_by_name": True}

    @property
    def flagged(self) -> list[DuplicateReport]:
        return [d for d in self.duplicates if d.flagged]

    @property
    def zero_output(self) -> list[DuplicateReport]:
        return [d for d in self.duplicates if d.zero_output]

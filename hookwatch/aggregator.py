"""Session aggregation: a single left-to-right fold over HookEvents.

Append order is the only ordering relied upon. Timestamps from racing
appenders may be out of order, so ``start_time`` is the first event's
timestamp and ``end_time`` the first terminal event's timestamp, both in
append order, while ``last_event_time`` is the latest timestamp seen.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from .models import HookEvent, SessionSummary


def estimate_tokens(text: Optional[str], divisor: int = 4) -> int:
    """Rough token count: ceil(characters / divisor)."""
    if not text:
        return 0
    return math.ceil(len(text) / divisor)


@dataclass
class _Accumulator:
    session_id: str
    start_time: datetime
    last_event_time: datetime
    end_time: Optional[datetime] = None
    event_count: int = 0
    by_event_type: dict[str, int] = field(default_factory=dict)
    by_tool: dict[str, int] = field(default_factory=dict)
    record_tokens: int = 0
    output_tokens: int = 0
    output_events: int = 0

    def to_summary(self) -> SessionSummary:
        return SessionSummary(
            session_id=self.session_id,
            start_time=self.start_time,
            end_time=self.end_time,
            last_event_time=self.last_event_time,
            event_count=self.event_count,
            by_event_type=dict(self.by_event_type),
            by_tool=dict(self.by_tool),
            estimated_tokens=self.record_tokens,
            output_tokens=self.output_tokens,
            output_events=self.output_events,
        )


class SessionAggregator:
    """Incremental per-session fold. O(records) time, O(sessions) space."""

    def __init__(self, token_divisor: int = 4) -> None:
        self.token_divisor = token_divisor
        self._sessions: dict[str, _Accumulator] = {}
        self.last_session_id: Optional[str] = None

    def feed(self, event: HookEvent) -> None:
        acc = self._sessions.get(event.session_id)
        if acc is None:
            acc = _Accumulator(
                session_id=event.session_id,
                start_time=event.timestamp,
                last_event_time=event.timestamp,
            )
            self._sessions[event.session_id] = acc

        acc.event_count += 1
        acc.by_event_type[event.event_type] = acc.by_event_type.get(event.event_type, 0) + 1
        if event.tool_name:
            acc.by_tool[event.tool_name] = acc.by_tool.get(event.tool_name, 0) + 1
        if event.timestamp > acc.last_event_time:
            acc.last_event_time = event.timestamp
        if event.is_terminal and acc.end_time is None:
            acc.end_time = event.timestamp

        # Output lives inside raw_json, so output_tokens is a breakdown, not an addition.
        acc.record_tokens += estimate_tokens(event.raw_json, self.token_divisor)
        output = event.output
        if output is not None:
            acc.output_events += 1
            acc.output_tokens += estimate_tokens(output, self.token_divisor)

        self.last_session_id = event.session_id

    def feed_all(self, events: Iterable[HookEvent]) -> "SessionAggregator":
        for event in events:
            self.feed(event)
        return self

    def summaries(self) -> dict[str, SessionSummary]:
        """Summaries keyed by session id, in order of first appearance."""
        return {sid: acc.to_summary() for sid, acc in self._sessions.items()}

    def summary(self, session_id: str) -> Optional[SessionSummary]:
        acc = self._sessions.get(session_id)
        return acc.to_summary() if acc else None


def summarize_sessions(events: Iterable[HookEvent], token_divisor: int = 4) -> dict[str, SessionSummary]:
    return SessionAggregator(token_divisor).feed_all(events).summaries()

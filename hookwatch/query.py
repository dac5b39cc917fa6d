"""Aggregate query surface over an EventStore.

Binds the pure aggregation functions to a store snapshot. Malformed records
never abort a query; they are counted and returned as ``skipped``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Iterator, Optional

from .aggregator import SessionAggregator
from .dedup import detect_duplicates as _detect_duplicates
from .models import AuditReport, DuplicateReport, HookEvent, SessionSummary
from .store import EventStore

LATEST = "latest"
ALL = "all"


@dataclass
class SessionsResult:
    summaries: dict[str, SessionSummary] = field(default_factory=dict)
    latest: Optional[str] = None
    skipped: int = 0
    offset: int = 0


@dataclass
class DuplicatesResult:
    session_id: Optional[str]
    reports: list[DuplicateReport] = field(default_factory=list)
    skipped: int = 0


def load_sessions(store: EventStore, token_divisor: int = 4) -> SessionsResult:
    """Fold the whole log into per-session summaries in one streaming pass."""
    scan = store.scan()
    aggregator = SessionAggregator(token_divisor).feed_all(record.event for record in scan)
    return SessionsResult(
        summaries=aggregator.summaries(),
        latest=aggregator.last_session_id,
        skipped=scan.skipped,
        offset=scan.offset,
    )


def summarize(store: EventStore, selector: str = LATEST, token_divisor: int = 4):
    """Return ``(summary_or_mapping, skipped)``.

    ``selector`` is a session id, ``"latest"`` (session of the last appended
    record) or ``"all"``. An unknown session id yields ``None``.
    """
    result = load_sessions(store, token_divisor)
    if selector == ALL:
        return result.summaries, result.skipped
    session_id = result.latest if selector == LATEST else selector
    if session_id is None:
        return None, result.skipped
    return result.summaries.get(session_id), result.skipped


def resolve_session(store: EventStore, selector: str) -> Optional[str]:
    """Map a selector to a concrete session id (None for ``"all"`` or an empty log)."""
    if selector == ALL:
        return None
    if selector != LATEST:
        return selector
    latest = None
    for record in store.scan():
        latest = record.event.session_id
    return latest


def detect_duplicates(
    store: EventStore,
    session_id: str = LATEST,
    min_fires: int = 5,
    threshold: float = 0.8,
) -> DuplicatesResult:
    resolved = resolve_session(store, session_id)
    if session_id != ALL and resolved is None:
        return DuplicatesResult(session_id=None)

    scan = store.scan()
    reports = _detect_duplicates(
        (record.event for record in scan),
        min_fires=min_fires,
        threshold=threshold,
        session_id=resolved,
    )
    return DuplicatesResult(session_id=resolved, reports=reports, skipped=scan.skipped)


def build_audit(store: EventStore, selector: str, config) -> Optional[AuditReport]:
    """Everything the audit view needs, or None if the session is unknown."""
    sessions = load_sessions(store, config.token_heuristic_divisor)

    if selector == ALL:
        summaries = list(sessions.summaries.values())
        session_id = None
    else:
        session_id = sessions.latest if selector == LATEST else selector
        summary = sessions.summaries.get(session_id) if session_id else None
        if summary is None:
            return None
        summaries = [summary]

    # Same snapshot as the summaries, even if hooks keep appending meanwhile.
    scan = store.scan(until=sessions.offset)
    reports = _detect_duplicates(
        (record.event for record in scan),
        min_fires=config.dedup_min_fires,
        threshold=config.dedup_threshold,
        session_id=session_id,
    )
    return AuditReport(
        selector=session_id or ALL,
        summaries=summaries,
        duplicates=reports,
        skipped=sessions.skipped,
        min_fires=config.dedup_min_fires,
        threshold=config.dedup_threshold,
    )


def tail(
    store: EventStore,
    since_offset: int = 0,
    cancel: Optional[threading.Event] = None,
) -> Iterator[HookEvent]:
    """Live sequence of events appended at or after ``since_offset``."""
    return store.follow(offset=since_offset, cancel=cancel)


"""Duplicate-output detection.

Records are grouped by hook identity (event type, tool name and hook id from
the payload). Within a group, each record's output is normalized and hashed;
a group is flagged when its most common fingerprint covers at least
``threshold`` of the fires that produced output and there are at least
``min_fires`` such fires. Silent fires are left out of the ratio entirely, so
a hook that never outputs anything is reported as zero-output, never as a
duplicate.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .models import DuplicateReport, HookEvent

_WHITESPACE = re.compile(r"\s+")


def hook_identity(event: HookEvent) -> str:
    """Composite grouping key: ``eventType[:toolName][#hookId]``."""
    identity = event.event_type
    if event.tool_name:
        identity += f":{event.tool_name}"
    hook_id = event.hook_id
    if hook_id:
        identity += f"#{hook_id}"
    return identity


def normalize_output(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def fingerprint(text: Optional[str]) -> Optional[str]:
    """Content hash of normalized output, or None for absent/blank output."""
    if text is None:
        return None
    normalized = normalize_output(text)
    if not normalized:
        return None
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


@dataclass
class _Group:
    identity: str
    total_fires: int = 0
    counts: dict[str, int] = field(default_factory=dict)

    def add(self, fp: Optional[str]) -> None:
        self.total_fires += 1
        if fp is not None:
            self.counts[fp] = self.counts.get(fp, 0) + 1

    def report(self, min_fires: int, threshold: float) -> DuplicateReport:
        with_output = sum(self.counts.values())
        if with_output == 0:
            return DuplicateReport(hook_identity=self.identity, total_fires=self.total_fires)

        # Dict order is first-seen order, and max() keeps the first of equal counts.
        top_fp = max(self.counts, key=self.counts.__getitem__)
        top_count = self.counts[top_fp]
        ratio = top_count / with_output
        return DuplicateReport(
            hook_identity=self.identity,
            total_fires=self.total_fires,
            fires_with_output=with_output,
            top_fingerprint=top_fp,
            top_count=top_count,
            duplicate_ratio=ratio,
            flagged=with_output >= min_fires and ratio >= threshold,
        )


def detect_duplicates(
    events: Iterable[HookEvent],
    min_fires: int = 5,
    threshold: float = 0.8,
    session_id: Optional[str] = None,
) -> list[DuplicateReport]:
    """One report per hook identity, in order of the identity's first fire.

    When ``session_id`` is given, only that session's events are considered.
    """
    groups: dict[str, _Group] = {}
    for event in events:
        if session_id is not None and event.session_id != session_id:
            continue
        identity = hook_identity(event)
        group = groups.get(identity)
        if group is None:
            group = groups[identity] = _Group(identity)
        group.add(fingerprint(event.output))

    return [group.report(min_fires, threshold) for group in groups.values()]

"""Plain-text views: sessions, audit and tail."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from .models import AuditReport, DuplicateReport, HookEvent, SessionSummary


def _ts(value: Optional[datetime]) -> str:
    if value is None:
        return "open"
    return value.strftime("%Y-%m-%d %H:%M:%S")


def _duration(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"


def _counts(title: str, counts: dict[str, int]) -> list[str]:
    if not counts:
        return []
    width = max(len(k) for k in counts)
    lines = [f"{title}:"]
    for key, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])):
        lines.append(f"  {key:<{width}}  {count:>6}")
    return lines


def render_sessions(summaries: Iterable[SessionSummary], skipped: int = 0) -> str:
    rows = sorted(summaries, key=lambda s: s.start_time)
    if not rows:
        lines = ["No sessions recorded."]
    else:
        lines = [f"{'SESSION':<38} {'START':<19} {'END':<19} {'EVENTS':>7} {'~TOKENS':>9}"]
        for s in rows:
            lines.append(
                f"{s.session_id[:38]:<38} {_ts(s.start_time):<19} {_ts(s.end_time):<19} "
                f"{s.event_count:>7} {s.estimated_tokens:>9}"
            )
    if skipped:
        lines.append(f"skipped malformed records: {skipped}")
    return "\n".join(lines)


def _duplicate_line(report: DuplicateReport) -> str:
    return (
        f"  {report.hook_identity}  {report.top_count}/{report.fires_with_output} identical "
        f"({report.duplicate_ratio:.0%}), {report.total_fires} fires"
    )


def render_audit(report: AuditReport) -> str:
    lines: list[str] = []
    for summary in report.summaries:
        state = "open" if summary.is_open else f"ended {_ts(summary.end_time)}"
        lines.append(f"Session {summary.session_id} ({state})")
        lines.append(f"  started   {_ts(summary.start_time)}  duration {_duration(summary.duration_seconds)}")
        lines.append(
            f"  events    {summary.event_count}  ~tokens {summary.estimated_tokens} "
            f"(of which output ~{summary.output_tokens} from {summary.output_events} events)"
        )
        lines.extend(_counts("By event type", summary.by_event_type))
        lines.extend(_counts("By tool", summary.by_tool))
        lines.append("")

    flagged = report.flagged
    lines.append(
        f"Duplicate output (>= {report.threshold:.0%} identical over >= {report.min_fires} fires with output):"
    )
    if flagged:
        lines.extend(_duplicate_line(d) for d in sorted(flagged, key=lambda d: -d.duplicate_ratio))
    else:
        lines.append("  none flagged")

    silent = report.zero_output
    if silent:
        lines.append("Zero-output hooks:")
        lines.extend(f"  {d.hook_identity}  {d.total_fires} fires" for d in silent)

    if report.skipped:
        lines.append(f"skipped malformed records: {report.skipped}")
    return "\n".join(lines)


def render_event(event: HookEvent) -> str:
    """One line per event for the tail view."""
    parts = [_ts(event.timestamp), event.session_id[:8], event.event_type]
    if event.tool_name:
        parts.append(event.tool_name)
    output = event.output
    if output:
        snippet = " ".join(output.split())
        parts.append(f"-> {snippet[:60]}{'...' if len(snippet) > 60 else ''}")
    return "  ".join(parts)

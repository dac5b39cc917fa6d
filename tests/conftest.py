"""Shared fixtures for hookwatch tests."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from hookwatch.models import HookEvent
from hookwatch.store import EventStore

BASE_TS = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config, default log and side-channel log inside the test's tmp dir."""
    home = tmp_path / "home"
    monkeypatch.setenv("HOOKWATCH_HOME", str(home))
    for var in (
        "HOOKWATCH_CONFIG",
        "HOOKWATCH_STORE_PATH",
        "HOOKWATCH_LOG_PATH",
        "HOOKWATCH_DEDUP_MIN_FIRES",
        "HOOKWATCH_DEDUP_THRESHOLD",
        "HOOKWATCH_TOKEN_DIVISOR",
        "HOOKWATCH_LOCK_TIMEOUT",
        "HOOKWATCH_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def store(tmp_path):
    return EventStore(tmp_path / "events.jsonl", lock_timeout=1.0, poll_interval=0.01)


def make_event(
    session="s1",
    event_type="PreToolUse",
    tool=None,
    seconds=0,
    payload=None,
) -> HookEvent:
    """Build an event the way the ingestion path would."""
    raw = {"session_id": session, "hook_event_name": event_type}
    if tool:
        raw["tool_name"] = tool
    raw.update(payload or {})
    return HookEvent(
        session_id=session,
        timestamp=BASE_TS + timedelta(seconds=seconds),
        event_type=event_type,
        tool_name=tool,
        cwd="/work/project",
        raw_json=json.dumps(raw),
    )

"""Tests for the record codec and hook payload normalization."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from conftest import BASE_TS, make_event
from hookwatch.codec import decode, encode, from_hook_payload
from hookwatch.errors import DecodeError
from hookwatch.models import HookEvent


class TestEncodeDecode:
    def test_round_trip(self):
        event = make_event(tool="Bash", payload={"tool_input": {"command": "ls\nrm -rf build"}})
        assert decode(encode(event)) == event

    def test_round_trip_without_tool(self):
        event = make_event(event_type="UserPromptSubmit", payload={"prompt": "héllo   wörld"})
        assert decode(encode(event)) == event

    def test_round_trip_bytes(self):
        event = make_event()
        assert decode((encode(event) + "\n").encode("utf-8")) == event

    def test_encoded_line_has_no_newline(self):
        event = make_event(payload={"output": "line one\nline two\r\n"})
        line = encode(event)
        assert "\n" not in line
        assert "\r" not in line

    def test_durable_field_names(self):
        record = json.loads(encode(make_event(tool="Edit")))
        assert set(record) == {"sessionId", "timestamp", "eventType", "toolName", "cwd", "rawJson"}
        assert record["toolName"] == "Edit"
        assert isinstance(record["rawJson"], str)

    def test_tool_name_nullable(self):
        record = json.loads(encode(make_event()))
        assert record["toolName"] is None

    def test_naive_timestamp_assumed_utc(self):
        line = json.dumps(
            {"sessionId": "s1", "timestamp": "2026-03-01T12:00:00", "eventType": "Stop", "cwd": "", "rawJson": "{}"}
        )
        assert decode(line).timestamp == BASE_TS


class TestDecodeErrors:
    @pytest.mark.parametrize(
        "line",
        [
            "",
            "not json",
            '{"sessionId": "s1", "timestamp": "2026-03-01T12:00:00Z"',
            "[1, 2, 3]",
            '{"sessionId": "", "timestamp": "2026-03-01T12:00:00Z", "eventType": "Stop"}',
            '{"sessionId": "s1", "timestamp": "2026-03-01T12:00:00Z", "eventType": ""}',
            '{"sessionId": "s1", "timestamp": "yesterday", "eventType": "Stop"}',
            '{"timestamp": "2026-03-01T12:00:00Z", "eventType": "Stop"}',
        ],
    )
    def test_malformed_raises_decode_error(self, line):
        with pytest.raises(DecodeError):
            decode(line)

    def test_invalid_utf8(self):
        with pytest.raises(DecodeError):
            decode(b"\xff\xfe{}")


class TestFromHookPayload:
    def test_minimal_payload(self):
        event = from_hook_payload('{"session_id": "abc", "hook_event_name": "SessionStart"}')
        assert event.session_id == "abc"
        assert event.event_type == "SessionStart"
        assert event.tool_name is None
        assert event.cwd == ""
        assert event.timestamp.tzinfo is not None

    def test_optional_fields(self):
        raw = json.dumps(
            {"session_id": "abc", "hook_event_name": "PreToolUse", "tool_name": "Bash", "cwd": "/repo"}
        )
        event = from_hook_payload(raw)
        assert event.tool_name == "Bash"
        assert event.cwd == "/repo"

    def test_unknown_fields_preserved_verbatim(self):
        raw = '{"session_id": "abc", "hook_event_name": "Notification", "brand_new": {"nested": [1, 2]}}'
        event = from_hook_payload("  " + raw + "\n")
        assert event.raw_json == raw
        assert event.payload["brand_new"] == {"nested": [1, 2]}

    def test_unknown_event_type_accepted(self):
        event = from_hook_payload('{"session_id": "abc", "hook_event_name": "PreCompact"}')
        assert event.event_type == "PreCompact"

    def test_explicit_timestamp(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        event = from_hook_payload('{"session_id": "a", "hook_event_name": "Stop"}', now=now)
        assert event.timestamp == now

    def test_wrong_types_for_optional_fields_ignored(self):
        event = from_hook_payload('{"session_id": "a", "hook_event_name": "Stop", "tool_name": 3, "cwd": null}')
        assert event.tool_name is None
        assert event.cwd == ""

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "{not json",
            '"just a string"',
            '{"hook_event_name": "Stop"}',
            '{"session_id": "a"}',
            '{"session_id": "", "hook_event_name": "Stop"}',
            '{"session_id": 42, "hook_event_name": "Stop"}',
        ],
    )
    def test_rejected_payloads(self, raw):
        with pytest.raises(DecodeError):
            from_hook_payload(raw)


class TestPayloadDerivedFields:
    def test_output_from_hook_output(self):
        assert make_event(payload={"hook_output": "injected"}).output == "injected"

    def test_output_from_additional_context(self):
        event = make_event(payload={"hookSpecificOutput": {"additionalContext": "ctx"}})
        assert event.output == "ctx"

    def test_structured_output_is_json_encoded(self):
        event = make_event(payload={"output": {"b": 1, "a": 2}})
        assert event.output == '{"a": 2, "b": 1}'

    def test_no_output_in_observer_mode(self):
        assert make_event(tool="Bash", payload={"tool_input": {"command": "ls"}}).output is None

    def test_hook_id(self):
        assert make_event(payload={"hook_name": "lint-guard"}).hook_id == "lint-guard"
        assert make_event().hook_id is None

    def test_payload_tolerates_non_object_raw(self):
        event = HookEvent(session_id="s", timestamp=BASE_TS, event_type="Stop", raw_json="[]")
        assert event.payload == {}
        assert event.output is None

    def test_terminal_event_types(self):
        assert make_event(event_type="SessionEnd").is_terminal
        assert make_event(event_type="Stop").is_terminal
        assert not make_event(event_type="SubagentStop").is_terminal

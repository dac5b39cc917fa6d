"""Tests for configuration loading and validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from hookwatch.config import load_config
from hookwatch.errors import ConfigInvalid


class TestDefaults:
    def test_defaults(self, isolated_home):
        cfg = load_config()
        assert cfg.store_path == isolated_home / "events.jsonl"
        assert cfg.log_path == isolated_home / "hookwatch.log"
        assert cfg.dedup_min_fires == 5
        assert cfg.dedup_threshold == 0.8
        assert cfg.token_heuristic_divisor == 4
        assert cfg.lock_timeout == 2.0
        assert cfg.fsync is False
        assert cfg.log_level == "INFO"

    def test_user_path_expanded(self):
        cfg = load_config(overrides={"storePath": "~/hw/events.jsonl"})
        assert cfg.store_path == Path.home() / "hw" / "events.jsonl"


class TestCascade:
    def test_default_config_file(self, isolated_home):
        isolated_home.mkdir(parents=True)
        (isolated_home / "config.json").write_text(json.dumps({"dedupMinFires": 7}))
        assert load_config().dedup_min_fires == 7

    def test_explicit_file_nested_section(self, tmp_path):
        path = tmp_path / "project-config.json"
        path.write_text(json.dumps({"settings": {"hookwatch": {"dedupThreshold": 0.9}}, "other": 1}))
        assert load_config(path).dedup_threshold == 0.9

    def test_file_via_env(self, tmp_path, monkeypatch):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({"tokenHeuristicDivisor": 3}))
        monkeypatch.setenv("HOOKWATCH_CONFIG", str(path))
        assert load_config().token_heuristic_divisor == 3

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({"dedupMinFires": 7}))
        monkeypatch.setenv("HOOKWATCH_DEDUP_MIN_FIRES", "9")
        assert load_config(path).dedup_min_fires == 9

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("HOOKWATCH_DEDUP_THRESHOLD", "0.9")
        assert load_config(overrides={"dedupThreshold": 0.6}).dedup_threshold == 0.6

    def test_none_override_ignored(self):
        assert load_config(overrides={"dedupMinFires": None}).dedup_min_fires == 5

    def test_overrides_do_not_leak_into_next_load(self):
        assert load_config(overrides={"dedupMinFires": 9}).dedup_min_fires == 9
        assert load_config().dedup_min_fires == 5

    def test_explicit_environ(self):
        cfg = load_config(environ={"HOOKWATCH_STORE_PATH": "/data/events.jsonl"})
        assert cfg.store_path == Path("/data/events.jsonl")

    def test_log_level_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("HOOKWATCH_LOG_LEVEL", "debug")
        cfg = load_config()
        assert cfg.log_level == "DEBUG"
        assert cfg.log_level_number == 10


class TestInvalid:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"dedupMinFires": 0},
            {"dedupMinFires": -3},
            {"dedupThreshold": 0},
            {"dedupThreshold": 1.5},
            {"tokenHeuristicDivisor": 0},
            {"lockTimeout": 0},
            {"pollInterval": -1},
            {"logLevel": "LOUD"},
        ],
    )
    def test_out_of_range_rejected(self, overrides):
        with pytest.raises(ConfigInvalid):
            load_config(overrides=overrides)

    def test_unparsable_env_value(self, monkeypatch):
        monkeypatch.setenv("HOOKWATCH_TOKEN_DIVISOR", "four")
        with pytest.raises(ConfigInvalid, match="tokenHeuristicDivisor"):
            load_config()

    def test_not_clamped(self, monkeypatch):
        monkeypatch.setenv("HOOKWATCH_DEDUP_THRESHOLD", "1.01")
        with pytest.raises(ConfigInvalid):
            load_config()

    def test_bad_json_file(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text("{nope")
        with pytest.raises(ConfigInvalid, match="Cannot read config file"):
            load_config(path)

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "cfg.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigInvalid):
            load_config(path)

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigInvalid, match="not found"):
            load_config(tmp_path / "missing.json")

"""Tests for pydantic-settings configuration and clamps."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from companion.config.settings import (
    BreakReminderSettings,
    CandidateSettings,
    LLMSettings,
    PersonaSettings,
    SchedulerSettings,
    WeatherSettings,
    get_settings,
)
from companion.constants import DEFAULT_RSS_FEEDS, MIN_DISPATCH_INTERVAL_S


class TestSchedulerSettings:
    def test_defaults(self):
        s = SchedulerSettings()
        assert s.debounce_ms == 500
        assert s.min_interval_seconds == MIN_DISPATCH_INTERVAL_S
        assert s.max_history == 5
        assert s.quick_replies_enabled is False
        assert s.max_tool_rounds == 6
        assert s.periodic_interval_seconds == 0

    def test_clamps(self):
        s = SchedulerSettings(min_interval_seconds=2, max_history=0, periodic_interval_seconds=-5)
        assert s.min_interval_seconds == MIN_DISPATCH_INTERVAL_S
        assert s.max_history == 1
        assert s.periodic_interval_seconds == 0

    def test_larger_interval_kept(self):
        assert SchedulerSettings(min_interval_seconds=45).min_interval_seconds == 45

    def test_tool_rounds_bounded(self):
        with pytest.raises(ValidationError):
            SchedulerSettings(max_tool_rounds=0)
        with pytest.raises(ValidationError):
            SchedulerSettings(max_tool_rounds=17)

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("SCHEDULER_MIN_INTERVAL_SECONDS", "3")
        monkeypatch.setenv("SCHEDULER_QUICK_REPLIES_ENABLED", "true")
        s = SchedulerSettings()
        assert s.min_interval_seconds == MIN_DISPATCH_INTERVAL_S
        assert s.quick_replies_enabled is True


class TestCandidateSettings:
    def test_enabled_default_and_override(self):
        s = CandidateSettings(enabled={"weather": False})
        assert s.is_enabled("weather", True) is False
        assert s.is_enabled("rssFeed", True) is True
        assert s.is_enabled("screenshot", False) is False

    def test_weight_override(self):
        s = CandidateSettings(weights={"a": 2.0, "b": -1.0, "c": 0.0})
        assert s.weight_override("a") == 2.0
        assert s.weight_override("b") is None
        assert s.weight_override("c") == 0.0
        assert s.weight_override("missing") is None

    def test_json_env(self, monkeypatch):
        monkeypatch.setenv("CANDIDATES_WEIGHTS", '{"weather": 3, "hackerNews": 0.5}')
        monkeypatch.setenv("CANDIDATES_ENABLED", '{"screenshot": true}')
        s = CandidateSettings()
        assert s.weights == {"weather": 3.0, "hackerNews": 0.5}
        assert s.is_enabled("screenshot", False) is True


class TestOtherSettings:
    def test_break_reminder_floor(self):
        s = BreakReminderSettings(active_minutes=0, cooldown_minutes=-3)
        assert (s.active_minutes, s.cooldown_minutes) == (1, 1)

    def test_weather_cache_floor(self):
        assert WeatherSettings(cache_minutes=5).cache_minutes == 30

    def test_llm_env(self, monkeypatch):
        monkeypatch.setenv("LLM_MODEL", "qwen2.5")
        monkeypatch.setenv("LLM_BASE_URL", "http://localhost:11434/v1")
        s = LLMSettings()
        assert s.model == "qwen2.5"
        assert s.base_url == "http://localhost:11434/v1"
        assert s.probe_timeout_s == 5.0

    def test_persona_env(self, monkeypatch):
        monkeypatch.setenv("PERSONA_CHARACTER", "Hiyori")
        monkeypatch.setenv("PERSONA_CHARACTERS_DIR", "/tmp/cards")
        s = PersonaSettings()
        assert s.character == "Hiyori"
        assert s.characters_dir == Path("/tmp/cards")


def test_get_settings_composes_sections():
    settings = get_settings()
    assert settings.rss.feeds == list(DEFAULT_RSS_FEEDS)
    assert settings.scheduler.max_history >= 1
    assert settings.weather.cache_minutes >= 30

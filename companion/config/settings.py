from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from companion.constants import (
    DEFAULT_CHARACTER,
    DEFAULT_RSS_FEEDS,
    MIN_DISPATCH_INTERVAL_S,
)

# Load .env once at module import; all BaseSettings subclasses see the env vars
load_dotenv()


class LLMSettings(BaseSettings):
    """Model backend settings. Env vars prefixed with LLM_."""

    model_config = SettingsConfigDict(env_prefix="LLM_")

    base_url: str = "https://api.openai.com/v1"
    api_key: str = "dummy"
    model: str = "gpt-4o-mini"
    request_timeout_s: float = Field(60.0, gt=0)  # per model round, tool rounds included
    probe_timeout_s: float = Field(5.0, gt=0)


class SchedulerSettings(BaseSettings):
    """Dispatch scheduling settings. Env vars prefixed with SCHEDULER_."""

    model_config = SettingsConfigDict(env_prefix="SCHEDULER_")

    debounce_ms: int = Field(500, ge=0)
    min_interval_seconds: float = MIN_DISPATCH_INTERVAL_S
    max_history: int = 5
    quick_replies_enabled: bool = False
    max_tool_rounds: int = Field(6, ge=1, le=16)
    periodic_interval_seconds: float = 0.0  # 0 disables the periodic trigger

    @field_validator("min_interval_seconds")
    @classmethod
    def _clamp_min_interval(cls, v: float) -> float:
        return max(MIN_DISPATCH_INTERVAL_S, v)

    @field_validator("max_history")
    @classmethod
    def _clamp_max_history(cls, v: int) -> int:
        return max(1, v)

    @field_validator("periodic_interval_seconds")
    @classmethod
    def _clamp_periodic(cls, v: float) -> float:
        return max(0.0, v)


class CandidateSettings(BaseSettings):
    """Per-candidate enable flags and weight overrides. Env prefix CANDIDATES_.

    Values are JSON objects keyed by candidate id, e.g.
    CANDIDATES_WEIGHTS='{"weather": 3, "hackerNews": 0.5}'.
    """

    model_config = SettingsConfigDict(env_prefix="CANDIDATES_")

    enabled: dict[str, bool] = Field(default_factory=dict)
    weights: dict[str, float] = Field(default_factory=dict)

    def is_enabled(self, candidate_id: str, default: bool) -> bool:
        return self.enabled.get(candidate_id, default)

    def weight_override(self, candidate_id: str) -> float | None:
        """Return the user-configured weight, or None when absent or negative."""
        value = self.weights.get(candidate_id)
        if value is None or value < 0:
            return None
        return value


class BreakReminderSettings(BaseSettings):
    """Break reminder thresholds. Env vars prefixed with BREAK_REMINDER_."""

    model_config = SettingsConfigDict(env_prefix="BREAK_REMINDER_")

    active_minutes: int = 10
    cooldown_minutes: int = 5

    @field_validator("active_minutes", "cooldown_minutes")
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        return max(1, v)


class WeatherSettings(BaseSettings):
    """Weather watcher settings. Env vars prefixed with WEATHER_."""

    model_config = SettingsConfigDict(env_prefix="WEATHER_")

    location: str = "Tokyo, Japan"
    cache_minutes: int = 30

    @field_validator("cache_minutes")
    @classmethod
    def _clamp_cache(cls, v: int) -> int:
        return max(30, v)


class RSSFeedSettings(BaseSettings):
    """RSS reader settings. Env vars prefixed with RSS_."""

    model_config = SettingsConfigDict(env_prefix="RSS_")

    feeds: list[str] = Field(default_factory=lambda: list(DEFAULT_RSS_FEEDS))


class PersonaSettings(BaseSettings):
    """Character card settings. Env vars prefixed with PERSONA_."""

    model_config = SettingsConfigDict(env_prefix="PERSONA_")

    character: str = DEFAULT_CHARACTER
    characters_dir: Path = Path("characters")


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    candidates: CandidateSettings = Field(default_factory=CandidateSettings)
    break_reminder: BreakReminderSettings = Field(default_factory=BreakReminderSettings)
    weather: WeatherSettings = Field(default_factory=WeatherSettings)
    rss: RSSFeedSettings = Field(default_factory=RSSFeedSettings)
    persona: PersonaSettings = Field(default_factory=PersonaSettings)


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()

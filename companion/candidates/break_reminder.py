from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from companion.candidates.base import (
    CandidateGenerator,
    DispatchContext,
    PromptPayload,
    TextPrompt,
)

if TYPE_CHECKING:
    from companion.config.settings import BreakReminderSettings

logger = structlog.get_logger()

IDLE_RESET_S = 120.0


class BreakReminderCandidate(CandidateGenerator):
    """Suggests a short break after a long uninterrupted activity streak.

    The host feeds `record_activity()` on edits, saves and editor switches.
    A gap longer than two minutes starts a new streak.
    """

    def __init__(
        self,
        settings: BreakReminderSettings,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings
        self._clock = clock
        self._last_activity: float | None = None
        self._session_start: float | None = None
        self._last_notification: float | None = None

    @property
    def candidate_id(self) -> str:
        return "breakReminder"

    @property
    def name(self) -> str:
        return "Break Reminder"

    def activate(self) -> None:
        # a fresh session starts with the next detected activity
        self._last_activity = None
        self._session_start = None

    def record_activity(self) -> None:
        now = self._clock()
        if self._last_activity is None or now - self._last_activity > IDLE_RESET_S:
            self._session_start = now
        self._last_activity = now

    def _due(self) -> bool:
        now = self._clock()
        if self._session_start is None or self._last_activity is None:
            return False
        if now - self._last_activity > IDLE_RESET_S:
            return False
        if self._last_notification is not None:
            if now - self._last_notification < self._settings.cooldown_minutes * 60:
                return False
        return now - self._session_start >= self._settings.active_minutes * 60

    async def should_trigger(self, context: DispatchContext) -> bool:
        return self._due()

    async def generate_message(self, context: DispatchContext) -> PromptPayload | None:
        if not self._due():
            return None

        now = self._clock()
        streak_s = now - self._session_start if self._session_start is not None else 0.0
        streak_minutes = max(1, round(streak_s / 60))

        self._last_notification = now
        self._session_start = now
        self._last_activity = now
        logger.info("break_reminder_due", streak_minutes=streak_minutes)

        prompt = "\n".join(
            [
                f"I've been working steadily for about {streak_minutes} minutes, which is over "
                f"my configured break reminder threshold of {self._settings.active_minutes} minutes.",
                "In a friendly, upbeat tone, suggest I take a short break. Maybe stretch, "
                "refill water, or rest my eyes for a moment.",
                "Keep it concise (under 70 words) and acknowledge that a brief pause can "
                "improve focus when I get back.",
            ]
        )
        return TextPrompt(user_prompt=prompt)

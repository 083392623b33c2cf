from __future__ import annotations

import random
from typing import TYPE_CHECKING

import httpx

from companion.candidates.break_reminder import BreakReminderCandidate
from companion.candidates.code_review import CodeReviewCandidate
from companion.candidates.connectivity import ConnectivityProbe
from companion.candidates.hacker_news import HackerNewsCandidate
from companion.candidates.rss_feed import RSSFeedCandidate
from companion.candidates.screenshot import ScreenshotCandidate
from companion.candidates.weather import WeatherCandidate

if TYPE_CHECKING:
    from companion.candidates.registry import CandidateRegistry
    from companion.config.settings import Settings


def register_builtins(
    registry: CandidateRegistry,
    settings: Settings,
    *,
    probe: ConnectivityProbe | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    rng: random.Random | None = None,
) -> None:
    """Register all built-in candidate generators.

    Network-backed generators share one connectivity probe. Registration
    order is the selection order for weighted draws.
    """
    probe = probe or ConnectivityProbe()
    registry.register(CodeReviewCandidate())
    registry.register(HackerNewsCandidate(transport=transport, rng=rng))
    registry.register(ScreenshotCandidate())
    registry.register(RSSFeedCandidate(settings.rss, probe, transport=transport, rng=rng))
    registry.register(BreakReminderCandidate(settings.break_reminder))
    registry.register(WeatherCandidate(settings.weather, probe, transport=transport))

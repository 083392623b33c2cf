"""Tests for CandidateRegistry registration, eligibility and weighted selection."""

from __future__ import annotations

import random

import pytest

from companion.candidates.registry import CandidateRegistry
from companion.config.settings import CandidateSettings
from tests.fakes import StaticCandidate, make_context, make_settings


def _registry(*candidates) -> CandidateRegistry:
    registry = CandidateRegistry()
    for c in candidates:
        registry.register(c)
    return registry


class TestRegistration:
    def test_duplicate_id_rejected(self):
        registry = _registry(StaticCandidate("a"))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(StaticCandidate("a"))

    def test_empty_id_rejected(self):
        with pytest.raises(ValueError, match="non-empty"):
            CandidateRegistry().register(StaticCandidate(""))

    def test_lookup_and_order(self):
        a, b = StaticCandidate("a"), StaticCandidate("b")
        registry = _registry(a, b)
        assert registry.get("b") is b
        assert registry.get("zzz") is None
        assert registry.list_candidates() == [a, b]


class TestEligibility:
    @pytest.mark.asyncio
    async def test_disabled_and_ineligible_excluded(self, settings, context):
        on = StaticCandidate("on")
        registry = _registry(
            on,
            StaticCandidate("off", enabled=False),
            StaticCandidate("busy", eligible=False),
            StaticCandidate("broken", eligible=RuntimeError("dns")),
        )
        assert await registry.eligible(settings, context) == [on]

    @pytest.mark.asyncio
    async def test_config_flag_overrides_default(self):
        settings = make_settings(candidates=CandidateSettings(enabled={"off": True, "on": False}))
        off = StaticCandidate("off", enabled=False)
        registry = _registry(StaticCandidate("on"), off)
        assert await registry.eligible(settings, make_context(settings)) == [off]


class TestWeights:
    def test_override_and_invalid_weights(self):
        settings = make_settings(candidates=CandidateSettings(weights={"a": 4.0, "b": -1.0}))
        a = StaticCandidate("a", weight=1.0)
        b = StaticCandidate("b", weight=2.5)
        c = StaticCandidate("c", weight=float("nan"))
        registry = _registry(a, b, c)
        assert registry.effective_weight(a, settings) == 4.0
        assert registry.effective_weight(b, settings) == 2.5
        assert registry.effective_weight(c, settings) == 0.0


class TestSelect:
    @pytest.mark.asyncio
    async def test_weighted_distribution(self, settings, context):
        heavy = StaticCandidate("heavy", weight=3.0)
        light = StaticCandidate("light", weight=1.0)
        registry = _registry(heavy, light)
        rng = random.Random(1234)

        trials = 10_000
        hits = 0
        for _ in range(trials):
            if await registry.select(settings, context, rng=rng) is heavy:
                hits += 1
        assert abs(hits / trials - 0.75) < 0.02

    @pytest.mark.asyncio
    async def test_zero_total_weight_returns_none(self, settings, context):
        registry = _registry(StaticCandidate("a", weight=0), StaticCandidate("b", weight=0))
        assert await registry.select(settings, context) is None

    @pytest.mark.asyncio
    async def test_nothing_eligible_returns_none(self, settings, context):
        registry = _registry(StaticCandidate("a", eligible=False))
        assert await registry.select(settings, context) is None

    @pytest.mark.asyncio
    async def test_zero_weight_never_chosen(self, settings, context):
        zero = StaticCandidate("zero", weight=0)
        one = StaticCandidate("one", weight=1)
        registry = _registry(zero, one)

        class LowRandom(random.Random):
            def random(self):
                return 0.0

        assert await registry.select(settings, context, rng=LowRandom()) is one

    @pytest.mark.asyncio
    async def test_disabled_heavy_candidate_never_chosen(self, settings, context):
        a = StaticCandidate("a", weight=1.0)
        b = StaticCandidate("b", weight=5.0, enabled=False)
        registry = _registry(a, b)
        rng = random.Random(99)

        picks = {await registry.select(settings, context, rng=rng) for _ in range(200)}
        assert picks == {a}


class TestHooks:
    def test_notify_response_only_for_overriders(self):
        from companion.candidates.code_review import CodeReviewCandidate

        listener = StaticCandidate("listener")
        registry = _registry(listener, CodeReviewCandidate())
        registry.notify_response(listener, "hi")
        registry.notify_response(registry.get("codeReview"), "ignored")
        assert listener.responses == ["hi"]

    def test_activate_only_enabled(self):
        class Tracking(StaticCandidate):
            def __init__(self, cid, **kw):
                super().__init__(cid, **kw)
                self.active = False

            def activate(self):
                self.active = True

            def deactivate(self):
                self.active = False

        on, off = Tracking("on"), Tracking("off", enabled=False)
        registry = _registry(on, off)
        registry.activate_all(make_settings())
        assert on.active and not off.active
        registry.deactivate_all()
        assert not on.active

    def test_record_activity_reaches_break_reminder(self):
        from companion.candidates.break_reminder import BreakReminderCandidate
        from companion.config.settings import BreakReminderSettings

        reminder = BreakReminderCandidate(BreakReminderSettings())
        registry = _registry(StaticCandidate("plain"), reminder)
        registry.record_activity()
        assert reminder._last_activity is not None

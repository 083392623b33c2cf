"""CandidateRegistry: the set of generators and weighted random selection.

Generators are registered once at startup. Which optional hooks a generator
overrides is resolved at registration, so selection never probes for them.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from companion.candidates.base import CandidateGenerator, DispatchContext

if TYPE_CHECKING:
    from companion.config.settings import Settings

logger = structlog.get_logger()


def _overrides(generator: CandidateGenerator, hook: str) -> bool:
    return getattr(type(generator), hook) is not getattr(CandidateGenerator, hook)


@dataclass(frozen=True)
class CandidateEntry:
    """A registered generator with its capabilities."""

    generator: CandidateGenerator
    checks_trigger: bool
    wants_feedback: bool


class CandidateRegistry:
    """Registry of candidate generators, in registration order."""

    def __init__(self) -> None:
        self._entries: dict[str, CandidateEntry] = {}

    def register(self, generator: CandidateGenerator) -> None:
        """Register a generator. Raises ValueError on empty or duplicate id."""
        candidate_id = generator.candidate_id
        if not candidate_id:
            raise ValueError("Candidate id must be non-empty")
        if candidate_id in self._entries:
            raise ValueError(f"Candidate already registered: {candidate_id}")
        entry = CandidateEntry(
            generator=generator,
            checks_trigger=_overrides(generator, "should_trigger"),
            wants_feedback=_overrides(generator, "on_response"),
        )
        self._entries[candidate_id] = entry
        logger.info(
            "candidate_registered",
            candidate_id=candidate_id,
            checks_trigger=entry.checks_trigger,
            wants_feedback=entry.wants_feedback,
        )

    def get(self, candidate_id: str) -> CandidateGenerator | None:
        entry = self._entries.get(candidate_id)
        return entry.generator if entry else None

    def list_candidates(self) -> list[CandidateGenerator]:
        return [e.generator for e in self._entries.values()]

    def enabled(self, settings: Settings) -> list[CandidateGenerator]:
        return [g for g in self.list_candidates() if g.is_enabled(settings)]

    def effective_weight(self, generator: CandidateGenerator, settings: Settings) -> float:
        """User override when present and >= 0, else the generator's default."""
        override = settings.candidates.weight_override(generator.candidate_id)
        weight = override if override is not None else generator.get_weight(settings)
        if not math.isfinite(weight) or weight < 0:
            return 0.0
        return weight

    async def eligible(
        self, settings: Settings, context: DispatchContext
    ) -> list[CandidateGenerator]:
        """Enabled generators whose trigger check passes, in registration order.

        A trigger check that raises counts as not eligible.
        """
        result: list[CandidateGenerator] = []
        for entry in self._entries.values():
            generator = entry.generator
            if not generator.is_enabled(settings):
                continue
            if entry.checks_trigger:
                try:
                    if not await generator.should_trigger(context):
                        continue
                except Exception:
                    logger.exception(
                        "candidate_trigger_check_failed",
                        candidate_id=generator.candidate_id,
                    )
                    continue
            result.append(generator)
        return result

    async def select(
        self,
        settings: Settings,
        context: DispatchContext,
        *,
        rng: random.Random | None = None,
    ) -> CandidateGenerator | None:
        """Weighted random choice among eligible generators.

        Returns None when nothing is eligible or the total weight is zero.
        Draws u in [0, total) and subtracts weights in registration order;
        the generator that takes u to or below zero wins.
        """
        eligible = await self.eligible(settings, context)
        weighted = [
            (g, w) for g in eligible if (w := self.effective_weight(g, settings)) > 0
        ]
        total = sum(w for _, w in weighted)
        if not weighted or total <= 0:
            logger.debug("candidate_selection_empty", eligible=len(eligible))
            return None

        remaining = (rng or random).random() * total
        for generator, weight in weighted:
            remaining -= weight
            if remaining <= 0:
                return generator
        # float rounding can leave a sliver above zero
        return weighted[-1][0]

    def notify_response(self, generator: CandidateGenerator, text: str) -> None:
        entry = self._entries.get(generator.candidate_id)
        if entry is None or not entry.wants_feedback:
            return
        try:
            generator.on_response(text)
        except Exception:
            logger.exception("candidate_on_response_failed", candidate_id=generator.candidate_id)

    def record_activity(self) -> None:
        for generator in self.list_candidates():
            try:
                generator.record_activity()
            except Exception:
                logger.exception(
                    "candidate_record_activity_failed", candidate_id=generator.candidate_id
                )

    def activate_all(self, settings: Settings) -> None:
        for generator in self.enabled(settings):
            generator.activate()

    def deactivate_all(self) -> None:
        for generator in self.list_candidates():
            try:
                generator.deactivate()
            except Exception:
                logger.exception("candidate_deactivate_failed", candidate_id=generator.candidate_id)

"""Fakes and builders shared by the companion tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from companion.agent.history import ConversationHistory
from companion.agent.model_client import ConnectivityResult, ModelClient, ModelReply
from companion.candidates.base import (
    CandidateGenerator,
    DispatchContext,
    DocumentSnapshot,
    PromptPayload,
    TextPrompt,
)
from companion.config.settings import CandidateSettings, SchedulerSettings, Settings


class FakeModelClient(ModelClient):
    """Scripted model backend.

    Each invoke pops the next scripted item: a ModelReply is returned, an
    exception is raised. When the script runs dry `default` is returned.
    Set `gate` to hold every invoke until the event is set.
    """

    def __init__(self, script: list[ModelReply | Exception] | None = None, default: str = "ok"):
        self.script = list(script or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = None

    async def invoke(self, messages, *, tools=None) -> ModelReply:
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools})
        if self.gate is not None:
            await self.gate.wait()
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        return ModelReply(text=self.default)

    async def test_connectivity(self) -> ConnectivityResult:
        return ConnectivityResult(ok=True)

    def last_user_content(self, index: int = -1) -> Any:
        return self.calls[index]["messages"][-1]["content"]


class StaticCandidate(CandidateGenerator):
    """Candidate with fixed id, weight and payload."""

    def __init__(
        self,
        candidate_id: str = "static",
        *,
        payload: PromptPayload | None | Exception = None,
        weight: float = 1.0,
        enabled: bool = True,
        eligible: bool | Exception = True,
    ) -> None:
        self._id = candidate_id
        self._payload = payload if payload is not None else TextPrompt(f"prompt from {candidate_id}")
        self.default_weight = weight
        self.default_enabled = enabled
        self._eligible = eligible
        self.generate_calls = 0
        self.responses: list[str] = []
        self.contexts: list[DispatchContext] = []

    @property
    def candidate_id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._id.title()

    async def should_trigger(self, context: DispatchContext) -> bool:
        if isinstance(self._eligible, Exception):
            raise self._eligible
        return self._eligible

    async def generate_message(self, context: DispatchContext) -> PromptPayload | None:
        self.generate_calls += 1
        self.contexts.append(context)
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def on_response(self, text: str) -> None:
        self.responses.append(text)


class SkippingCandidate(StaticCandidate):
    async def generate_message(self, context: DispatchContext) -> PromptPayload | None:
        self.generate_calls += 1
        return None


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(
    *,
    candidates: CandidateSettings | None = None,
    **scheduler: Any,
) -> Settings:
    return Settings(
        scheduler=SchedulerSettings(**scheduler),
        candidates=candidates or CandidateSettings(),
    )


def make_context(
    settings: Settings | None = None,
    *,
    document: DocumentSnapshot | None = None,
    enqueue: Callable[..., None] | None = None,
    recent_files: list[str] | None = None,
) -> DispatchContext:
    return DispatchContext(
        settings=settings or make_settings(),
        history=ConversationHistory(),
        enqueue_message=enqueue or (lambda *a, **kw: None),
        document=document,
        recent_files=list(recent_files or []),
    )

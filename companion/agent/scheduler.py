"""Scheduler: decides when to call the model and what to send it.

Flow: trigger → debounce → single-flight check → cooldown check →
      dispatch (queue or candidate → prompt → model ↔ tools → history → event)

All state lives on one asyncio event loop. The single-flight flag is a plain
bool: it is set before the first await of a cycle and cleared in `finally`,
and nothing can interleave between the check and the set.
"""

from __future__ import annotations

import asyncio
import random
import time
import uuid
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, replace
from typing import Any

import structlog

from companion.agent.events import (
    DispatchEvent,
    DispatchFailed,
    DispatchSucceeded,
    ImageAttachment,
    ThinkingStarted,
    ThinkingStopped,
)
from companion.agent.history import ConversationHistory, ConversationTurn, Role
from companion.agent.message_queue import MessageQueue
from companion.agent.model_client import ConnectivityResult, ModelClient, ModelReply, ToolCall
from companion.agent.persona import PersonaLoader
from companion.agent.reply_cleanup import clean_reply
from companion.candidates.base import (
    CandidateGenerator,
    DispatchContext,
    DocumentSnapshot,
    ImagePrompt,
    PromptPayload,
    TextPrompt,
)
from companion.candidates.registry import CandidateRegistry
from companion.config.settings import Settings
from companion.infra.errors import (
    BackendConnectionError,
    CandidateError,
    CompanionError,
    ToolLoopError,
    classify_error,
)
from companion.tools.base import ToolContext
from companion.tools.registry import ToolRegistry

logger = structlog.get_logger()

EventSink = Callable[[DispatchEvent], None]


@dataclass(frozen=True)
class PreparedTurn:
    """The user turn chosen for one cycle and where it came from."""

    text: str
    image: ImageAttachment | None = None
    appended_text: str | None = None
    generator: CandidateGenerator | None = None

    def to_openai(self) -> dict[str, Any]:
        if self.image is None:
            return {"role": "user", "content": self.text}
        return {
            "role": "user",
            "content": [
                {"type": "text", "text": self.text},
                {"type": "image_url", "image_url": {"url": self.image.data_uri()}},
            ],
        }


class Scheduler:
    """Arbitrates one shared model backend between user messages and candidates.

    - `trigger()` is debounced; only the last hint in a burst survives.
    - Triggers that land while a cycle is in flight are dropped.
    - A cooldown floor separates completed cycles; a debounced trigger that
      hits it is rescheduled once for the remaining time, direct candidate
      triggers are simply dropped.
    - Queued messages always win over candidates at the next cycle.
    """

    def __init__(
        self,
        *,
        model_client: ModelClient,
        candidates: CandidateRegistry,
        settings: Settings,
        persona: PersonaLoader,
        sink: EventSink,
        tool_registry: ToolRegistry | None = None,
        queue: MessageQueue | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
        debounce_s: float | None = None,
        min_interval_s: float | None = None,
    ) -> None:
        self._model_client = model_client
        self._candidates = candidates
        self._settings = settings
        self._persona = persona
        self._sink = sink
        self._tool_registry = tool_registry
        self._queue = queue or MessageQueue()
        self._rng = rng or random.Random()
        self._clock = clock

        sched = settings.scheduler
        self._debounce_s = debounce_s if debounce_s is not None else sched.debounce_ms / 1000
        self._min_interval_s = (
            min_interval_s if min_interval_s is not None else sched.min_interval_seconds
        )
        self._max_history = sched.max_history
        self._max_tool_rounds = sched.max_tool_rounds
        self._round_timeout_s = settings.llm.request_timeout_s

        self._history = ConversationHistory()
        self._character = settings.persona.character
        self._document: DocumentSnapshot | None = None
        self._recent_files: list[str] = []

        self._in_flight = False
        self._last_completed_at: float | None = None
        self._debounce_handle: asyncio.TimerHandle | None = None
        self._cooldown_handle: asyncio.TimerHandle | None = None
        self._periodic_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._generation = 0
        self._started = False
        self._disposed = False

    # ------------------------------------------------------------------
    # Inbound interface
    # ------------------------------------------------------------------

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def last_completed_at(self) -> float | None:
        return self._last_completed_at

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def queue(self) -> MessageQueue:
        return self._queue

    @property
    def character(self) -> str:
        return self._character

    def start(self) -> None:
        """Activate candidates and start the periodic trigger if configured."""
        if self._started or self._disposed:
            return
        self._started = True
        self._candidates.activate_all(self._settings)
        interval = self._settings.scheduler.periodic_interval_seconds
        if interval > 0:
            self._periodic_task = asyncio.get_running_loop().create_task(
                self._periodic_loop(interval)
            )
            logger.info("periodic_trigger_started", interval_s=interval)

    def trigger(self, candidate_id: str | None = None) -> None:
        """Debounced dispatch request. None lets the registry choose."""
        if self._disposed:
            return
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        loop = asyncio.get_running_loop()
        self._debounce_handle = loop.call_later(
            self._debounce_s, self._on_debounce_elapsed, candidate_id
        )

    def enqueue_user_message(self, text: str, *, priority: bool = False) -> None:
        if priority:
            self._queue.enqueue_front(text)
        else:
            self._queue.enqueue(text)
        logger.debug("message_enqueued", priority=priority, queued=len(self._queue))

    async def trigger_candidate(self, candidate_id: str, trigger_type: str = "manual") -> None:
        """Fire one candidate now. No-op when unknown, disabled, busy or cooling down."""
        if self._disposed:
            return
        generator = self._candidates.get(candidate_id)
        if generator is None or not generator.is_enabled(self._settings):
            logger.info("candidate_trigger_ignored", candidate_id=candidate_id)
            return
        logger.info("candidate_triggered", candidate_id=candidate_id, trigger_type=trigger_type)
        await self._run(candidate_id, skip_reschedule=True)

    async def trigger_random_eligible(self) -> None:
        """Pick an eligible candidate by weight and fire it now.

        Selection runs inside the guarded cycle, so trigger checks never
        overlap with another cycle's hooks.
        """
        if self._disposed or self._in_flight:
            return
        await self._run(None, skip_reschedule=True, trigger_type="periodic")

    def record_activity(self) -> None:
        """Forward a user activity signal to the candidates that track it."""
        self._candidates.record_activity()

    def reset_history(self) -> None:
        self._history.reset()
        logger.info("history_reset", reason="explicit")

    def set_persona(self, character: str) -> None:
        """Switch the active character. Conversation starts over."""
        self._character = character
        self._history.reset()
        logger.info("history_reset", reason="persona_changed", character=character)

    def set_active_document(self, document: DocumentSnapshot | None) -> None:
        self._document = document

    def record_recent_files(self, files: list[str]) -> None:
        self._recent_files = list(files)

    def export_history(self) -> list[dict[str, str]]:
        return self._history.export()

    async def test_connectivity(self) -> ConnectivityResult:
        return await self._model_client.test_connectivity()

    def dispose(self) -> None:
        """Cancel timers and drop in-flight work. Safe to call repeatedly."""
        if self._disposed:
            return
        self._disposed = True
        self._generation += 1
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._cooldown_handle is not None:
            self._cooldown_handle.cancel()
            self._cooldown_handle = None
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            self._periodic_task = None
        for task in list(self._tasks):
            task.cancel()
        self._candidates.deactivate_all()
        logger.info("scheduler_disposed")

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_debounce_elapsed(self, candidate_id: str | None) -> None:
        self._debounce_handle = None
        if candidate_id is not None:
            generator = self._candidates.get(candidate_id)
            if generator is not None and generator.is_enabled(self._settings):
                logger.info("candidate_triggered", candidate_id=candidate_id, trigger_type="auto")
        self._spawn(self._run(candidate_id))

    def _on_cooldown_elapsed(self, candidate_id: str | None) -> None:
        self._cooldown_handle = None
        self._spawn(self._run(candidate_id, after_cooldown=True))

    async def _periodic_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.trigger_random_eligible()
            except Exception:
                logger.exception("periodic_trigger_failed")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _run(
        self,
        candidate_id: str | None,
        *,
        skip_reschedule: bool = False,
        after_cooldown: bool = False,
        trigger_type: str | None = None,
    ) -> None:
        if self._disposed:
            return
        if self._in_flight:
            logger.debug("trigger_dropped_in_flight", candidate_id=candidate_id)
            return

        # The cooldown timer is armed for exactly the remaining delta, so a
        # run it starts is past the floor and must not re-arm it.
        if not after_cooldown and self._last_completed_at is not None:
            elapsed = self._clock() - self._last_completed_at
            if elapsed < self._min_interval_s:
                if skip_reschedule:
                    logger.debug("trigger_dropped_cooldown", candidate_id=candidate_id)
                    return
                delay = max(0.0, self._min_interval_s - elapsed)
                if self._cooldown_handle is not None:
                    self._cooldown_handle.cancel()
                self._cooldown_handle = asyncio.get_running_loop().call_later(
                    delay, self._on_cooldown_elapsed, candidate_id
                )
                logger.debug("trigger_rescheduled_cooldown", delay_s=round(delay, 3))
                return

        await self._dispatch(candidate_id, trigger_type)

    async def _dispatch(self, candidate_id: str | None, trigger_type: str | None = None) -> None:
        self._in_flight = True
        generation = self._generation
        cycle_id = uuid.uuid4().hex[:12]
        log = logger.bind(cycle_id=cycle_id)
        try:
            self._emit(ThinkingStarted())
            system_prompt = self._persona.system_prompt(self._character)
            document = self._document
            if self._history.sync_document(document.path if document else None):
                log.info("history_reset", reason="document_changed")
            self._history.ensure_system(system_prompt)

            prepared = await self._prepare_turn(candidate_id, log, trigger_type)
            if prepared is None:
                return

            tool_context = ToolContext(cycle_id=cycle_id)
            new_turns = await self._invoke_model(prepared, tool_context, log)
            reply_text = new_turns[-1].content

            if generation != self._generation:
                return
            if prepared.generator is not None:
                self._candidates.notify_response(prepared.generator, reply_text)

            self._history.extend(new_turns, max_turns=self._max_history)

            display_text = (
                f"{reply_text}\n\n{prepared.appended_text}"
                if prepared.appended_text
                else reply_text
            )
            self._emit(
                DispatchSucceeded(
                    display_text=display_text,
                    reply_text=reply_text,
                    appended_text=prepared.appended_text,
                    image=prepared.image,
                    quick_replies=list(tool_context.quick_replies),
                    candidate_id=(
                        prepared.generator.candidate_id if prepared.generator else None
                    ),
                )
            )
            log.info("dispatch_complete", chars=len(reply_text), history=len(self._history))
        except Exception as exc:
            if generation != self._generation:
                return
            kind = classify_error(exc)
            log.exception("dispatch_failed", kind=kind.value)
            self._emit(
                DispatchFailed(
                    kind=kind,
                    message=str(exc) or type(exc).__name__,
                    code=exc.code if isinstance(exc, CompanionError) else "DISPATCH_ERROR",
                )
            )
        finally:
            self._in_flight = False
            self._last_completed_at = self._clock()
            if generation == self._generation:
                self._emit(ThinkingStopped())

    async def _prepare_turn(
        self,
        candidate_id: str | None,
        log: structlog.typing.FilteringBoundLogger,
        trigger_type: str | None = None,
    ) -> PreparedTurn | None:
        """Queue head if any, else a candidate prompt. None aborts the cycle."""
        message = self._queue.dequeue()
        if message is not None:
            log.info("dispatch_started", source="queue", priority=message.priority)
            return PreparedTurn(text=message.text)

        context = self._build_context()
        if candidate_id is not None:
            generator = self._candidates.get(candidate_id)
            if generator is None or not generator.is_enabled(self._settings):
                log.info("candidate_unavailable", candidate_id=candidate_id)
                return None
        else:
            generator = await self._candidates.select(self._settings, context, rng=self._rng)
            if generator is None:
                log.debug("no_candidate_selected")
                return None
            if trigger_type is not None:
                log.info(
                    "candidate_triggered",
                    candidate_id=generator.candidate_id,
                    trigger_type=trigger_type,
                )

        try:
            payload = await self._generate(generator, context)
        except CandidateError as e:
            log.warning(
                "candidate_failed", candidate_id=e.candidate_id, code=e.code, error=str(e)
            )
            return None

        if payload is None:
            log.info("candidate_skipped", candidate_id=generator.candidate_id)
            return None

        log.info("dispatch_started", source="candidate", candidate_id=generator.candidate_id)
        return PreparedTurn(
            text=payload.user_prompt,
            image=payload.image if isinstance(payload, ImagePrompt) else None,
            appended_text=payload.display_append_text,
            generator=generator,
        )

    async def _generate(
        self, generator: CandidateGenerator, context: DispatchContext
    ) -> PromptPayload | None:
        """Run a generator. Raises CandidateError when it fails or returns junk."""
        try:
            payload = await generator.generate_message(context)
        except Exception as e:
            raise CandidateError(generator.candidate_id, str(e) or type(e).__name__) from e
        if payload is None:
            return None
        if not isinstance(payload, (TextPrompt, ImagePrompt)) or not payload.user_prompt:
            raise CandidateError(generator.candidate_id, "malformed prompt payload")
        return payload

    async def _invoke_model(
        self,
        prepared: PreparedTurn,
        tool_context: ToolContext,
        log: structlog.typing.FilteringBoundLogger,
    ) -> list[ConversationTurn]:
        """Call the model, resolving tool calls, and return the cycle's turns.

        The last returned turn is the cleaned final assistant reply. Nothing
        is written to history here.
        """
        tools = None
        if self._settings.scheduler.quick_replies_enabled and self._tool_registry:
            tools = self._tool_registry.get_tools_schema() or None

        messages = [*self._history.to_openai(), prepared.to_openai()]
        new_turns: list[ConversationTurn] = [ConversationTurn(role=Role.user, content=prepared.text)]

        reply = await self._invoke_round(messages, tools)
        for round_no in range(1, self._max_tool_rounds + 1):
            if tools is None or not reply.tool_calls:
                break
            calls = [
                tc if tc.call_id else replace(tc, call_id=f"tool-{uuid.uuid4().hex[:12]}")
                for tc in reply.tool_calls
            ]
            assistant_turn = ConversationTurn(
                role=Role.assistant,
                content=reply.text,
                tool_calls=tuple(tc.to_openai() for tc in calls),
            )
            messages.append(assistant_turn.to_openai())
            new_turns.append(assistant_turn)

            for call in calls:
                result = await self._execute_tool(call, tool_context)
                tool_turn = ConversationTurn(
                    role=Role.tool, content=result, tool_call_id=call.call_id
                )
                messages.append(tool_turn.to_openai())
                new_turns.append(tool_turn)

            log.info("tool_call_round", round=round_no, tools_called=len(calls))
            reply = await self._invoke_round(messages, tools)
        else:
            if tools is not None and reply.tool_calls:
                log.warning("max_tool_rounds", max=self._max_tool_rounds)
                raise ToolLoopError(
                    f"Model still requested tools after {self._max_tool_rounds} rounds"
                )

        new_turns.append(ConversationTurn(role=Role.assistant, content=clean_reply(reply.text)))
        return new_turns

    async def _invoke_round(
        self, messages: list[dict[str, Any]], tools: list[dict] | None
    ) -> ModelReply:
        try:
            return await asyncio.wait_for(
                self._model_client.invoke(list(messages), tools=tools),
                timeout=self._round_timeout_s,
            )
        except TimeoutError as e:
            raise BackendConnectionError(
                f"Model call timed out after {self._round_timeout_s:.0f}s"
            ) from e

    async def _execute_tool(self, call: ToolCall, tool_context: ToolContext) -> str:
        if self._tool_registry is None:
            return f'Tool "{call.name}" is not implemented.'
        result = await self._tool_registry.execute(call, tool_context)
        return result.content

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_context(self) -> DispatchContext:
        return DispatchContext(
            settings=self._settings,
            history=self._history,
            enqueue_message=self.enqueue_user_message,
            document=self._document,
            recent_files=list(self._recent_files),
        )

    def _emit(self, event: DispatchEvent) -> None:
        try:
            self._sink(event)
        except Exception:
            logger.exception("event_sink_failed", event_type=type(event).__name__)

"""Console front-end.

    python -m companion chat     talk to the companion from the terminal
    python -m companion probe    check that the model backend answers
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Callable

import structlog
from pydantic import ValidationError

from companion.agent.events import (
    DispatchEvent,
    DispatchFailed,
    DispatchSucceeded,
    ThinkingStarted,
    ThinkingStopped,
)
from companion.agent.scheduler import Scheduler
from companion.app import build_model_client, build_scheduler
from companion.config.settings import Settings, get_settings
from companion.infra.logging import setup_logging

logger = structlog.get_logger()

QUIT_COMMANDS = frozenset({"/quit", "/exit"})


def render_event(event: DispatchEvent) -> str | None:
    """Console text for an event, or None when nothing should be printed."""
    match event:
        case ThinkingStarted():
            return "..."
        case DispatchSucceeded():
            text = event.display_text
            if event.quick_replies:
                options = " | ".join(event.quick_replies)
                text = f"{text}\n  [{options}]"
            return text
        case DispatchFailed() if event.is_setup_error:
            return f"[setup] {event.message}"
        case DispatchFailed():
            return f"[error] {event.message}"
    return None


def _print_event(event: DispatchEvent) -> None:
    text = render_event(event)
    if text is not None:
        print(text, flush=True)


class ChatSink:
    """Prints events and keeps the queue draining.

    A line typed while a reply is in flight has its trigger dropped, so when
    a cycle ends with lines still queued another dispatch is requested.
    """

    def __init__(self, printer: Callable[[DispatchEvent], None] = _print_event) -> None:
        self._printer = printer
        self.scheduler: Scheduler | None = None

    def __call__(self, event: DispatchEvent) -> None:
        self._printer(event)
        if (
            isinstance(event, ThinkingStopped)
            and self.scheduler is not None
            and len(self.scheduler.queue) > 0
        ):
            self.scheduler.trigger()


async def _chat(settings: Settings) -> int:
    sink = ChatSink()
    scheduler = build_scheduler(settings, sink)
    sink.scheduler = scheduler
    scheduler.start()
    loop = asyncio.get_running_loop()
    print(f"Chatting with {scheduler.character}. /reset clears history, /quit exits.", flush=True)
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            text = line.strip()
            if not text:
                continue
            if text in QUIT_COMMANDS:
                break
            if text == "/reset":
                scheduler.reset_history()
                continue
            scheduler.record_activity()
            scheduler.enqueue_user_message(text, priority=True)
            scheduler.trigger()
    finally:
        scheduler.dispose()
    return 0


async def _probe(settings: Settings) -> int:
    client = build_model_client(settings)
    result = await client.test_connectivity()
    if result.ok:
        print(f"ok: {settings.llm.model} at {settings.llm.base_url}")
        return 0
    print(f"failed: {result.error}", file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="companion", description="Coding companion dispatcher")
    parser.add_argument("command", choices=["chat", "probe"], help="What to run")
    parser.add_argument("--character", help="Character card to use (overrides PERSONA_CHARACTER)")
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    args = parser.parse_args(argv)

    setup_logging(json_output=args.json_logs, log_level=args.log_level)

    try:
        settings = get_settings()
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 2
    if args.character:
        settings.persona.character = args.character

    runner = _chat if args.command == "chat" else _probe
    try:
        return asyncio.run(runner(settings))
    except KeyboardInterrupt:
        return 130

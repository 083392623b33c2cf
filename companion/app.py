from __future__ import annotations

import random

import httpx
import structlog

from companion.agent.model_client import ModelClient, OpenAICompatModelClient
from companion.agent.persona import PersonaLoader
from companion.agent.scheduler import EventSink, Scheduler
from companion.candidates import CandidateRegistry, register_builtins
from companion.candidates.connectivity import ConnectivityProbe
from companion.config.settings import Settings
from companion.tools.quick_replies import QuickRepliesTool
from companion.tools.registry import ToolRegistry

logger = structlog.get_logger()


def build_model_client(settings: Settings) -> OpenAICompatModelClient:
    return OpenAICompatModelClient(
        api_key=settings.llm.api_key,
        model=settings.llm.model,
        base_url=settings.llm.base_url,
        request_timeout_s=settings.llm.request_timeout_s,
        probe_timeout_s=settings.llm.probe_timeout_s,
    )


def build_scheduler(
    settings: Settings,
    sink: EventSink,
    *,
    model_client: ModelClient | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    rng: random.Random | None = None,
) -> Scheduler:
    """Wire the scheduler with built-in candidates and tools."""
    candidates = CandidateRegistry()
    register_builtins(
        candidates,
        settings,
        probe=ConnectivityProbe(),
        transport=transport,
        rng=rng,
    )

    tool_registry = ToolRegistry()
    tool_registry.register(QuickRepliesTool())

    client = model_client or build_model_client(settings)
    logger.info(
        "scheduler_built",
        model=settings.llm.model,
        candidates=len(candidates.list_candidates()),
        quick_replies=settings.scheduler.quick_replies_enabled,
    )
    return Scheduler(
        model_client=client,
        candidates=candidates,
        settings=settings,
        persona=PersonaLoader(settings.persona.characters_dir),
        sink=sink,
        tool_registry=tool_registry,
        rng=rng,
    )

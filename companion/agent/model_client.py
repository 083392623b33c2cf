from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog
from openai import (
    NOT_GIVEN,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
)

from companion.infra.errors import (
    BackendConnectionError,
    LLMError,
    ModelNotFoundError,
    looks_like_missing_model,
)

logger = structlog.get_logger()

T = TypeVar("T")

PROBE_PROMPT = "Hi"


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model. Arguments are raw JSON text."""

    call_id: str
    name: str
    arguments: str = ""

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.call_id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class ModelReply:
    """One model round: text content and any pending tool calls."""

    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass(frozen=True)
class ConnectivityResult:
    ok: bool
    error: str | None = None


class ModelClient(ABC):
    """Abstract base class for LLM model clients."""

    @abstractmethod
    async def invoke(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict] | None = None,
    ) -> ModelReply:
        """Send the conversation and return the model's reply.

        Raises BackendConnectionError, ModelNotFoundError or LLMError.
        """
        ...

    @abstractmethod
    async def test_connectivity(self) -> ConnectivityResult:
        """Quick reachability probe. Never raises."""
        ...


def _first_choice(response, *, context: str = ""):
    """Extract first choice from response, raising LLMError if empty."""
    if not response.choices:
        raise LLMError(f"Empty choices from provider ({context})")
    return response.choices[0]


def _translate_status_error(e: APIStatusError) -> LLMError:
    message = f"LLM API error: {e.status_code} {e.message}"
    if looks_like_missing_model(str(e.message)):
        return ModelNotFoundError(message)
    return LLMError(message)


class OpenAICompatModelClient(ModelClient):
    """Model client using the OpenAI SDK.

    Works with OpenAI, Gemini, Ollama and other OpenAI-compatible endpoints.
    No retries: a failed dispatch waits for the next trigger instead.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        *,
        request_timeout_s: float = 60.0,
        probe_timeout_s: float = 5.0,
    ) -> None:
        self._model = model
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=request_timeout_s,
            max_retries=0,
        )
        self._probe_client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=probe_timeout_s,
            max_retries=0,
        )

    @property
    def model(self) -> str:
        return self._model

    async def _call(
        self,
        coro_factory: Callable[[], Coroutine[Any, Any, T]],
        *,
        context: str = "",
    ) -> T:
        """Execute an SDK call, translating SDK errors into the LLMError family."""
        try:
            return await coro_factory()
        except (APITimeoutError, APIConnectionError) as e:
            logger.warning("llm_connection_failed", context=context, error=str(e))
            raise BackendConnectionError(f"Could not reach model backend: {e}") from e
        except APIStatusError as e:
            raise _translate_status_error(e) from e

    async def invoke(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict] | None = None,
    ) -> ModelReply:
        """Non-streaming call returning text and any tool calls."""
        logger.debug(
            "invoke_request",
            model=self._model,
            message_count=len(messages),
            tool_count=len(tools) if tools else 0,
        )
        response = await self._call(
            lambda: self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                tools=tools if tools else NOT_GIVEN,
            ),
            context="invoke",
        )
        message = _first_choice(response, context="invoke").message
        tool_calls = [
            ToolCall(
                call_id=tc.id or "",
                name=tc.function.name,
                arguments=tc.function.arguments or "",
            )
            for tc in (message.tool_calls or [])
        ]
        logger.debug(
            "invoke_response",
            has_content=bool(message.content),
            tool_calls=len(tool_calls),
        )
        return ModelReply(text=message.content or "", tool_calls=tool_calls)

    async def test_connectivity(self) -> ConnectivityResult:
        """Send a one-word prompt with a short timeout and zero retries."""
        try:
            await self._probe_client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": PROBE_PROMPT}],
            )
        except Exception as e:
            logger.info("connectivity_probe_failed", model=self._model, error=str(e))
            return ConnectivityResult(ok=False, error=str(e))
        return ConnectivityResult(ok=True)

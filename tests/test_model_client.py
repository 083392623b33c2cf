"""Tests for OpenAICompatModelClient error translation and reply parsing."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from companion.agent.model_client import OpenAICompatModelClient, ToolCall
from companion.infra.errors import BackendConnectionError, LLMError, ModelNotFoundError

_REQUEST = httpx.Request("POST", "http://backend.test/v1/chat/completions")


@pytest.fixture()
def client():
    c = OpenAICompatModelClient(api_key="test-key", model="test-model", base_url="http://backend.test/v1")
    c._client = MagicMock()
    c._probe_client = MagicMock()
    return c


def _make_response(*, choices=None):
    resp = MagicMock()
    resp.choices = choices if choices is not None else []
    return resp


def _make_choice(content="hello", tool_calls=None):
    choice = MagicMock()
    choice.message.content = content
    choice.message.tool_calls = tool_calls
    return choice


def _make_tool_call(call_id, name, arguments):
    tc = MagicMock()
    tc.id = call_id
    tc.function.name = name
    tc.function.arguments = arguments
    return tc


def _status_error(status: int, message: str) -> openai.APIStatusError:
    response = httpx.Response(status, request=_REQUEST)
    return openai.APIStatusError(message, response=response, body=None)


class TestInvoke:
    @pytest.mark.asyncio
    async def test_text_reply(self, client):
        client._client.chat.completions.create = AsyncMock(
            return_value=_make_response(choices=[_make_choice("world")])
        )
        reply = await client.invoke([{"role": "user", "content": "hi"}])
        assert reply.text == "world"
        assert reply.tool_calls == []
        kwargs = client._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["tools"] is openai.NOT_GIVEN

    @pytest.mark.asyncio
    async def test_tool_calls_parsed(self, client):
        tc = _make_tool_call("call_1", "show_quick_replies", '{"replies": ["a"]}')
        client._client.chat.completions.create = AsyncMock(
            return_value=_make_response(choices=[_make_choice(None, [tc])])
        )
        tools = [{"type": "function", "function": {"name": "show_quick_replies"}}]
        reply = await client.invoke([{"role": "user", "content": "hi"}], tools=tools)
        assert reply.text == ""
        assert reply.tool_calls == [
            ToolCall(call_id="call_1", name="show_quick_replies", arguments='{"replies": ["a"]}')
        ]
        assert client._client.chat.completions.create.call_args.kwargs["tools"] == tools

    @pytest.mark.asyncio
    async def test_empty_choices_raises_llm_error(self, client):
        client._client.chat.completions.create = AsyncMock(return_value=_make_response())
        with pytest.raises(LLMError, match="Empty choices"):
            await client.invoke([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            openai.APIConnectionError(request=_REQUEST),
            openai.APITimeoutError(request=_REQUEST),
        ],
    )
    async def test_transport_errors_become_connection_errors(self, client, error):
        client._client.chat.completions.create = AsyncMock(side_effect=error)
        with pytest.raises(BackendConnectionError):
            await client.invoke([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_missing_model_detected(self, client):
        client._client.chat.completions.create = AsyncMock(
            side_effect=_status_error(404, "The model `test-model` does not exist")
        )
        with pytest.raises(ModelNotFoundError):
            await client.invoke([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_other_status_is_generic_llm_error(self, client):
        client._client.chat.completions.create = AsyncMock(
            side_effect=_status_error(500, "internal error")
        )
        with pytest.raises(LLMError, match="500") as exc_info:
            await client.invoke([{"role": "user", "content": "hi"}])
        assert not isinstance(exc_info.value, (ModelNotFoundError, BackendConnectionError))


class TestConnectivity:
    @pytest.mark.asyncio
    async def test_ok(self, client):
        client._probe_client.chat.completions.create = AsyncMock(
            return_value=_make_response(choices=[_make_choice("hello")])
        )
        result = await client.test_connectivity()
        assert result.ok
        assert result.error is None
        kwargs = client._probe_client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_failure_never_raises(self, client):
        client._probe_client.chat.completions.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=_REQUEST)
        )
        result = await client.test_connectivity()
        assert not result.ok
        assert result.error


def test_sdk_clients_disable_retries():
    c = OpenAICompatModelClient(api_key="k", model="m", request_timeout_s=12, probe_timeout_s=3)
    assert c._client.max_retries == 0
    assert c._probe_client.max_retries == 0
    assert c._client.timeout == 12
    assert c._probe_client.timeout == 3
    assert c.model == "m"

"""Tests for the OpenAI LLM provider."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from waypoint.config import ModelConfig
from waypoint.models.openai import (
    OpenAIProvider,
    _map_finish_reason,
    _parse_response,
    _to_openai_messages,
)
from waypoint.models.provider import model_registry
from waypoint.models.types import ModelError
from waypoint.types import AssistantMessage, SystemMessage, ToolCall, ToolResult, UserMessage

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_config(**overrides: Any) -> ModelConfig:
    defaults: dict[str, Any] = {"provider": "openai", "model_name": "gpt-4o", "api_key": "test-key"}
    defaults.update(overrides)
    return ModelConfig(**defaults)


def _make_tool_call(id: str = "call_1", name: str = "get_weather", arguments: str = "{}") -> Any:
    return SimpleNamespace(id=id, function=SimpleNamespace(name=name, arguments=arguments))


def _make_response(
    *,
    content: str | None = "hello",
    tool_calls: list[Any] | None = None,
    finish_reason: str | None = "stop",
    usage: Any = None,
) -> SimpleNamespace:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        id="chatcmpl-1",
        model="gpt-4o-2024-08-06",
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=usage
        if usage is not None
        else SimpleNamespace(prompt_tokens=12, completion_tokens=3, total_tokens=15),
    )


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


class TestFinishReason:
    def test_known(self) -> None:
        assert _map_finish_reason("tool_calls") == "tool_calls"
        assert _map_finish_reason("length") == "length"

    def test_none_and_unknown(self) -> None:
        assert _map_finish_reason(None) == "stop"
        assert _map_finish_reason("function_call") == "stop"


class TestToOpenAIMessages:
    def test_roles(self) -> None:
        out = _to_openai_messages(
            [SystemMessage(content="be brief"), UserMessage(content="hi"), AssistantMessage(content="yo")]
        )
        assert out == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "yo"},
        ]

    def test_assistant_tool_calls(self) -> None:
        msg = AssistantMessage(tool_calls=[ToolCall(id="c1", name="transfer_to_weather_bot")])
        (entry,) = _to_openai_messages([msg])
        assert entry["content"] is None
        assert entry["tool_calls"] == [
            {
                "id": "c1",
                "type": "function",
                "function": {"name": "transfer_to_weather_bot", "arguments": "{}"},
            }
        ]

    def test_tool_result_error_wins(self) -> None:
        ok, bad = _to_openai_messages(
            [
                ToolResult(tool_call_id="c1", tool_name="t", content="sunny"),
                ToolResult(tool_call_id="c2", tool_name="t", error="boom"),
            ]
        )
        assert ok == {"role": "tool", "tool_call_id": "c1", "content": "sunny"}
        assert bad["content"] == "boom"


class TestParseResponse:
    def test_text(self) -> None:
        resp = _parse_response(_make_response(content="Hello!"), "gpt-4o")
        assert resp.content == "Hello!"
        assert resp.model == "gpt-4o-2024-08-06"
        assert resp.usage.input_tokens == 12
        assert resp.usage.total_tokens == 15
        assert resp.usage.requests == 1
        assert resp.finish_reason == "stop"

    def test_tool_calls(self) -> None:
        raw = _make_response(
            content=None,
            tool_calls=[_make_tool_call(arguments='{"location": "Paris"}')],
            finish_reason="tool_calls",
        )
        resp = _parse_response(raw, "gpt-4o")
        assert resp.content == ""
        assert resp.tool_calls == [
            ToolCall(id="call_1", name="get_weather", arguments='{"location": "Paris"}')
        ]
        assert resp.finish_reason == "tool_calls"

    def test_missing_usage(self) -> None:
        raw = _make_response()
        raw.usage = None
        assert _parse_response(raw, "gpt-4o").usage.requests == 1


# ---------------------------------------------------------------------------
# Provider: complete()
# ---------------------------------------------------------------------------


class TestOpenAIProviderComplete:
    def test_registered(self) -> None:
        assert model_registry.get("openai") is OpenAIProvider

    async def test_basic_complete(self) -> None:
        provider = OpenAIProvider(_make_config())
        provider._client.chat.completions.create = AsyncMock(return_value=_make_response())
        result = await provider.complete([UserMessage(content="hi")])
        assert result.content == "hello"
        kwargs = provider._client.chat.completions.create.call_args[1]
        assert kwargs["model"] == "gpt-4o"
        assert "tools" not in kwargs
        assert "response_format" not in kwargs

    async def test_tools_and_settings(self) -> None:
        provider = OpenAIProvider(_make_config())
        provider._client.chat.completions.create = AsyncMock(return_value=_make_response())
        tools = [{"type": "function", "function": {"name": "t", "description": "d", "parameters": {}}}]
        await provider.complete(
            [UserMessage(content="hi")], tools=tools, temperature=0.2, max_tokens=64
        )
        kwargs = provider._client.chat.completions.create.call_args[1]
        assert kwargs["tools"] == tools
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 64

    async def test_output_schema(self) -> None:
        provider = OpenAIProvider(_make_config())
        provider._client.chat.completions.create = AsyncMock(return_value=_make_response())
        schema = {"type": "object", "properties": {"is_location": {"type": "boolean"}}}
        await provider.complete(
            [UserMessage(content="hi")], output_schema={"name": "LocationCheck", "schema": schema}
        )
        kwargs = provider._client.chat.completions.create.call_args[1]
        assert kwargs["response_format"] == {
            "type": "json_schema",
            "json_schema": {"name": "LocationCheck", "schema": schema, "strict": False},
        }

    async def test_api_error(self) -> None:
        provider = OpenAIProvider(_make_config())
        provider._client.chat.completions.create = AsyncMock(
            side_effect=openai.APIError(message="rate limited", request=MagicMock(), body=None)
        )
        with pytest.raises(ModelError, match="rate limited") as exc_info:
            await provider.complete([UserMessage(content="hi")])
        assert exc_info.value.model == "openai:gpt-4o"
        assert exc_info.value.code == ""

    async def test_context_length_error_code(self) -> None:
        provider = OpenAIProvider(_make_config())
        provider._client.chat.completions.create = AsyncMock(
            side_effect=openai.APIError(
                message="This model's maximum context length is 128000 tokens",
                request=MagicMock(),
                body={"code": "context_length_exceeded"},
            )
        )
        with pytest.raises(ModelError) as exc_info:
            await provider.complete([UserMessage(content="hi")])
        assert exc_info.value.code == "context_length"

"""Tests for the Anthropic LLM provider."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import anthropic
import pytest

from waypoint.config import ModelConfig
from waypoint.models.anthropic import (
    _DEFAULT_MAX_TOKENS,
    AnthropicProvider,
    _build_messages,
    _convert_tools,
    _map_stop_reason,
    _parse_response,
)
from waypoint.models.provider import model_registry
from waypoint.models.types import ModelError
from waypoint.types import AssistantMessage, SystemMessage, ToolCall, ToolResult, UserMessage

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_config(**overrides: Any) -> ModelConfig:
    defaults: dict[str, Any] = {
        "provider": "anthropic",
        "model_name": "claude-sonnet-4-20250514",
        "api_key": "test-key",
    }
    defaults.update(overrides)
    return ModelConfig(**defaults)


def _make_text_block(text: str = "hello") -> SimpleNamespace:
    return SimpleNamespace(type="text", text=text)


def _make_tool_use_block(
    id: str = "tu1", name: str = "get_weather", input: dict[str, Any] | None = None
) -> SimpleNamespace:
    return SimpleNamespace(type="tool_use", id=id, name=name, input=input or {})


def _make_response(
    *,
    content: list[Any] | None = None,
    stop_reason: str = "end_turn",
    input_tokens: int = 10,
    output_tokens: int = 5,
) -> SimpleNamespace:
    return SimpleNamespace(
        id="msg-abc",
        model="claude-sonnet-4-20250514",
        content=content if content is not None else [_make_text_block()],
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


class TestStopReason:
    def test_mapping(self) -> None:
        assert _map_stop_reason("end_turn") == "stop"
        assert _map_stop_reason("tool_use") == "tool_calls"
        assert _map_stop_reason("max_tokens") == "length"
        assert _map_stop_reason(None) == "stop"
        assert _map_stop_reason("refusal") == "stop"


class TestBuildMessages:
    def test_system_extracted_and_joined(self) -> None:
        system, msgs = _build_messages(
            [SystemMessage(content="a"), SystemMessage(content="b"), UserMessage(content="hi")]
        )
        assert system == "a\nb"
        assert msgs == [{"role": "user", "content": "hi"}]

    def test_assistant_with_tool_calls(self) -> None:
        msg = AssistantMessage(
            content="Checking",
            tool_calls=[ToolCall(id="tu1", name="get_weather", arguments='{"location": "Paris"}')],
        )
        _, msgs = _build_messages([msg])
        assert msgs[0]["content"] == [
            {"type": "text", "text": "Checking"},
            {"type": "tool_use", "id": "tu1", "name": "get_weather", "input": {"location": "Paris"}},
        ]

    def test_transfer_call_without_arguments(self) -> None:
        msg = AssistantMessage(tool_calls=[ToolCall(id="h1", name="transfer_to_forecast_agent")])
        _, msgs = _build_messages([msg])
        assert msgs[0]["content"][0]["input"] == {}

    def test_malformed_recorded_arguments_sent_as_empty_input(self) -> None:
        msg = AssistantMessage(
            tool_calls=[
                ToolCall(id="c1", name="get_weather", arguments='{"location": '),
                ToolCall(id="c2", name="get_weather", arguments="[1, 2]"),
            ]
        )
        _, msgs = _build_messages([msg])
        assert [block["input"] for block in msgs[0]["content"]] == [{}, {}]

    def test_empty_assistant(self) -> None:
        _, msgs = _build_messages([AssistantMessage()])
        assert msgs[0]["content"] == [{"type": "text", "text": ""}]

    def test_consecutive_tool_results_merged(self) -> None:
        _, msgs = _build_messages(
            [
                ToolResult(tool_call_id="tu1", tool_name="a", content="one"),
                ToolResult(tool_call_id="tu2", tool_name="b", error="failed"),
            ]
        )
        assert len(msgs) == 1
        blocks = msgs[0]["content"]
        assert blocks[0] == {"type": "tool_result", "tool_use_id": "tu1", "content": "one"}
        assert blocks[1]["is_error"] is True
        assert blocks[1]["content"] == "failed"

    def test_tool_result_after_user_not_merged(self) -> None:
        _, msgs = _build_messages(
            [UserMessage(content="hi"), ToolResult(tool_call_id="tu1", tool_name="a", content="x")]
        )
        assert len(msgs) == 2


class TestConvertTools:
    def test_basic(self) -> None:
        tools = [
            {
                "type": "function",
                "function": {
                    "name": "get_weather",
                    "description": "Get the weather",
                    "parameters": {"type": "object", "properties": {"location": {"type": "string"}}},
                },
            }
        ]
        assert _convert_tools(tools) == [
            {
                "name": "get_weather",
                "description": "Get the weather",
                "input_schema": {"type": "object", "properties": {"location": {"type": "string"}}},
            }
        ]


class TestParseResponse:
    def test_text(self) -> None:
        resp = _parse_response(_make_response(content=[_make_text_block("Hi!")]), "claude")
        assert resp.content == "Hi!"
        assert resp.usage.total_tokens == 15
        assert resp.usage.requests == 1

    def test_tool_use(self) -> None:
        raw = _make_response(
            content=[_make_text_block("Let me check"), _make_tool_use_block(input={"location": "Rome"})],
            stop_reason="tool_use",
        )
        resp = _parse_response(raw, "claude")
        assert resp.content == "Let me check"
        assert resp.tool_calls[0].name == "get_weather"
        assert json.loads(resp.tool_calls[0].arguments) == {"location": "Rome"}
        assert resp.finish_reason == "tool_calls"

    def test_tool_use_without_input(self) -> None:
        raw = _make_response(content=[_make_tool_use_block(name="transfer_to_weather_bot")])
        assert _parse_response(raw, "claude").tool_calls[0].arguments == ""


# ---------------------------------------------------------------------------
# Provider: complete()
# ---------------------------------------------------------------------------


class TestAnthropicProviderComplete:
    def test_registered(self) -> None:
        assert model_registry.get("anthropic") is AnthropicProvider

    async def test_basic_complete(self) -> None:
        provider = AnthropicProvider(_make_config())
        provider._client.messages.create = AsyncMock(
            return_value=_make_response(content=[_make_text_block("world")])
        )
        result = await provider.complete([UserMessage(content="hello")])
        assert result.content == "world"
        kwargs = provider._client.messages.create.call_args[1]
        assert kwargs["max_tokens"] == _DEFAULT_MAX_TOKENS
        assert "system" not in kwargs
        assert "tools" not in kwargs

    async def test_system_tools_and_settings(self) -> None:
        provider = AnthropicProvider(_make_config())
        provider._client.messages.create = AsyncMock(return_value=_make_response())
        tools = [{"type": "function", "function": {"name": "t", "description": "d", "parameters": {}}}]
        await provider.complete(
            [SystemMessage(content="be helpful"), UserMessage(content="hi")],
            tools=tools,
            temperature=0.7,
            max_tokens=1000,
        )
        kwargs = provider._client.messages.create.call_args[1]
        assert kwargs["system"] == "be helpful"
        assert kwargs["tools"][0]["name"] == "t"
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 1000

    async def test_output_schema_added_to_system(self) -> None:
        provider = AnthropicProvider(_make_config())
        provider._client.messages.create = AsyncMock(return_value=_make_response())
        schema = {"type": "object", "properties": {"is_location": {"type": "boolean"}}}
        await provider.complete(
            [SystemMessage(content="Check the location."), UserMessage(content="hi")],
            output_schema={"name": "LocationCheck", "schema": schema},
        )
        system = provider._client.messages.create.call_args[1]["system"]
        assert system.startswith("Check the location.\n\n")
        assert "(LocationCheck)" in system
        assert json.dumps(schema) in system

    async def test_api_error(self) -> None:
        provider = AnthropicProvider(_make_config())
        provider._client.messages.create = AsyncMock(
            side_effect=anthropic.APIError(message="rate limited", request=MagicMock(), body=None)
        )
        with pytest.raises(ModelError, match="rate limited") as exc_info:
            await provider.complete([UserMessage(content="hi")])
        assert exc_info.value.model == "anthropic:claude-sonnet-4-20250514"

    async def test_prompt_too_long(self) -> None:
        provider = AnthropicProvider(_make_config())
        provider._client.messages.create = AsyncMock(
            side_effect=anthropic.APIError(
                message="prompt is too long: 210000 tokens > 200000 maximum",
                request=MagicMock(),
                body=None,
            )
        )
        with pytest.raises(ModelError) as exc_info:
            await provider.complete([UserMessage(content="hi")])
        assert exc_info.value.code == "context_length"

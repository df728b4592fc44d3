"""Anthropic LLM provider implementation.

Wraps the ``anthropic`` SDK to implement ``ModelProvider.complete()``.
The Messages API has no JSON-schema response mode, so a requested output
schema is appended to the system prompt as an instruction.
"""

from __future__ import annotations

import json
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from waypoint.config import ModelConfig
from waypoint.log import get_logger
from waypoint.types import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolCall,
    ToolResult,
    Usage,
    UserMessage,
)

from .provider import ModelProvider, model_registry
from .types import FinishReason, ModelError, ModelResponse

_log = get_logger(__name__)

_DEFAULT_MAX_TOKENS = 4096

_STOP_REASON_MAP: dict[str | None, FinishReason] = {
    "end_turn": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
    "stop_sequence": "stop",
    None: "stop",
}


def _map_stop_reason(raw: str | None) -> FinishReason:
    """Normalize an Anthropic stop reason to a ``FinishReason``."""
    return _STOP_REASON_MAP.get(raw, "stop")


def _tool_input(call: ToolCall) -> dict[str, Any]:
    """Decode recorded call arguments; undecodable ones are sent as ``{}``."""
    if not call.arguments:
        return {}
    try:
        decoded = json.loads(call.arguments)
    except json.JSONDecodeError:
        _log.warning("Sending malformed arguments of tool call '%s' as {}", call.id)
        return {}
    return decoded if isinstance(decoded, dict) else {}


def _build_messages(messages: list[Message]) -> tuple[str, list[dict[str, Any]]]:
    """Convert Waypoint messages to Anthropic format.

    System messages are joined into the separate ``system=`` string.
    Consecutive tool results are merged into one ``user`` message to keep
    strict user/assistant alternation.

    Returns:
        A ``(system, messages)`` tuple for the Anthropic API.
    """
    system_parts: list[str] = []
    result: list[dict[str, Any]] = []

    for msg in messages:
        if isinstance(msg, SystemMessage):
            system_parts.append(msg.content)
        elif isinstance(msg, UserMessage):
            result.append({"role": "user", "content": msg.content})
        elif isinstance(msg, AssistantMessage):
            content: list[dict[str, Any]] = []
            if msg.content:
                content.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                content.append(
                    {
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": _tool_input(tc),
                    }
                )
            if not content:
                content.append({"type": "text", "text": ""})
            result.append({"role": "assistant", "content": content})
        elif isinstance(msg, ToolResult):
            block: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.error if msg.error else msg.content,
            }
            if msg.error:
                block["is_error"] = True
            if result and result[-1]["role"] == "user" and isinstance(result[-1]["content"], list):
                result[-1]["content"].append(block)
            else:
                result.append({"role": "user", "content": [block]})

    return "\n".join(system_parts), result


def _convert_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert OpenAI-format tool descriptors to Anthropic format."""
    converted: list[dict[str, Any]] = []
    for t in tools:
        fn = t.get("function", {})
        converted.append(
            {
                "name": fn.get("name", ""),
                "description": fn.get("description", ""),
                "input_schema": fn.get("parameters", {"type": "object", "properties": {}}),
            }
        )
    return converted


def _schema_instruction(output_schema: dict[str, Any]) -> str:
    return (
        "When you give your final answer, reply with a single JSON object and nothing "
        f"else. It must match this JSON schema ({output_schema['name']}):\n"
        f"{json.dumps(output_schema['schema'])}"
    )


def _parse_response(raw: Any, model_name: str) -> ModelResponse:
    """Convert an Anthropic Message to a ``ModelResponse``."""
    content_parts: list[str] = []
    tool_calls: list[ToolCall] = []

    for block in raw.content:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            content_parts.append(block.text)
        elif block_type == "tool_use":
            tool_calls.append(
                ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=json.dumps(block.input) if block.input else "",
                )
            )

    usage = Usage(requests=1)
    if raw.usage:
        usage = Usage(
            input_tokens=raw.usage.input_tokens,
            output_tokens=raw.usage.output_tokens,
            total_tokens=raw.usage.input_tokens + raw.usage.output_tokens,
            requests=1,
        )

    return ModelResponse(
        id=raw.id or "",
        model=raw.model or model_name,
        content="".join(content_parts),
        tool_calls=tool_calls,
        usage=usage,
        finish_reason=_map_stop_reason(raw.stop_reason),
    )


def _error_code(exc: anthropic.APIError) -> str:
    message = str(exc).lower()
    if "prompt is too long" in message or "context length" in message:
        return "context_length"
    return ""


class AnthropicProvider(ModelProvider):
    """Anthropic LLM provider.

    Wraps the ``anthropic.AsyncAnthropic`` client for message completions.

    Args:
        config: Provider connection configuration.
    """

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        self._client = AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )

    async def complete(
        self,
        messages: list[Message],
        *,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        output_schema: dict[str, Any] | None = None,
    ) -> ModelResponse:
        """Send a message completion request to Anthropic.

        Raises:
            ModelError: If the API call fails.
        """
        kwargs = self._build_kwargs(
            messages,
            tools=tools,
            temperature=temperature,
            max_tokens=max_tokens,
            output_schema=output_schema,
        )
        _log.debug(
            "anthropic complete: model=%s, messages=%d, tools=%d",
            self.config.model_name,
            len(messages),
            len(tools or []),
        )
        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            _log.error(
                "anthropic complete failed: model=%s, error=%s",
                self.config.model_name,
                exc,
                exc_info=True,
            )
            raise ModelError(
                str(exc), model=f"anthropic:{self.config.model_name}", code=_error_code(exc)
            ) from exc
        return _parse_response(response, self.config.model_name)

    def _build_kwargs(
        self,
        messages: list[Message],
        *,
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        output_schema: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Keyword arguments for ``messages.create()``."""
        system, converted = _build_messages(messages)
        if output_schema is not None:
            instruction = _schema_instruction(output_schema)
            system = f"{system}\n\n{instruction}" if system else instruction
        kwargs: dict[str, Any] = {
            "model": self.config.model_name,
            "messages": converted,
            "max_tokens": max_tokens or _DEFAULT_MAX_TOKENS,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = _convert_tools(tools)
        if temperature is not None:
            kwargs["temperature"] = temperature
        return kwargs


model_registry.register("anthropic", AnthropicProvider)

"""OpenAI LLM provider implementation.

Wraps the ``openai`` SDK to implement ``ModelProvider.complete()`` with
normalized response types. Structured output is requested through
``response_format={"type": "json_schema", ...}``.
"""

from __future__ import annotations

from typing import Any

import openai
from openai import AsyncOpenAI

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

_FINISH_REASON_MAP: dict[str | None, FinishReason] = {
    "stop": "stop",
    "tool_calls": "tool_calls",
    "length": "length",
    "content_filter": "content_filter",
    None: "stop",
}


def _map_finish_reason(raw: str | None) -> FinishReason:
    """Normalize an OpenAI finish reason to a ``FinishReason``."""
    return _FINISH_REASON_MAP.get(raw, "stop")


def _to_openai_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert Waypoint messages to OpenAI chat message dicts."""
    result: list[dict[str, Any]] = []
    for msg in messages:
        if isinstance(msg, SystemMessage):
            result.append({"role": "system", "content": msg.content})
        elif isinstance(msg, UserMessage):
            result.append({"role": "user", "content": msg.content})
        elif isinstance(msg, AssistantMessage):
            entry: dict[str, Any] = {"role": "assistant", "content": msg.content or None}
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": tc.arguments or "{}"},
                    }
                    for tc in msg.tool_calls
                ]
            else:
                entry["content"] = msg.content
            result.append(entry)
        elif isinstance(msg, ToolResult):
            result.append(
                {
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": msg.error if msg.error else msg.content,
                }
            )
    return result


def _parse_response(raw: Any, model_name: str) -> ModelResponse:
    """Convert an OpenAI ChatCompletion to a ``ModelResponse``."""
    choice = raw.choices[0]
    message = choice.message

    tool_calls = [
        ToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments or "")
        for tc in message.tool_calls or []
    ]

    usage = Usage(requests=1)
    if raw.usage:
        usage = Usage(
            input_tokens=raw.usage.prompt_tokens,
            output_tokens=raw.usage.completion_tokens,
            total_tokens=raw.usage.total_tokens,
            requests=1,
        )

    return ModelResponse(
        id=raw.id or "",
        model=raw.model or model_name,
        content=message.content or "",
        tool_calls=tool_calls,
        usage=usage,
        finish_reason=_map_finish_reason(choice.finish_reason),
    )


def _error_code(exc: openai.APIError) -> str:
    code = getattr(exc, "code", None) or ""
    if code == "context_length_exceeded" or "context length" in str(exc).lower():
        return "context_length"
    return str(code)


class OpenAIProvider(ModelProvider):
    """OpenAI LLM provider.

    Wraps the ``openai.AsyncOpenAI`` client for chat completions.

    Args:
        config: Provider connection configuration.
    """

    def __init__(self, config: ModelConfig) -> None:
        super().__init__(config)
        self._client = AsyncOpenAI(
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
        """Send a chat completion request to OpenAI.

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
            "openai complete: model=%s, messages=%d, tools=%d",
            self.config.model_name,
            len(messages),
            len(tools or []),
        )
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as exc:
            _log.error(
                "openai complete failed: model=%s, error=%s",
                self.config.model_name,
                exc,
                exc_info=True,
            )
            raise ModelError(
                str(exc), model=f"openai:{self.config.model_name}", code=_error_code(exc)
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
        """Keyword arguments for ``chat.completions.create()``."""
        kwargs: dict[str, Any] = {
            "model": self.config.model_name,
            "messages": _to_openai_messages(messages),
        }
        if tools:
            kwargs["tools"] = tools
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if output_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": output_schema["name"],
                    "schema": output_schema["schema"],
                    "strict": False,
                },
            }
        return kwargs


model_registry.register("openai", OpenAIProvider)

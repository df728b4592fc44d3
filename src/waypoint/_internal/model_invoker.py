"""One model turn: call the provider and classify what the model wants.

``invoke_model`` resolves the active agent's instructions, sends the
visible history plus tool and transfer descriptors to the provider (with
retries), and turns the response into one of three decisions:

- :class:`FinalAnswer`: the model answered; ``output`` is a string or a
  validated ``output_type`` instance.
- :class:`ToolCallRequest`: the model asked for function tools.
- :class:`HandoffRequest`: the model asked to transfer control; any function
  tool calls of the same response ride along in ``tool_calls``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from waypoint._internal.message_builder import build_messages
from waypoint._internal.output_parser import OutputParseError, parse_structured_output
from waypoint.config import RunConfig
from waypoint.context import RunContext
from waypoint.handoff import Handoff, is_handoff_tool_name
from waypoint.hooks import HookPoint
from waypoint.log import get_logger
from waypoint.types import AssistantMessage, Message, RunError, ToolCall, Usage

if TYPE_CHECKING:
    from waypoint.agent import Agent

_log = get_logger(__name__)


class ModelInvocationError(RunError):
    """Raised when the provider keeps failing after all retries."""


class StructuredOutputError(RunError):
    """Raised when a final answer does not validate against ``output_type``."""


@dataclass
class FinalAnswer:
    message: AssistantMessage
    output: Any
    usage: Usage = field(default_factory=Usage)


@dataclass
class ToolCallRequest:
    message: AssistantMessage
    tool_calls: list[ToolCall]
    usage: Usage = field(default_factory=Usage)


@dataclass
class HandoffRequest:
    """A transfer decision.

    Attributes:
        handoff: The declared handoff of the first transfer call.
        call: The transfer call that wins.
        tool_calls: Function tool calls to run before transferring.
        extra_transfers: Further transfer calls that are refused.
    """

    message: AssistantMessage
    handoff: Handoff | None
    call: ToolCall
    tool_calls: list[ToolCall] = field(default_factory=list)
    extra_transfers: list[ToolCall] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)


Decision = FinalAnswer | ToolCallRequest | HandoffRequest


def _is_context_length_error(exc: Exception) -> bool:
    """Detect context-length overflow from ``ModelError.code`` or the message."""
    if getattr(exc, "code", "") == "context_length":
        return True
    msg = str(exc).lower()
    return "context_length" in msg or "context length" in msg


async def call_provider(
    agent: Agent,
    messages: list[Message],
    provider: Any,
    context: RunContext[Any],
    config: RunConfig,
) -> Any:
    """Single provider call with retry logic and LLM hooks.

    Raises:
        ModelInvocationError: On a context-length overflow (no retry) or
            once ``config.max_retries`` attempts have failed.
    """
    tool_schemas = agent.get_tool_schemas() or None
    output_schema = agent.output_schema()
    last_error: Exception | None = None

    for attempt in range(config.max_retries):
        await agent.hook_manager.run(
            HookPoint.PRE_LLM_CALL, agent=agent, context=context, messages=messages
        )
        try:
            response = await provider.complete(
                messages,
                tools=tool_schemas,
                temperature=agent.temperature,
                max_tokens=agent.max_tokens,
                output_schema=output_schema,
            )
        except Exception as exc:
            if _is_context_length_error(exc):
                _log.error("Context length exceeded on '%s'", agent.name)
                raise ModelInvocationError(
                    f"Context length exceeded on agent '{agent.name}': {exc}",
                    agent_name=agent.name,
                    phase="model_turn",
                ) from exc
            last_error = exc
            if attempt < config.max_retries - 1:
                _log.warning(
                    "Retry %d/%d for '%s': %s", attempt + 1, config.max_retries, agent.name, exc
                )
                await asyncio.sleep(config.retry_backoff * 2**attempt)
            continue

        await agent.hook_manager.run(
            HookPoint.POST_LLM_CALL, agent=agent, context=context, response=response
        )
        return response

    _log.error("Agent '%s' failed after %d attempts", agent.name, config.max_retries)
    raise ModelInvocationError(
        f"Agent '{agent.name}' failed after {config.max_retries} attempts: {last_error}",
        agent_name=agent.name,
        phase="model_turn",
    ) from last_error


def classify_response(agent: Agent, response: Any, *, config: RunConfig) -> Decision:
    """Turn a provider response into a run-loop decision.

    Rules:

    - Calls whose name is one of the agent's tools are function calls, even
      if the name looks like a transfer tool. Calls naming one of the
      agent's declared transfer tools are transfers, whatever their name;
      so are other ``transfer_to_*`` calls.
    - A transfer wins over text unless ``handoff_precedence`` is off and the
      response has text, in which case the text is the final answer.
    - A response with calls and no transfer is a tool request; an empty
      ``tool_calls`` response with ``finish_reason="tool_calls"`` is a
      no-op tool request.
    - Anything else is a final answer, validated against ``output_type``.

    Raises:
        StructuredOutputError: If the final text fails ``output_type``.
    """
    content: str = getattr(response, "content", "") or ""
    calls: list[ToolCall] = list(getattr(response, "tool_calls", None) or [])
    usage: Usage = getattr(response, "usage", None) or Usage()
    if usage.requests == 0:
        usage = usage.model_copy(update={"requests": 1})
    message = AssistantMessage(content=content, tool_calls=calls, agent_name=agent.name)

    function_calls: list[ToolCall] = []
    transfers: list[ToolCall] = []
    for call in calls:
        if call.name in agent.tools:
            function_calls.append(call)
        elif agent.get_handoff_by_tool(call.name) is not None or is_handoff_tool_name(
            call.name
        ):
            transfers.append(call)
        else:
            function_calls.append(call)

    if transfers and not (not config.handoff_precedence and content):
        first = transfers[0]
        return HandoffRequest(
            message=message,
            handoff=agent.get_handoff_by_tool(first.name),
            call=first,
            tool_calls=function_calls,
            extra_transfers=transfers[1:],
            usage=usage,
        )

    if calls and not transfers:
        return ToolCallRequest(message=message, tool_calls=function_calls, usage=usage)

    if transfers:
        # text wins: the calls are not recorded, nothing answers them
        message = AssistantMessage(content=content, agent_name=agent.name)
    elif getattr(response, "finish_reason", "stop") == "tool_calls":
        return ToolCallRequest(message=message, tool_calls=[], usage=usage)

    return FinalAnswer(message=message, output=_final_output(agent, content), usage=usage)


def _final_output(agent: Agent, content: str) -> Any:
    if agent.output_type is None:
        return content
    try:
        return parse_structured_output(content, agent.output_type)
    except OutputParseError as exc:
        raise StructuredOutputError(
            str(exc), agent_name=agent.name, phase="model_turn"
        ) from exc


async def invoke_model(
    agent: Agent,
    history: Sequence[Message],
    provider: Any,
    context: RunContext[Any],
    config: RunConfig,
) -> Decision:
    """Run one model turn for *agent* over the visible *history*."""
    instructions = await agent.get_instructions(context)
    messages = build_messages(instructions, history)
    response = await call_provider(agent, messages, provider, context, config)
    decision = classify_response(agent, response, config=config)
    _log.debug("agent '%s' turn -> %s", agent.name, type(decision).__name__)
    return decision

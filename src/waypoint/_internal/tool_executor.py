"""Dispatch the function tool calls of one model turn."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from waypoint._internal.output_parser import OutputParseError, parse_json_arguments
from waypoint.config import RunConfig
from waypoint.context import RunContext
from waypoint.hooks import HookPoint
from waypoint.log import get_logger
from waypoint.tool import Tool, ToolError, ToolNotFoundError, ToolValidationError
from waypoint.types import ToolCall, ToolResult

if TYPE_CHECKING:
    from waypoint.agent import Agent

_log = get_logger(__name__)


def stringify_output(output: Any) -> str:
    """Render a tool's return value as the text the model sees."""
    if isinstance(output, str):
        return output
    if isinstance(output, BaseModel):
        return output.model_dump_json()
    if isinstance(output, (dict, list)):
        return json.dumps(output, default=str)
    return str(output)


def _resolve(agent: Agent, calls: Sequence[ToolCall]) -> list[Tool]:
    tools: list[Tool] = []
    for call in calls:
        found = agent.tools.get(call.name)
        if found is None:
            raise ToolNotFoundError(
                f"Agent '{agent.name}' has no tool '{call.name}' "
                f"(available: {', '.join(agent.tools) or 'none'})",
                agent_name=agent.name,
                phase="tool_dispatch",
            )
        tools.append(found)
    return tools


async def _run_one(
    agent: Agent,
    tool: Tool,
    call: ToolCall,
    context: RunContext[Any],
    config: RunConfig,
) -> ToolResult:
    await agent.hook_manager.run(
        HookPoint.PRE_TOOL_CALL,
        agent=agent,
        context=context,
        tool_name=call.name,
        arguments=call.arguments,
    )

    try:
        raw = parse_json_arguments(call.arguments, tool_name=call.name)
        arguments = tool.validate_arguments(raw)
    except (OutputParseError, ToolValidationError) as exc:
        _log.info("Rejected arguments for tool '%s' on '%s': %s", call.name, agent.name, exc)
        result = ToolResult(tool_call_id=call.id, tool_name=call.name, error=str(exc))
    else:
        try:
            output = await tool.execute(context, **arguments)
        except ToolError as exc:
            if tool.raise_on_error or config.tool_error_mode == "raise":
                raise
            _log.warning("Tool '%s' failed on '%s': %s", call.name, agent.name, exc)
            result = ToolResult(tool_call_id=call.id, tool_name=call.name, error=str(exc))
        else:
            result = ToolResult(
                tool_call_id=call.id, tool_name=call.name, content=stringify_output(output)
            )

    await agent.hook_manager.run(
        HookPoint.POST_TOOL_CALL,
        agent=agent,
        context=context,
        tool_name=call.name,
        result=result,
    )
    return result


async def execute_tool_calls(
    agent: Agent,
    calls: Sequence[ToolCall],
    context: RunContext[Any],
    *,
    config: RunConfig,
) -> list[ToolResult]:
    """Run *calls* against *agent*'s tools concurrently.

    Every call is resolved before any runs, so an unknown name fails the
    turn without side effects. Bad arguments and tool failures become error
    results the model can react to.

    Returns:
        One ``ToolResult`` per call, in request order.

    Raises:
        ToolNotFoundError: If a call names a tool the agent does not have.
        ToolError: If a tool fails and errors are configured to raise.
    """
    if not calls:
        return []
    tools = _resolve(agent, calls)
    _log.debug("dispatching %d tool call(s) on '%s'", len(calls), agent.name)

    tasks: list[asyncio.Task[ToolResult]] = []
    try:
        async with asyncio.TaskGroup() as tg:
            for tool, call in zip(tools, calls, strict=True):
                tasks.append(tg.create_task(_run_one(agent, tool, call, context, config)))
    except ExceptionGroup as group:
        # surface the first failure unwrapped
        raise group.exceptions[0] from None

    return [task.result() for task in tasks]

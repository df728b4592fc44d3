"""Waypoint: Agent, Tool, Guardrail, Handoff, Runner, Config, Hooks."""

__version__ = "0.1.0"

from waypoint._internal.model_invoker import ModelInvocationError, StructuredOutputError
from waypoint._internal.run_loop import (
    MaxHandoffsExceeded,
    MaxNestingExceeded,
    MaxTurnsExceeded,
    RunLimitError,
    RunTimeoutError,
)
from waypoint.agent import Agent, AgentError
from waypoint.config import ModelConfig, RunConfig
from waypoint.context import RunContext
from waypoint.guardrail import (
    GuardrailError,
    GuardrailTripwireTriggered,
    InputGuardrail,
    InputGuardrailTripwireTriggered,
    OutputGuardrail,
    OutputGuardrailTripwireTriggered,
    input_guardrail,
    output_guardrail,
)
from waypoint.handoff import Handoff, HandoffError, handoff, remove_tool_messages
from waypoint.hooks import HookPoint
from waypoint.log import LogContext, configure, get_logger
from waypoint.runner import run
from waypoint.tool import (
    FunctionTool,
    Tool,
    ToolError,
    ToolNotFoundError,
    ToolValidationError,
    tool,
)
from waypoint.types import (
    AssistantMessage,
    GuardrailFunctionOutput,
    GuardrailResult,
    HandoffEvent,
    Message,
    RunError,
    RunResult,
    SystemMessage,
    ToolCall,
    ToolResult,
    Usage,
    UserMessage,
    WaypointError,
)

__all__ = [
    "Agent",
    "AgentError",
    "AssistantMessage",
    "FunctionTool",
    "GuardrailError",
    "GuardrailFunctionOutput",
    "GuardrailResult",
    "GuardrailTripwireTriggered",
    "Handoff",
    "HandoffError",
    "HandoffEvent",
    "HookPoint",
    "InputGuardrail",
    "InputGuardrailTripwireTriggered",
    "LogContext",
    "MaxHandoffsExceeded",
    "MaxNestingExceeded",
    "MaxTurnsExceeded",
    "Message",
    "ModelConfig",
    "ModelInvocationError",
    "OutputGuardrail",
    "OutputGuardrailTripwireTriggered",
    "RunConfig",
    "RunContext",
    "RunError",
    "RunLimitError",
    "RunResult",
    "RunTimeoutError",
    "StructuredOutputError",
    "SystemMessage",
    "Tool",
    "ToolCall",
    "ToolError",
    "ToolNotFoundError",
    "ToolResult",
    "ToolValidationError",
    "Usage",
    "UserMessage",
    "WaypointError",
    "configure",
    "get_logger",
    "handoff",
    "input_guardrail",
    "output_guardrail",
    "remove_tool_messages",
    "run",
    "tool",
]

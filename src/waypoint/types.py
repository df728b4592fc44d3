"""Core message and result types for Waypoint."""

from __future__ import annotations

from typing import Any, Literal, TypeVar

from pydantic import BaseModel, Field

_T = TypeVar("_T")


class WaypointError(Exception):
    """Base exception for all Waypoint errors."""


class RunError(WaypointError):
    """A failure that terminated a run.

    Args:
        message: Human-readable error description.
        agent_name: Name of the agent that was active when the run failed.
        phase: Run phase in which the failure happened (``"input_guardrails"``,
            ``"model_turn"``, ``"tool_dispatch"``, ``"handoff"``,
            ``"output_guardrails"`` ...).
    """

    def __init__(self, message: str, *, agent_name: str = "", phase: str = "") -> None:
        self.agent_name = agent_name
        self.phase = phase
        super().__init__(message)


# ---------------------------------------------------------------------------
# Message types
# ---------------------------------------------------------------------------


class UserMessage(BaseModel):
    """A message from the user."""

    model_config = {"frozen": True}

    role: Literal["user"] = "user"
    content: str


class SystemMessage(BaseModel):
    """A system instruction message."""

    model_config = {"frozen": True}

    role: Literal["system"] = "system"
    content: str


class ToolCall(BaseModel):
    """A request from the LLM to invoke a tool (or a handoff transfer).

    Args:
        id: Unique identifier for this tool call.
        name: Name of the tool to invoke.
        arguments: JSON-encoded string of the tool arguments.
    """

    model_config = {"frozen": True}

    id: str
    name: str
    arguments: str = ""


class AssistantMessage(BaseModel):
    """A response from the LLM assistant.

    Args:
        content: Text content of the response.
        tool_calls: Tool invocations requested by the assistant.
        agent_name: Agent that produced the message.
    """

    model_config = {"frozen": True}

    role: Literal["assistant"] = "assistant"
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    agent_name: str = ""


class ToolResult(BaseModel):
    """The result of executing a tool call.

    Args:
        tool_call_id: The id of the ToolCall this responds to.
        tool_name: Name of the tool that was executed.
        content: The stringified result from the tool.
        error: Error message if the tool failed.
    """

    model_config = {"frozen": True}

    role: Literal["tool"] = "tool"
    tool_call_id: str
    tool_name: str
    content: str = ""
    error: str | None = None


Message = UserMessage | AssistantMessage | SystemMessage | ToolResult


class Usage(BaseModel):
    """Token usage statistics from one or more LLM calls."""

    model_config = {"frozen": True}

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    requests: int = 0

    def add(self, other: Usage) -> Usage:
        """Return a new ``Usage`` summing this one and *other*."""
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            requests=self.requests + other.requests,
        )


# ---------------------------------------------------------------------------
# Guardrail and handoff records
# ---------------------------------------------------------------------------


class GuardrailFunctionOutput(BaseModel):
    """What a guardrail check returns.

    Args:
        output_info: Arbitrary diagnostic payload (e.g. a classifier verdict).
        tripwire_triggered: When ``True`` the run is aborted.
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    output_info: Any = None
    tripwire_triggered: bool = False


class GuardrailResult(BaseModel):
    """The recorded outcome of one guardrail check.

    Args:
        guardrail_name: Name of the guardrail that ran.
        phase: ``"input"`` or ``"output"``.
        agent_name: Agent the guardrail was attached to.
        output_info: Diagnostic payload returned by the check.
        tripwire_triggered: Whether the check tripped.
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    guardrail_name: str
    phase: Literal["input", "output"]
    agent_name: str = ""
    output_info: Any = None
    tripwire_triggered: bool = False


class HandoffEvent(BaseModel):
    """A transfer of control between two agents during a run."""

    model_config = {"frozen": True}

    from_agent: str
    to_agent: str
    tool_call_id: str = ""
    turn: int = 0


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------


class RunResult(BaseModel):
    """Return type of ``run()``: the final result of a run.

    Args:
        final_output: The answer. A string, or an instance of the answering
            agent's ``output_type`` when one is declared.
        output: Raw text of the final model response.
        last_agent: Name of the agent that produced the final answer.
        messages: Full, append-only message history of the run.
        input_guardrail_results: Outcomes of the starting agent's input guardrails.
        output_guardrail_results: Outcomes of the answering agent's output guardrails.
        handoffs: Handoffs performed, in order.
        usage: Token usage aggregated over this run's model calls.
        turns: Number of model turns taken.
    """

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    final_output: Any = None
    output: str = ""
    last_agent: str = ""
    messages: list[Message] = Field(default_factory=list)
    input_guardrail_results: list[GuardrailResult] = Field(default_factory=list)
    output_guardrail_results: list[GuardrailResult] = Field(default_factory=list)
    handoffs: list[HandoffEvent] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    turns: int = Field(default=0, ge=0)

    def final_output_as(self, cls: type[_T]) -> _T:
        """Return ``final_output`` checked against *cls*.

        Raises:
            TypeError: If the final output is not an instance of *cls*.
        """
        if not isinstance(self.final_output, cls):
            raise TypeError(
                f"Final output is {type(self.final_output).__name__}, expected {cls.__name__}"
            )
        return self.final_output

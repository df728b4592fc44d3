"""Internal run state tracking for the run loop."""

from __future__ import annotations

import time
from collections.abc import Sequence
from enum import StrEnum

from pydantic import BaseModel, Field

from waypoint.types import GuardrailResult, HandoffEvent, Message, ToolCall, Usage


class RunStatus(StrEnum):
    """Lifecycle status of a run."""

    INIT = "init"
    RUNNING = "running"
    SUCCESS = "success"
    ABORTED = "aborted"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunPhase(StrEnum):
    """Where in the run loop control currently is."""

    INIT = "init"
    INPUT_GUARDRAILS = "input_guardrails"
    MODEL_TURN = "model_turn"
    TOOL_DISPATCH = "tool_dispatch"
    HANDOFF = "handoff"
    OUTPUT_GUARDRAILS = "output_guardrails"
    DONE = "done"


class TurnRecord(BaseModel):
    """One model turn: which agent ran, what it asked for, what it cost.

    Args:
        agent_name: Agent that was active for the turn.
        index: Zero-based turn index within the run.
        started_at: Timestamp when the turn began.
        ended_at: Timestamp when the turn's dispatch finished.
        tool_calls: Calls the model requested on this turn.
        usage: Token usage of the turn's model call.
        error: Error message if the turn failed.
    """

    agent_name: str
    index: int = 0
    started_at: float = Field(default_factory=time.time)
    ended_at: float | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    error: str | None = None

    def finish(self, error: str | None = None) -> None:
        self.ended_at = time.time()
        self.error = error

    @property
    def duration(self) -> float | None:
        """Elapsed seconds, or None if the turn has not finished."""
        if self.ended_at is None:
            return None
        return self.ended_at - self.started_at


class RunState:
    """Mutable execution state for a single run.

    ``messages`` is the append-only record of the run. A handoff
    ``input_filter`` does not touch it; it sets a filtered *view prefix*
    instead, and :meth:`model_input` returns that prefix followed by every
    message appended since.

    Args:
        agent_name: Name of the starting agent.
    """

    def __init__(self, agent_name: str) -> None:
        self.agent_name = agent_name
        self.status = RunStatus.INIT
        self.phase = RunPhase.INIT
        self.messages: list[Message] = []
        self.turns: list[TurnRecord] = []
        self.handoffs: list[HandoffEvent] = []
        self.input_guardrail_results: list[GuardrailResult] = []
        self.output_guardrail_results: list[GuardrailResult] = []
        self.usage = Usage()
        self._view_prefix: list[Message] | None = None
        self._view_offset = 0

    def start(self) -> None:
        self.status = RunStatus.RUNNING

    def enter(self, phase: RunPhase) -> None:
        self.phase = phase

    def add_message(self, message: Message) -> None:
        self.messages.append(message)

    def add_messages(self, messages: Sequence[Message]) -> None:
        self.messages.extend(messages)

    def set_view(self, prefix: Sequence[Message]) -> None:
        """Make *prefix* stand in for everything recorded so far."""
        self._view_prefix = list(prefix)
        self._view_offset = len(self.messages)

    def model_input(self) -> list[Message]:
        """History as the active agent should see it."""
        if self._view_prefix is None:
            return list(self.messages)
        return self._view_prefix + self.messages[self._view_offset :]

    def new_turn(self) -> TurnRecord:
        turn = TurnRecord(agent_name=self.agent_name, index=len(self.turns))
        self.turns.append(turn)
        return turn

    def record_usage(self, usage: Usage) -> None:
        self.usage = self.usage.add(usage)

    def record_handoff(self, event: HandoffEvent) -> None:
        self.handoffs.append(event)
        self.agent_name = event.to_agent

    def succeed(self) -> None:
        self.status = RunStatus.SUCCESS
        self.phase = RunPhase.DONE

    def abort(self) -> None:
        self.status = RunStatus.ABORTED

    def fail(self) -> None:
        self.status = RunStatus.FAILED

    def cancel(self) -> None:
        self.status = RunStatus.CANCELLED

    @property
    def turn_count(self) -> int:
        return len(self.turns)

    @property
    def agent_turn_count(self) -> int:
        """Turns taken by the active agent since control last changed hands."""
        if not self.handoffs:
            return len(self.turns)
        return len(self.turns) - self.handoffs[-1].turn - 1

    @property
    def is_terminal(self) -> bool:
        return self.status in (
            RunStatus.SUCCESS,
            RunStatus.ABORTED,
            RunStatus.FAILED,
            RunStatus.CANCELLED,
        )

"""Run context shared by every phase of a run."""

from __future__ import annotations

import uuid
from typing import Generic, TypeVar

from waypoint.types import Usage

TContext = TypeVar("TContext")


class RunContext(Generic[TContext]):
    """Mutable state threaded through one top-level run.

    The same instance is handed to instructions callables, guardrail checks,
    tools, hooks, and any nested run started from inside a guardrail or tool.
    Waypoint never copies it; only the task holding control of the run
    mutates it.

    Args:
        context: Arbitrary caller-owned value, available as ``.context``.
        run_id: Identifier bound to log records. Generated when omitted.
    """

    def __init__(self, context: TContext | None = None, *, run_id: str | None = None) -> None:
        self.context = context
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.usage = Usage()

    def add_usage(self, usage: Usage) -> None:
        """Accumulate token usage, including that of nested runs."""
        self.usage = self.usage.add(usage)

    def __repr__(self) -> str:
        return f"RunContext(run_id={self.run_id!r}, context={self.context!r})"

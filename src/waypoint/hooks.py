"""Async lifecycle hooks attached to agents."""

from __future__ import annotations

import contextlib
import enum
from collections import defaultdict
from collections.abc import Callable, Coroutine
from typing import Any

Hook = Callable[..., Coroutine[Any, Any, None]]
"""Type alias for async hook functions."""


class HookPoint(enum.Enum):
    """Points in a run where an agent's hooks fire.

    Every hook receives ``agent`` and ``context`` keyword arguments plus the
    point-specific data listed below.

    - ``START``: ``input`` (starting agent only).
    - ``FINISHED``: ``result``.
    - ``ERROR``: ``error``.
    - ``PRE_LLM_CALL``: ``messages``.
    - ``POST_LLM_CALL``: ``response``.
    - ``PRE_TOOL_CALL``: ``tool_name``, ``arguments`` (raw JSON string).
    - ``POST_TOOL_CALL``: ``tool_name``, ``result``.
    - ``HANDOFF``: ``target`` (fired on the source agent).
    - ``GUARDRAIL_TRIPPED``: ``guardrail_result``.
    """

    START = "start"
    FINISHED = "finished"
    ERROR = "error"
    PRE_LLM_CALL = "pre_llm_call"
    POST_LLM_CALL = "post_llm_call"
    PRE_TOOL_CALL = "pre_tool_call"
    POST_TOOL_CALL = "post_tool_call"
    HANDOFF = "handoff"
    GUARDRAIL_TRIPPED = "guardrail_tripped"


class HookManager:
    """Holds an agent's hooks, keyed by lifecycle point.

    Hooks run sequentially in registration order. Exceptions are **not**
    suppressed: a failing hook fails the run.
    """

    def __init__(self) -> None:
        self._hooks: defaultdict[HookPoint, list[Hook]] = defaultdict(list)

    def add(self, point: HookPoint, hook: Hook) -> None:
        """Register *hook* at *point*."""
        self._hooks[point].append(hook)

    def remove(self, point: HookPoint, hook: Hook) -> None:
        """Remove the first registration of *hook* at *point*, if any."""
        with contextlib.suppress(ValueError):
            self._hooks[point].remove(hook)

    async def run(self, point: HookPoint, **data: Any) -> None:
        """Await every hook registered at *point* with *data* as kwargs."""
        for hook in self._hooks[point]:
            await hook(**data)

    def has_hooks(self, point: HookPoint) -> bool:
        return bool(self._hooks[point])

    def items(self) -> list[tuple[HookPoint, Hook]]:
        """All registrations as ``(point, hook)`` pairs, in order per point."""
        return [(point, hook) for point, hooks in self._hooks.items() for hook in hooks]

    def clear(self) -> None:
        self._hooks.clear()

"""Public entry point for running agents.

Provides ``run()`` (async) and ``run.sync()`` (blocking).

Usage::

    result = await run(agent, "What is the weather like in Paris?")
    result = run.sync(agent, "Hello!")

Runs may nest: a guardrail or tool can call ``run()`` with the
``RunContext`` it was given. The nested run shares that context (and
therefore its usage totals), inherits the outer run's explicit provider
and its ``RunConfig``, and keeps its own message history. Nesting depth
is capped by ``RunConfig.max_handoffs``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from contextvars import ContextVar
from typing import Any

from waypoint._internal.run_loop import MaxNestingExceeded, RunLoop, RunTimeoutError
from waypoint.agent import Agent
from waypoint.config import RunConfig
from waypoint.context import RunContext
from waypoint.log import get_logger
from waypoint.types import Message, RunResult

_log = get_logger(__name__)

_depth: ContextVar[int] = ContextVar("waypoint_run_depth", default=0)
_inherited_provider: ContextVar[Any] = ContextVar("waypoint_run_provider", default=None)
_inherited_config: ContextVar[RunConfig | None] = ContextVar("waypoint_run_config", default=None)


class _ProviderCache:
    """One provider per distinct model string within a run."""

    def __init__(self, explicit: Any = None) -> None:
        self._explicit = explicit
        self._by_model: dict[str, Any] = {}

    def __call__(self, agent: Agent) -> Any:
        if self._explicit is not None:
            return self._explicit
        provider = self._by_model.get(agent.model)
        if provider is None:
            from waypoint.models import get_provider

            provider = get_provider(agent.model)
            self._by_model[agent.model] = provider
        return provider


async def run(
    agent: Agent,
    input: str,
    *,
    context: Any = None,
    messages: Sequence[Message] | None = None,
    provider: Any = None,
    config: RunConfig | None = None,
    max_turns: int | None = None,
) -> RunResult:
    """Execute *agent* on *input* and return the result.

    This is the primary async API. For a blocking variant, use
    ``run.sync()``.

    Args:
        agent: The starting agent.
        input: The user's message.
        context: A ``RunContext`` to share (nested runs pass the one they
            were given), or any value to wrap in a fresh ``RunContext``.
        messages: Prior conversation history to continue from.
        provider: Object with an ``async complete()`` method used for every
            agent of the run. When ``None``, inherited from an enclosing run
            or resolved per agent model via ``get_provider()``.
        config: Limits and policies. When ``None``, inherited from an
            enclosing run, else ``RunConfig()``.
        max_turns: Shortcut overriding ``config.max_turns``.

    Returns:
        ``RunResult`` with the final output, full history, guardrail
        outcomes, handoffs and usage.

    Raises:
        InputGuardrailTripwireTriggered: An input guardrail tripped.
        OutputGuardrailTripwireTriggered: An output guardrail tripped.
        MaxNestingExceeded: Too many runs nested inside each other.
        RunTimeoutError: ``config.timeout`` elapsed.
        RunError: Any other run failure.
    """
    cfg = config or _inherited_config.get() or RunConfig()
    if max_turns is not None:
        cfg = cfg.model_copy(update={"max_turns": max_turns})

    depth = _depth.get()
    if depth > cfg.max_handoffs:
        raise MaxNestingExceeded(
            f"Nested runs exceeded depth {cfg.max_handoffs}",
            agent_name=agent.name,
            phase="init",
        )

    run_context = context if isinstance(context, RunContext) else RunContext(context)
    chosen = provider if provider is not None else _inherited_provider.get()
    _log.debug(
        "run() starting agent='%s' depth=%d provider=%s",
        agent.name,
        depth,
        type(chosen).__name__ if chosen is not None else "auto",
    )

    loop = RunLoop(
        agent,
        input,
        context=run_context,
        messages=messages,
        provider_for=_ProviderCache(chosen),
        config=cfg,
    )

    depth_token = _depth.set(depth + 1)
    provider_token = _inherited_provider.set(chosen)
    config_token = _inherited_config.set(cfg)
    try:
        if cfg.timeout is None:
            return await loop.execute()
        try:
            async with asyncio.timeout(cfg.timeout):
                return await loop.execute()
        except TimeoutError as exc:
            raise RunTimeoutError(
                f"Run did not finish within {cfg.timeout}s",
                agent_name=loop.active.name,
                phase=str(loop.state.phase),
            ) from exc
    finally:
        _inherited_config.reset(config_token)
        _inherited_provider.reset(provider_token)
        _depth.reset(depth_token)


def _sync(
    agent: Agent,
    input: str,
    *,
    context: Any = None,
    messages: Sequence[Message] | None = None,
    provider: Any = None,
    config: RunConfig | None = None,
    max_turns: int | None = None,
) -> RunResult:
    """Execute an agent synchronously (blocking wrapper).

    Calls ``run()`` via ``asyncio.run()``, so it must not be used from
    inside a running event loop.
    """
    return asyncio.run(
        run(
            agent,
            input,
            context=context,
            messages=messages,
            provider=provider,
            config=config,
            max_turns=max_turns,
        )
    )


run.sync = _sync  # type: ignore[attr-defined]

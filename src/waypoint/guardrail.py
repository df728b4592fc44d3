"""Input and output guardrails with tripwire semantics.

A guardrail wraps a check ``(context, agent, value) -> GuardrailFunctionOutput``.
Input guardrails see the run's input before the first model call; output
guardrails see the final answer before it is returned. A tripped check aborts
the run with :class:`InputGuardrailTripwireTriggered` or
:class:`OutputGuardrailTripwireTriggered`.

Checks may start a nested ``run()`` with the same context, e.g. to ask a
classifier agent::

    @input_guardrail(name="Location Guardrail")
    async def location_guardrail(context, agent, value):
        result = await run(classifier, value, context=context)
        verdict = result.final_output_as(LocationCheck)
        return GuardrailFunctionOutput(
            output_info=verdict, tripwire_triggered=not verdict.is_location
        )
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Literal, overload

from waypoint.context import RunContext
from waypoint.log import get_logger
from waypoint.types import GuardrailFunctionOutput, GuardrailResult, RunError, WaypointError

if TYPE_CHECKING:
    from waypoint.agent import Agent

_log = get_logger(__name__)

GuardrailFunction = Callable[..., Any]
"""``(context, agent, value)`` returning ``GuardrailFunctionOutput``, sync or async."""


class GuardrailError(RunError):
    """Raised when a guardrail check itself fails (raises or returns junk)."""


class GuardrailTripwireTriggered(RunError):
    """A guardrail tripped and the run was aborted.

    Args:
        guardrail_result: The tripped outcome, with ``output_info`` diagnostics.
        agent_name: Agent the guardrail was attached to.
    """

    def __init__(self, guardrail_result: GuardrailResult, *, agent_name: str = "") -> None:
        self.guardrail_result = guardrail_result
        super().__init__(
            f"{guardrail_result.phase.capitalize()} guardrail "
            f"'{guardrail_result.guardrail_name}' triggered tripwire",
            agent_name=agent_name,
            phase=f"{guardrail_result.phase}_guardrails",
        )

    @property
    def guardrail_name(self) -> str:
        return self.guardrail_result.guardrail_name

    @property
    def output_info(self) -> Any:
        return self.guardrail_result.output_info


class InputGuardrailTripwireTriggered(GuardrailTripwireTriggered):
    """An input guardrail tripped; no model call or tool ran."""


class OutputGuardrailTripwireTriggered(GuardrailTripwireTriggered):
    """An output guardrail tripped; the final answer was discarded.

    Args:
        guardrail_result: The tripped outcome.
        agent_output: The answer that was withheld from the caller.
        agent_name: Agent that produced the answer.
    """

    def __init__(
        self, guardrail_result: GuardrailResult, *, agent_output: Any = None, agent_name: str = ""
    ) -> None:
        self.agent_output = agent_output
        super().__init__(guardrail_result, agent_name=agent_name)


class _Guardrail:
    phase: Literal["input", "output"]

    def __init__(self, fn: GuardrailFunction, *, name: str | None = None) -> None:
        self._fn = fn
        self._is_async = inspect.iscoroutinefunction(fn)
        self.name = name or fn.__name__

    async def check(self, context: RunContext[Any], agent: Agent, value: Any) -> GuardrailResult:
        """Run the check once and record its outcome.

        Raises:
            GuardrailError: If the check raises a non-Waypoint exception or
                returns something other than ``GuardrailFunctionOutput``.
        """
        try:
            if self._is_async:
                outcome = await self._fn(context, agent, value)
            else:
                outcome = await asyncio.to_thread(self._fn, context, agent, value)
        except WaypointError:
            raise
        except Exception as exc:
            raise GuardrailError(
                f"Guardrail '{self.name}' raised: {exc}",
                agent_name=agent.name,
                phase=f"{self.phase}_guardrails",
            ) from exc
        if not isinstance(outcome, GuardrailFunctionOutput):
            raise GuardrailError(
                f"Guardrail '{self.name}' returned {type(outcome).__name__}, "
                "expected GuardrailFunctionOutput",
                agent_name=agent.name,
                phase=f"{self.phase}_guardrails",
            )
        return GuardrailResult(
            guardrail_name=self.name,
            phase=self.phase,
            agent_name=agent.name,
            output_info=outcome.output_info,
            tripwire_triggered=outcome.tripwire_triggered,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class InputGuardrail(_Guardrail):
    """Check run against the run's input before any model call."""

    phase = "input"


class OutputGuardrail(_Guardrail):
    """Check run against an agent's final answer."""

    phase = "output"


# ---------------------------------------------------------------------------
# Decorators
# ---------------------------------------------------------------------------


@overload
def input_guardrail(fn: GuardrailFunction, /) -> InputGuardrail: ...


@overload
def input_guardrail(
    fn: None = None, /, *, name: str | None = None
) -> Callable[[GuardrailFunction], InputGuardrail]: ...


def input_guardrail(
    fn: GuardrailFunction | None = None, /, *, name: str | None = None
) -> InputGuardrail | Callable[[GuardrailFunction], InputGuardrail]:
    """Turn a check function into an ``InputGuardrail``."""
    if fn is not None:
        return InputGuardrail(fn, name=name)
    return lambda func: InputGuardrail(func, name=name)


@overload
def output_guardrail(fn: GuardrailFunction, /) -> OutputGuardrail: ...


@overload
def output_guardrail(
    fn: None = None, /, *, name: str | None = None
) -> Callable[[GuardrailFunction], OutputGuardrail]: ...


def output_guardrail(
    fn: GuardrailFunction | None = None, /, *, name: str | None = None
) -> OutputGuardrail | Callable[[GuardrailFunction], OutputGuardrail]:
    """Turn a check function into an ``OutputGuardrail``."""
    if fn is not None:
        return OutputGuardrail(fn, name=name)
    return lambda func: OutputGuardrail(func, name=name)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


async def evaluate_guardrails(
    guardrails: Sequence[_Guardrail],
    agent: Agent,
    value: Any,
    context: RunContext[Any],
) -> list[GuardrailResult]:
    """Run *guardrails* concurrently and collect outcomes in declaration order.

    Collection stops at the first tripped outcome (in declaration order);
    checks still pending at that point are cancelled. Checks never see each
    other's outcomes.

    Returns:
        Outcomes up to and including the first tripped one.
    """
    if not guardrails:
        return []

    tasks = [asyncio.create_task(g.check(context, agent, value)) for g in guardrails]
    results: list[GuardrailResult] = []
    try:
        for task in tasks:
            result = await task
            results.append(result)
            if result.tripwire_triggered:
                break
    finally:
        pending = [t for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
    return results


async def _evaluate_phase(
    guardrails: Sequence[_Guardrail],
    agent: Agent,
    value: Any,
    context: RunContext[Any],
) -> tuple[list[GuardrailResult], GuardrailResult | None]:
    results = await evaluate_guardrails(guardrails, agent, value, context)
    tripped = next((r for r in results if r.tripwire_triggered), None)
    if tripped is not None:
        _log.info(
            "%s guardrail '%s' tripped on agent '%s'",
            tripped.phase,
            tripped.guardrail_name,
            agent.name,
        )
    return results, tripped


async def run_input_guardrails(
    agent: Agent, value: Any, context: RunContext[Any]
) -> list[GuardrailResult]:
    """Evaluate *agent*'s input guardrails against the run input.

    Raises:
        InputGuardrailTripwireTriggered: If any check trips.
    """
    results, tripped = await _evaluate_phase(agent.input_guardrails, agent, value, context)
    if tripped is not None:
        raise InputGuardrailTripwireTriggered(tripped, agent_name=agent.name)
    return results


async def run_output_guardrails(
    agent: Agent, output: Any, context: RunContext[Any]
) -> list[GuardrailResult]:
    """Evaluate *agent*'s output guardrails against its final answer.

    Raises:
        OutputGuardrailTripwireTriggered: If any check trips.
    """
    results, tripped = await _evaluate_phase(agent.output_guardrails, agent, output, context)
    if tripped is not None:
        raise OutputGuardrailTripwireTriggered(
            tripped, agent_output=output, agent_name=agent.name
        )
    return results

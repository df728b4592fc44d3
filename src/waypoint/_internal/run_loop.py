"""The run loop: drives one run from input to ``RunResult``.

Phases::

    INIT -> INPUT_GUARDRAILS -> MODEL_TURN -+-> TOOL_DISPATCH -> MODEL_TURN
                                            +-> HANDOFF       -> MODEL_TURN
                                            +-> OUTPUT_GUARDRAILS -> DONE

A tripped guardrail ends the run as ABORTED, any other failure as FAILED,
and cancellation of the calling task as CANCELLED. Exactly one agent is
active at a time; only a handoff changes it.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from waypoint._internal.graph import build_agent_graph, find_cycle
from waypoint._internal.message_builder import validate_message_order
from waypoint._internal.model_invoker import (
    FinalAnswer,
    HandoffRequest,
    ToolCallRequest,
    invoke_model,
)
from waypoint._internal.state import RunPhase, RunState, TurnRecord
from waypoint._internal.tool_executor import execute_tool_calls
from waypoint.config import RunConfig
from waypoint.context import RunContext
from waypoint.guardrail import (
    GuardrailTripwireTriggered,
    run_input_guardrails,
    run_output_guardrails,
)
from waypoint.handoff import HandoffError
from waypoint.hooks import HookPoint
from waypoint.log import LogContext, get_logger
from waypoint.tool import ToolValidationError
from waypoint.types import (
    HandoffEvent,
    Message,
    RunError,
    RunResult,
    ToolResult,
    UserMessage,
    WaypointError,
)

if TYPE_CHECKING:
    from waypoint.agent import Agent

_log = get_logger(__name__)

ProviderResolver = Callable[["Agent"], Any]


class RunLimitError(RunError):
    """Base class for runs stopped by a configured bound."""


class MaxTurnsExceeded(RunLimitError):
    """One agent took more consecutive model turns than ``RunConfig.max_turns``."""


class MaxHandoffsExceeded(RunLimitError):
    """The run attempted more handoffs than ``RunConfig.max_handoffs``."""


class MaxNestingExceeded(RunLimitError):
    """Runs started from guardrails or tools nested too deeply."""


class RunTimeoutError(RunLimitError):
    """The run did not finish within ``RunConfig.timeout`` seconds."""


_EXTRA_TRANSFER_ERROR = "Only one handoff per turn is allowed; this transfer was ignored."


class RunLoop:
    """State machine for a single run.

    Args:
        starting_agent: The agent that receives the input.
        input: The user's input for this run.
        context: Shared run context.
        messages: Prior conversation to continue from.
        provider_for: Returns the provider to use for a given agent.
        config: Run limits and policies.
    """

    def __init__(
        self,
        starting_agent: Agent,
        input: str,
        *,
        context: RunContext[Any],
        messages: Sequence[Message] | None,
        provider_for: ProviderResolver,
        config: RunConfig,
    ) -> None:
        self.starting_agent = starting_agent
        self.active = starting_agent
        self.input = input
        self.context = context
        self.prior = list(messages or [])
        self.provider_for = provider_for
        self.config = config
        self.state = RunState(agent_name=starting_agent.name)

    async def execute(self) -> RunResult:
        """Drive the run to a terminal state.

        Raises:
            GuardrailTripwireTriggered: A guardrail tripped (run ABORTED).
            WaypointError: Any typed failure, propagated unchanged.
            RunError: Wraps unexpected exceptions, with the phase they hit.
            asyncio.CancelledError: The calling task was cancelled.
        """
        state = self.state
        with LogContext(run_id=self.context.run_id):
            state.start()
            _log.debug("run started on agent '%s'", self.starting_agent.name)
            try:
                return await self._run()
            except asyncio.CancelledError:
                state.cancel()
                _log.info("run cancelled in phase %s", state.phase)
                raise
            except GuardrailTripwireTriggered as exc:
                state.abort()
                await self.active.hook_manager.run(
                    HookPoint.GUARDRAIL_TRIPPED,
                    agent=self.active,
                    context=self.context,
                    guardrail_result=exc.guardrail_result,
                )
                raise
            except WaypointError as exc:
                state.fail()
                _log.error("run failed in phase %s: %s", state.phase, exc)
                await self._fire_error(exc)
                raise
            except Exception as exc:
                state.fail()
                _log.error("run failed in phase %s: %s", state.phase, exc, exc_info=True)
                error = RunError(
                    f"Run failed in phase '{state.phase}' on agent '{self.active.name}': {exc}",
                    agent_name=self.active.name,
                    phase=str(state.phase),
                )
                await self._fire_error(error)
                raise error from exc

    async def _fire_error(self, error: Exception) -> None:
        await self.active.hook_manager.run(
            HookPoint.ERROR, agent=self.active, context=self.context, error=error
        )

    async def _run(self) -> RunResult:
        state = self.state
        agent = self.starting_agent

        graph, agents = build_agent_graph(agent)
        cycle = find_cycle(graph)
        if cycle:
            _log.debug("handoff graph has a cycle: %s", " -> ".join(cycle))
        _log.debug("agent graph: %d agent(s) reachable", len(agents))

        state.add_messages(self.prior)
        state.add_message(UserMessage(content=self.input))
        await agent.hook_manager.run(
            HookPoint.START, agent=agent, context=self.context, input=self.input
        )

        state.enter(RunPhase.INPUT_GUARDRAILS)
        state.input_guardrail_results = await run_input_guardrails(
            agent, self.input, self.context
        )

        while True:
            if state.agent_turn_count >= self.config.max_turns:
                raise MaxTurnsExceeded(
                    f"Agent '{self.active.name}' exceeded max_turns={self.config.max_turns}",
                    agent_name=self.active.name,
                    phase=str(RunPhase.MODEL_TURN),
                )
            result = await self._turn()
            if result is not None:
                return result

    async def _turn(self) -> RunResult | None:
        state = self.state
        agent = self.active
        state.enter(RunPhase.MODEL_TURN)
        turn = state.new_turn()

        with LogContext(agent=agent.name):
            view = state.model_input()
            for warning in validate_message_order(view):
                _log.debug("message order: %s", warning)
            _log.debug("turn %d on '%s' with %d message(s)", turn.index, agent.name, len(view))

            decision = await invoke_model(
                agent, view, self.provider_for(agent), self.context, self.config
            )
            turn.usage = decision.usage
            state.record_usage(decision.usage)
            self.context.add_usage(decision.usage)
            state.add_message(decision.message)
            turn.tool_calls = list(decision.message.tool_calls)

            if isinstance(decision, FinalAnswer):
                turn.finish()
                return await self._finish(agent, decision)

            if isinstance(decision, ToolCallRequest):
                state.enter(RunPhase.TOOL_DISPATCH)
                results = await execute_tool_calls(
                    agent, decision.tool_calls, self.context, config=self.config
                )
                state.add_messages(results)
                turn.finish()
                return None

            await self._handoff(agent, decision, turn)
            turn.finish()
            return None

    async def _finish(self, agent: Agent, decision: FinalAnswer) -> RunResult:
        state = self.state
        state.enter(RunPhase.OUTPUT_GUARDRAILS)
        state.output_guardrail_results = await run_output_guardrails(
            agent, decision.output, self.context
        )
        state.succeed()
        result = RunResult(
            final_output=decision.output,
            output=decision.message.content,
            last_agent=agent.name,
            messages=list(state.messages),
            input_guardrail_results=state.input_guardrail_results,
            output_guardrail_results=state.output_guardrail_results,
            handoffs=list(state.handoffs),
            usage=state.usage,
            turns=state.turn_count,
        )
        _log.debug("run finished on '%s' after %d turn(s)", agent.name, result.turns)
        await agent.hook_manager.run(
            HookPoint.FINISHED, agent=agent, context=self.context, result=result
        )
        return result

    async def _handoff(self, source: Agent, decision: HandoffRequest, turn: TurnRecord) -> None:
        state = self.state
        call = decision.call
        target = decision.handoff
        if target is None:
            raise HandoffError(
                f"Agent '{source.name}' declares no handoff for '{call.name}' "
                f"(declared: {', '.join(source.handoffs) or 'none'})",
                agent_name=source.name,
                phase=str(RunPhase.HANDOFF),
            )

        if decision.tool_calls:
            state.enter(RunPhase.TOOL_DISPATCH)
            state.add_messages(
                await execute_tool_calls(
                    source, decision.tool_calls, self.context, config=self.config
                )
            )

        state.enter(RunPhase.HANDOFF)
        refusals = [
            ToolResult(tool_call_id=extra.id, tool_name=extra.name, error=_EXTRA_TRANSFER_ERROR)
            for extra in decision.extra_transfers
        ]

        try:
            handoff_input = target.validate_arguments(call.arguments)
        except ToolValidationError as exc:
            _log.info("Rejected handoff arguments for '%s': %s", call.name, exc)
            state.add_message(ToolResult(tool_call_id=call.id, tool_name=call.name, error=str(exc)))
            state.add_messages(refusals)
            return

        if len(state.handoffs) >= self.config.max_handoffs:
            raise MaxHandoffsExceeded(
                f"Run exceeded max_handoffs={self.config.max_handoffs}",
                agent_name=source.name,
                phase=str(RunPhase.HANDOFF),
            )

        await target.invoke(self.context, handoff_input)
        state.add_message(
            ToolResult(
                tool_call_id=call.id,
                tool_name=call.name,
                content=json.dumps({"assistant": target.agent_name}),
            )
        )
        state.add_messages(refusals)
        await source.hook_manager.run(
            HookPoint.HANDOFF, agent=source, context=self.context, target=target.agent
        )

        state.record_handoff(
            HandoffEvent(
                from_agent=source.name,
                to_agent=target.agent_name,
                tool_call_id=call.id,
                turn=turn.index,
            )
        )
        if target.input_filter is not None:
            state.set_view(target.filter_history(state.model_input()))
        self.active = target.agent
        _log.info("handoff '%s' -> '%s'", source.name, target.agent_name)

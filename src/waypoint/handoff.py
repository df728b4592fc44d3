"""Handoffs: transfer an in-flight conversation to another agent.

Each handoff is exposed to the model as a tool named ``transfer_to_<agent>``.
When the model calls it, the run loop switches the active agent; the next
model turn uses the target's instructions, tools and handoffs.
"""

from __future__ import annotations

import inspect
import re
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from waypoint._internal.output_parser import OutputParseError, parse_json_arguments
from waypoint._internal.schema import EMPTY_OBJECT_SCHEMA, model_schema
from waypoint.context import RunContext
from waypoint.tool import ToolValidationError
from waypoint.types import AssistantMessage, Message, RunError, ToolResult

if TYPE_CHECKING:
    from waypoint.agent import Agent

HANDOFF_TOOL_PREFIX = "transfer_to_"

InputFilter = Callable[[list[Message]], list[Message]]
OnHandoff = Callable[..., Any]


class HandoffError(RunError):
    """Raised for invalid handoff routing (undeclared target, name clashes)."""


def default_tool_name(agent_name: str) -> str:
    """``"Weather Bot"`` -> ``"transfer_to_weather_bot"``."""
    snake = re.sub(r"[^0-9a-zA-Z]+", "_", agent_name).strip("_").lower()
    return f"{HANDOFF_TOOL_PREFIX}{snake}"


def is_handoff_tool_name(name: str) -> bool:
    return name.startswith(HANDOFF_TOOL_PREFIX)


class Handoff:
    """A handoff target plus how it is presented to the model.

    Args:
        agent: The agent that takes over, or a zero-argument callable that
            returns it. The callable form lets agents hand off to each other
            in a cycle; it is resolved when the run validates its graph.
        agent_name: Name of the agent a callable returns. Required with the
            callable form, ignored otherwise.
        tool_name: Name of the transfer tool. Defaults to
            ``transfer_to_<snake_case agent name>``.
        tool_description: Description shown to the model.
        input_filter: Rewrites the history the target sees on its turns.
            The run's recorded history is never modified.
        on_handoff: Called when the transfer happens, with the run context
            (and the validated ``input_type`` instance when one is set).
        input_type: Pydantic model for arguments the model must supply with
            the transfer call.
    """

    def __init__(
        self,
        agent: Agent | Callable[[], Agent],
        *,
        agent_name: str | None = None,
        tool_name: str | None = None,
        tool_description: str | None = None,
        input_filter: InputFilter | None = None,
        on_handoff: OnHandoff | None = None,
        input_type: type[BaseModel] | None = None,
    ) -> None:
        if callable(agent):
            if not agent_name:
                raise TypeError("agent_name is required when the handoff target is a callable")
            self._agent: Agent | None = None
            self._factory: Callable[[], Agent] | None = agent
            self._agent_name = agent_name
            extra = ""
        else:
            self._agent = agent
            self._factory = None
            self._agent_name = agent.name
            extra = agent.handoff_description
        self.tool_name = tool_name or default_tool_name(self._agent_name)
        self.tool_description = tool_description or self._default_description(
            self._agent_name, extra
        )
        self.input_filter = input_filter
        self.on_handoff = on_handoff
        self.input_type = input_type
        self.parameters = model_schema(input_type) if input_type else dict(EMPTY_OBJECT_SCHEMA)

    @staticmethod
    def _default_description(agent_name: str, extra: str) -> str:
        base = f"Handoff to the {agent_name} agent to handle the request."
        return f"{base} {extra}" if extra else base

    @property
    def agent(self) -> Agent:
        """The target agent, resolving a callable target on first access.

        Raises:
            HandoffError: If a callable target returns an agent with a
                different name than declared.
        """
        if self._agent is None:
            assert self._factory is not None
            resolved = self._factory()
            if resolved.name != self._agent_name:
                raise HandoffError(
                    f"Handoff target declared as '{self._agent_name}' resolved to "
                    f"agent '{resolved.name}'",
                    phase="init",
                )
            self._agent = resolved
        return self._agent

    @property
    def agent_name(self) -> str:
        return self._agent_name

    def to_schema(self) -> dict[str, Any]:
        """Transfer tool descriptor in OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.tool_name,
                "description": self.tool_description,
                "parameters": self.parameters,
            },
        }

    def validate_arguments(self, raw: str) -> BaseModel | None:
        """Decode and validate the transfer call's arguments.

        Returns ``None`` when no ``input_type`` is declared; arguments are
        then ignored.

        Raises:
            ToolValidationError: If the arguments do not fit ``input_type``.
        """
        if self.input_type is None:
            return None
        try:
            data = parse_json_arguments(raw, tool_name=self.tool_name)
            return self.input_type.model_validate(data)
        except OutputParseError as exc:
            raise ToolValidationError(str(exc), tool_name=self.tool_name) from exc
        except ValidationError as exc:
            raise ToolValidationError(
                f"Invalid arguments for handoff '{self.tool_name}': {exc}",
                tool_name=self.tool_name,
                errors=exc.errors(include_url=False),
            ) from exc

    async def invoke(self, context: RunContext[Any], handoff_input: BaseModel | None) -> None:
        """Run the ``on_handoff`` callback, if any."""
        if self.on_handoff is None:
            return
        args: tuple[Any, ...] = (context,) if self.input_type is None else (context, handoff_input)
        outcome = self.on_handoff(*args)
        if inspect.isawaitable(outcome):
            await outcome

    def filter_history(self, messages: Sequence[Message]) -> list[Message]:
        """Apply ``input_filter`` to a copy of *messages*."""
        if self.input_filter is None:
            return list(messages)
        return list(self.input_filter(list(messages)))

    def __repr__(self) -> str:
        return f"Handoff(agent={self._agent_name!r}, tool_name={self.tool_name!r})"


def handoff(
    agent: Agent | Callable[[], Agent],
    *,
    agent_name: str | None = None,
    tool_name: str | None = None,
    tool_description: str | None = None,
    input_filter: InputFilter | None = None,
    on_handoff: OnHandoff | None = None,
    input_type: type[BaseModel] | None = None,
) -> Handoff:
    """Build a :class:`Handoff` to *agent* with optional customisation."""
    return Handoff(
        agent,
        agent_name=agent_name,
        tool_name=tool_name,
        tool_description=tool_description,
        input_filter=input_filter,
        on_handoff=on_handoff,
        input_type=input_type,
    )


# ---------------------------------------------------------------------------
# Ready-made input filters
# ---------------------------------------------------------------------------


def remove_tool_messages(messages: list[Message]) -> list[Message]:
    """Drop tool results and tool calls, keeping the plain conversation."""
    kept: list[Message] = []
    for msg in messages:
        if isinstance(msg, ToolResult):
            continue
        if isinstance(msg, AssistantMessage) and msg.tool_calls:
            if not msg.content:
                continue
            msg = msg.model_copy(update={"tool_calls": []})
        kept.append(msg)
    return kept

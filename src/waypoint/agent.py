"""Agent class: the configured unit that owns a model, tools and handoffs."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Sequence
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel

from waypoint._internal.schema import model_schema
from waypoint.config import default_model, parse_model_string
from waypoint.context import RunContext
from waypoint.guardrail import InputGuardrail, OutputGuardrail
from waypoint.handoff import Handoff
from waypoint.hooks import Hook, HookManager, HookPoint
from waypoint.tool import Tool
from waypoint.types import WaypointError

Instructions = str | Callable[..., Any]
"""A string, or a sync/async callable ``(context, agent) -> str``."""


class AgentError(WaypointError):
    """Raised for agent-level errors (duplicate tools, invalid config, etc.)."""


class Agent:
    """An LLM-backed agent with tools, guardrails and handoff targets.

    Agents are immutable once built: ``tools`` and ``handoffs`` are read-only
    mappings and attribute assignment raises. Use :meth:`clone` to derive a
    variant. The same Agent may appear in several runs at once.

    All parameters are keyword-only; only ``name`` is required.

    Args:
        name: Identifier, unique within the agent graph of a run.
        instructions: System prompt, or a callable ``(context, agent)``
            returning one.
        model: Model string in ``"provider:model_name"`` format. Defaults to
            ``default_model()``.
        tools: Tools the model may call, in presentation order.
        handoffs: Agents (or ``Handoff`` wrappers) control may pass to.
        input_guardrails: Checks run on the input when this agent starts a run.
        output_guardrails: Checks run on this agent's final answer.
        output_type: Pydantic model the final answer must validate against.
        hooks: Lifecycle hooks as ``(HookPoint, Hook)`` tuples.
        temperature: LLM sampling temperature.
        max_tokens: Maximum output tokens per LLM call.
        handoff_description: Appended to the transfer tool description other
            agents see for this agent.
    """

    def __init__(
        self,
        *,
        name: str,
        instructions: Instructions = "",
        model: str | None = None,
        tools: Sequence[Tool] | None = None,
        handoffs: Sequence[Agent | Handoff] | None = None,
        input_guardrails: Sequence[InputGuardrail] | None = None,
        output_guardrails: Sequence[OutputGuardrail] | None = None,
        output_type: type[BaseModel] | None = None,
        hooks: Sequence[tuple[HookPoint, Hook]] | None = None,
        temperature: float = 1.0,
        max_tokens: int | None = None,
        handoff_description: str = "",
    ) -> None:
        if not name:
            raise AgentError("Agent name must be non-empty")
        self.name = name
        self.instructions = instructions
        self.model = model or default_model()
        self.provider_name, self.model_name = parse_model_string(self.model)
        self.output_type = output_type
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.handoff_description = handoff_description
        self.input_guardrails: tuple[InputGuardrail, ...] = tuple(input_guardrails or ())
        self.output_guardrails: tuple[OutputGuardrail, ...] = tuple(output_guardrails or ())

        tool_map: dict[str, Tool] = {}
        for t in tools or ():
            if t.name in tool_map:
                raise AgentError(f"Duplicate tool name '{t.name}' on agent '{name}'")
            tool_map[t.name] = t
        self.tools: MappingProxyType[str, Tool] = MappingProxyType(tool_map)

        handoff_map: dict[str, Handoff] = {}
        by_tool: dict[str, Handoff] = {}
        for item in handoffs or ():
            h = item if isinstance(item, Handoff) else Handoff(item)
            if h.agent_name in handoff_map:
                raise AgentError(f"Duplicate handoff agent '{h.agent_name}' on agent '{name}'")
            if h.tool_name in tool_map or h.tool_name in by_tool:
                raise AgentError(
                    f"Handoff tool name '{h.tool_name}' clashes with another tool on agent '{name}'"
                )
            handoff_map[h.agent_name] = h
            by_tool[h.tool_name] = h
        self.handoffs: MappingProxyType[str, Handoff] = MappingProxyType(handoff_map)
        self._handoffs_by_tool = by_tool

        self.hook_manager = HookManager()
        for point, hook in hooks or ():
            self.hook_manager.add(point, hook)

        self._frozen = True

    def __setattr__(self, key: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AgentError(f"Agent '{self.name}' is immutable; use clone() to change '{key}'")
        super().__setattr__(key, value)

    def get_handoff_by_tool(self, tool_name: str) -> Handoff | None:
        """Return the handoff whose transfer tool is *tool_name*, if declared."""
        return self._handoffs_by_tool.get(tool_name)

    def get_tool_schemas(self) -> list[dict[str, Any]]:
        """OpenAI-format descriptors: function tools first, then transfer tools."""
        schemas = [t.to_schema() for t in self.tools.values()]
        schemas.extend(h.to_schema() for h in self.handoffs.values())
        return schemas

    async def get_instructions(self, context: RunContext[Any]) -> str:
        """Resolve the system prompt for this turn."""
        raw = self.instructions
        if not callable(raw):
            return raw
        value = raw(context, self)
        if inspect.isawaitable(value):
            value = await value
        return str(value or "")

    def output_schema(self) -> dict[str, Any] | None:
        """``{"name", "schema"}`` for ``output_type``, or ``None``."""
        if self.output_type is None:
            return None
        return {"name": self.output_type.__name__, "schema": model_schema(self.output_type)}

    def clone(self, **overrides: Any) -> Agent:
        """Return a new Agent with this one's configuration and *overrides*.

        Raises:
            AgentError: If an override names an unknown parameter.
        """
        params: dict[str, Any] = {
            "name": self.name,
            "instructions": self.instructions,
            "model": self.model,
            "tools": list(self.tools.values()),
            "handoffs": list(self.handoffs.values()),
            "input_guardrails": list(self.input_guardrails),
            "output_guardrails": list(self.output_guardrails),
            "output_type": self.output_type,
            "hooks": self.hook_manager.items(),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "handoff_description": self.handoff_description,
        }
        unknown = set(overrides) - set(params)
        if unknown:
            raise AgentError(f"Unknown Agent parameter(s): {', '.join(sorted(unknown))}")
        params.update(overrides)
        return Agent(**params)

    def describe(self) -> dict[str, Any]:
        """Summary of the agent's capabilities, for logs and debugging."""
        return {
            "name": self.name,
            "model": self.model,
            "tools": list(self.tools),
            "handoffs": list(self.handoffs),
            "input_guardrails": [g.name for g in self.input_guardrails],
            "output_guardrails": [g.name for g in self.output_guardrails],
            "output_type": self.output_type.__name__ if self.output_type else None,
        }

    def __repr__(self) -> str:
        parts = [f"name={self.name!r}", f"model={self.model!r}"]
        if self.tools:
            parts.append(f"tools={list(self.tools)}")
        if self.handoffs:
            parts.append(f"handoffs={list(self.handoffs)}")
        return f"Agent({', '.join(parts)})"

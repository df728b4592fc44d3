"""Configuration types for Waypoint."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field

DEFAULT_MODEL = "openai:gpt-4o"
MODEL_ENV_VAR = "WAYPOINT_DEFAULT_MODEL"


def parse_model_string(model: str) -> tuple[str, str]:
    """Split a model string into provider and model name.

    Parses the ``"provider:model_name"`` format. If no colon is present,
    defaults the provider to ``"openai"``.

    Args:
        model: Model string, e.g. ``"openai:gpt-4o"`` or ``"gpt-4o"``.

    Returns:
        A ``(provider, model_name)`` tuple.
    """
    if ":" in model:
        provider, _, model_name = model.partition(":")
        return provider, model_name
    return "openai", model


def default_model() -> str:
    """Model string used by agents that do not name one.

    Reads ``WAYPOINT_DEFAULT_MODEL`` so deployments can swap models without
    touching agent definitions.
    """
    return os.environ.get(MODEL_ENV_VAR) or DEFAULT_MODEL


class ModelConfig(BaseModel):
    """Configuration for an LLM provider connection.

    Args:
        provider: Provider name, e.g. ``"openai"`` or ``"anthropic"``.
        model_name: Model identifier within the provider.
        api_key: API key. When ``None`` the SDK reads its usual env var.
        base_url: Custom API base URL.
        max_retries: SDK-level retries on transient HTTP failures.
        timeout: Request timeout in seconds.
    """

    model_config = {"frozen": True}

    provider: str = "openai"
    model_name: str = "gpt-4o"
    api_key: str | None = None
    base_url: str | None = None
    max_retries: int = Field(default=3, ge=0)
    timeout: float = Field(default=60.0, gt=0)


class RunConfig(BaseModel):
    """Limits and policies for a single ``run()`` invocation.

    Args:
        max_turns: Ceiling on model turns an agent may take before it answers
            or hands off. The count restarts with each handoff.
        max_handoffs: Ceiling on handoffs in one run. Also caps how deeply
            runs may nest inside guardrails and tools.
        max_retries: Attempts per model call before giving up.
        retry_backoff: Base delay in seconds; attempt ``n`` waits
            ``retry_backoff * 2**n``.
        handoff_precedence: When a response carries both text and a
            transfer call, hand off (``True``) or treat the text as the
            final answer (``False``).
        tool_error_mode: ``"report"`` feeds tool failures back to the model,
            ``"raise"`` aborts the run with the ``ToolError``.
        timeout: Wall-clock limit for the whole run in seconds.
    """

    model_config = {"frozen": True}

    max_turns: int = Field(default=10, ge=1)
    max_handoffs: int = Field(default=25, ge=0)
    max_retries: int = Field(default=3, ge=1)
    retry_backoff: float = Field(default=1.0, ge=0.0)
    handoff_precedence: bool = True
    tool_error_mode: Literal["report", "raise"] = "report"
    timeout: float | None = Field(default=None, gt=0)

"""Provider-agnostic model response types.

``ModelResponse`` is the contract between provider adapters and the run
loop: it is what ``provider.complete()`` returns.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from waypoint.types import ToolCall, Usage, WaypointError


class ModelError(WaypointError):
    """Raised when an LLM provider call fails.

    Args:
        message: Human-readable error description.
        model: The model identifier that caused the error.
        code: Normalized error code; ``"context_length"`` marks prompts that
            no retry can fix.
    """

    def __init__(self, message: str, *, model: str = "", code: str = "") -> None:
        self.model = model
        self.code = code
        full = f"[{model}] {message}" if model else message
        super().__init__(full)


FinishReason = Literal["stop", "tool_calls", "length", "content_filter"]
"""Why the model stopped generating.

Providers normalize their native values to these four categories:
- ``"stop"``: Natural completion (Anthropic ``"end_turn"``).
- ``"tool_calls"``: Model wants to invoke tools (Anthropic ``"tool_use"``).
- ``"length"``: Hit max tokens limit.
- ``"content_filter"``: Content was filtered by the provider.
"""


class ModelResponse(BaseModel):
    """Response from a completion call.

    Args:
        id: Provider-assigned correlation ID.
        model: Which model produced this response.
        content: Text output from the model.
        tool_calls: Tool invocations requested by the model.
        usage: Token usage statistics.
        finish_reason: Why the model stopped generating.
    """

    model_config = {"frozen": True}

    id: str = ""
    model: str = ""
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    finish_reason: FinishReason = "stop"

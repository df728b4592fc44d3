"""Decode model output: tool-call arguments and structured final answers.

Tool arguments arrive as JSON strings; they are decoded here and validated
later against the tool's input model. Final answers of agents with an
``output_type`` are decoded and validated against that pydantic model.
"""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from waypoint.types import WaypointError

_T = TypeVar("_T", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL)


class OutputParseError(WaypointError):
    """Raised when model output cannot be decoded as expected."""


def parse_json_arguments(raw: str, *, tool_name: str) -> dict[str, Any]:
    """Decode a JSON arguments string into a dict.

    Empty strings mean "no arguments".

    Raises:
        OutputParseError: If *raw* is not JSON or not a JSON object.
    """
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise OutputParseError(f"Invalid JSON in arguments for '{tool_name}': {exc}") from exc
    if not isinstance(parsed, dict):
        raise OutputParseError(
            f"Arguments for '{tool_name}' must be a JSON object, got {type(parsed).__name__}"
        )
    return parsed


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    return match.group(1).strip() if match else stripped


def parse_structured_output(text: str, output_type: type[_T]) -> _T:
    """Validate a model's final text against *output_type*.

    Markdown code fences around the JSON are tolerated.

    Raises:
        OutputParseError: If the text is not JSON or fails validation.
    """
    body = _strip_code_fence(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise OutputParseError(f"Final output is not valid JSON: {exc}") from exc
    try:
        return output_type.model_validate(data)
    except ValidationError as exc:
        raise OutputParseError(
            f"Final output does not match {output_type.__name__}: {exc}"
        ) from exc

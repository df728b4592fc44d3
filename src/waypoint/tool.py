"""Tool system: ABC, decorator, input models, and execution."""

from __future__ import annotations

import asyncio
import inspect
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, get_origin, get_type_hints, overload

from pydantic import BaseModel, Field, ValidationError, create_model

from waypoint._internal.schema import model_schema
from waypoint.context import RunContext
from waypoint.types import RunError, WaypointError

ToolOutput = str | dict[str, Any] | list[Any] | BaseModel


class ToolError(WaypointError):
    """Raised when a tool execution fails."""


class ToolValidationError(ToolError):
    """Raised when a tool's raw arguments fail its input schema.

    Args:
        message: Human-readable description.
        tool_name: The tool whose schema rejected the arguments.
        errors: Field-level diagnostics from pydantic.
    """

    def __init__(
        self, message: str, *, tool_name: str, errors: list[dict[str, Any]] | None = None
    ) -> None:
        self.tool_name = tool_name
        self.errors = errors or []
        super().__init__(message)


class ToolNotFoundError(RunError):
    """Raised when the model calls a tool the active agent does not have."""


# ---------------------------------------------------------------------------
# Input-model generation helpers (private)
# ---------------------------------------------------------------------------


def _extract_description(fn: Callable[..., Any]) -> str:
    """Return the first non-empty line of the function's docstring."""
    doc = inspect.getdoc(fn)
    if not doc:
        return ""
    for line in doc.splitlines():
        if line.strip():
            return line.strip()
    return ""


def _parse_docstring_args(fn: Callable[..., Any]) -> dict[str, str]:
    """Parse the Google-style ``Args:`` section of a docstring.

    Returns:
        Mapping of parameter name to its description.
    """
    doc = inspect.getdoc(fn)
    if not doc:
        return {}

    result: dict[str, str] = {}
    in_args = False
    current: str | None = None
    desc: list[str] = []

    def flush() -> None:
        if current is not None:
            result[current] = " ".join(desc).strip()

    for line in doc.splitlines():
        stripped = line.strip()
        if stripped == "Args:":
            in_args = True
            continue
        if not in_args:
            continue
        if re.match(r"^[A-Z]\w*:\s*$", stripped):
            break
        match = re.match(r"^(\w+)(?:\s*\([^)]*\))?\s*:\s*(.*)", stripped)
        if match:
            flush()
            current = match.group(1)
            desc = [match.group(2)] if match.group(2) else []
        elif current is not None and stripped:
            desc.append(stripped)
    flush()
    return result


def _is_context_annotation(annotation: Any) -> bool:
    if annotation is RunContext or get_origin(annotation) is RunContext:
        return True
    # unresolved forward references
    return isinstance(annotation, str) and annotation.split("[", 1)[0].strip() == "RunContext"


def _model_name(fn_name: str) -> str:
    return "".join(part.capitalize() for part in fn_name.split("_") if part) + "Args"


def _build_input_model(fn: Callable[..., Any]) -> tuple[type[BaseModel], str | None]:
    """Build a pydantic model from *fn*'s signature.

    Returns:
        The model and the name of the parameter that receives the
        ``RunContext`` (``None`` when the function does not take one).
    """
    sig = inspect.signature(fn)
    try:
        hints = get_type_hints(fn)
    except Exception:
        hints = {}
    doc_args = _parse_docstring_args(fn)

    fields: dict[str, Any] = {}
    context_param: str | None = None
    for name, param in sig.parameters.items():
        if name in ("self", "cls") or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            continue
        annotation = hints.get(name, param.annotation)
        if _is_context_annotation(annotation):
            context_param = name
            continue
        if annotation is inspect.Parameter.empty:
            annotation = Any
        default = ... if param.default is inspect.Parameter.empty else param.default
        fields[name] = (annotation, Field(default, description=doc_args.get(name)))

    return create_model(_model_name(fn.__name__), **fields), context_param


# ---------------------------------------------------------------------------
# Tool ABC and FunctionTool
# ---------------------------------------------------------------------------


class Tool(ABC):
    """Abstract base class for all tools.

    Subclasses implement ``execute()``. ``name``, ``description`` and
    ``parameters`` describe the tool to the model.

    Attributes:
        name: Unique tool name within an agent.
        description: Human-readable description.
        parameters: JSON Schema of the accepted arguments.
        raise_on_error: Abort the run when this tool fails instead of
            reporting the failure back to the model.
    """

    name: str
    description: str
    parameters: dict[str, Any]
    raise_on_error: bool = False

    def validate_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Check decoded arguments before execution.

        The base implementation accepts anything.

        Raises:
            ToolValidationError: If the arguments are rejected.
        """
        return dict(arguments)

    @abstractmethod
    async def execute(self, context: RunContext[Any], **kwargs: Any) -> ToolOutput:
        """Run the tool.

        Args:
            context: The shared run context.
            **kwargs: Validated arguments.
        """

    def to_schema(self) -> dict[str, Any]:
        """Return the tool descriptor in OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class FunctionTool(Tool):
    """A tool that wraps a plain sync or async function.

    The argument schema is derived from the signature (or taken from
    *args_model*) and enforced with pydantic before every call. A parameter
    annotated ``RunContext`` receives the run context and is hidden from the
    model. Sync functions run via ``asyncio.to_thread()``.

    Args:
        fn: The function to wrap.
        name: Tool name (defaults to ``fn.__name__``).
        description: Description (defaults to the docstring's first line).
        args_model: Explicit pydantic model for the arguments.
        raise_on_error: Abort the run when the function raises.
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        args_model: type[BaseModel] | None = None,
        raise_on_error: bool = False,
    ) -> None:
        self._fn = fn
        self._is_async = inspect.iscoroutinefunction(fn)
        self.name = name or fn.__name__
        self.description = description or _extract_description(fn)
        self.raise_on_error = raise_on_error
        generated, self._context_param = _build_input_model(fn)
        self.args_model = args_model or generated
        self.parameters = model_schema(self.args_model)

    def validate_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Validate *arguments* against ``args_model``.

        Returns:
            Field values of the validated model, keyed by field name.

        Raises:
            ToolValidationError: With pydantic's field-level errors.
        """
        try:
            validated = self.args_model.model_validate(arguments)
        except ValidationError as exc:
            raise ToolValidationError(
                f"Invalid arguments for tool '{self.name}': {exc}",
                tool_name=self.name,
                errors=exc.errors(include_url=False),
            ) from exc
        return {field: getattr(validated, field) for field in type(validated).model_fields}

    async def execute(self, context: RunContext[Any], **kwargs: Any) -> ToolOutput:
        """Call the wrapped function.

        A ``RunError`` raised by a nested run inside the function is passed
        through unchanged.

        Raises:
            ToolError: If the function raises.
        """
        if self._context_param is not None:
            kwargs[self._context_param] = context
        try:
            if self._is_async:
                return await self._fn(**kwargs)
            return await asyncio.to_thread(self._fn, **kwargs)
        except (ToolError, RunError):
            raise
        except Exception as exc:
            raise ToolError(f"Tool '{self.name}' failed: {exc}") from exc

    def __repr__(self) -> str:
        return f"FunctionTool(name={self.name!r})"


# ---------------------------------------------------------------------------
# @tool decorator
# ---------------------------------------------------------------------------


@overload
def tool(
    fn: Callable[..., Any],
    /,
    *,
    name: str | None = None,
    description: str | None = None,
    args_model: type[BaseModel] | None = None,
    raise_on_error: bool = False,
) -> FunctionTool: ...


@overload
def tool(
    fn: None = None,
    /,
    *,
    name: str | None = None,
    description: str | None = None,
    args_model: type[BaseModel] | None = None,
    raise_on_error: bool = False,
) -> Callable[[Callable[..., Any]], FunctionTool]: ...


def tool(
    fn: Callable[..., Any] | None = None,
    /,
    *,
    name: str | None = None,
    description: str | None = None,
    args_model: type[BaseModel] | None = None,
    raise_on_error: bool = False,
) -> FunctionTool | Callable[[Callable[..., Any]], FunctionTool]:
    """Turn a function into a ``FunctionTool``.

    Supports bare ``@tool``, ``@tool()``, ``@tool(name="x")`` and the
    direct form ``tool(fn, raise_on_error=True)``.
    """

    def decorator(func: Callable[..., Any]) -> FunctionTool:
        return FunctionTool(
            func,
            name=name,
            description=description,
            args_model=args_model,
            raise_on_error=raise_on_error,
        )

    if fn is not None:
        return decorator(fn)
    return decorator

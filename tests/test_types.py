"""Tests for waypoint.types: messages, usage, guardrail records, RunResult."""

from __future__ import annotations

import pytest
from pydantic import BaseModel, ValidationError

from waypoint.types import (
    AssistantMessage,
    GuardrailFunctionOutput,
    GuardrailResult,
    RunError,
    RunResult,
    ToolCall,
    ToolResult,
    Usage,
    UserMessage,
    WaypointError,
)


class Verdict(BaseModel):
    ok: bool


class TestMessages:
    def test_roles(self) -> None:
        assert UserMessage(content="hi").role == "user"
        assert AssistantMessage().role == "assistant"
        assert ToolResult(tool_call_id="c1", tool_name="t").role == "tool"

    def test_frozen(self) -> None:
        msg = UserMessage(content="hi")
        with pytest.raises(ValidationError):
            msg.content = "changed"  # type: ignore[misc]

    def test_assistant_defaults(self) -> None:
        msg = AssistantMessage(content="x")
        assert msg.tool_calls == []
        assert msg.agent_name == ""

    def test_tool_call_arguments_default_empty(self) -> None:
        assert ToolCall(id="c1", name="t").arguments == ""


class TestUsage:
    def test_add(self) -> None:
        a = Usage(input_tokens=10, output_tokens=5, total_tokens=15, requests=1)
        b = Usage(input_tokens=1, output_tokens=2, total_tokens=3, requests=1)
        total = a.add(b)
        assert total == Usage(input_tokens=11, output_tokens=7, total_tokens=18, requests=2)
        # originals untouched
        assert a.input_tokens == 10


class TestErrors:
    def test_run_error_carries_agent_and_phase(self) -> None:
        err = RunError("boom", agent_name="bot", phase="model_turn")
        assert isinstance(err, WaypointError)
        assert err.agent_name == "bot"
        assert err.phase == "model_turn"
        assert str(err) == "boom"


class TestGuardrailRecords:
    def test_function_output_defaults(self) -> None:
        out = GuardrailFunctionOutput()
        assert out.output_info is None
        assert out.tripwire_triggered is False

    def test_result_keeps_arbitrary_info(self) -> None:
        info = Verdict(ok=True)
        result = GuardrailResult(guardrail_name="g", phase="input", output_info=info)
        assert result.output_info is info

    def test_result_rejects_unknown_phase(self) -> None:
        with pytest.raises(ValidationError):
            GuardrailResult(guardrail_name="g", phase="middle")  # type: ignore[arg-type]


class TestRunResult:
    def test_defaults(self) -> None:
        result = RunResult()
        assert result.final_output is None
        assert result.messages == []
        assert result.handoffs == []
        assert result.turns == 0

    def test_final_output_as(self) -> None:
        result = RunResult(final_output=Verdict(ok=True))
        assert result.final_output_as(Verdict).ok is True

    def test_final_output_as_wrong_type(self) -> None:
        result = RunResult(final_output="plain text")
        with pytest.raises(TypeError, match="expected Verdict"):
            result.final_output_as(Verdict)

    def test_negative_turns_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RunResult(turns=-1)

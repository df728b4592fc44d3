"""Build the message list for LLM provider calls.

The builder puts the active agent's instructions first and then the history
as that agent should see it. Any system messages already in the history
(e.g. instructions of a previous agent passed in as prior messages) stay
where they are.
"""

from __future__ import annotations

from collections.abc import Sequence

from waypoint.types import AssistantMessage, Message, SystemMessage, ToolResult


def build_messages(instructions: str, history: Sequence[Message]) -> list[Message]:
    """Build the message list for an LLM call.

    Args:
        instructions: The system prompt. If empty, no system message is added.
        history: Conversation messages visible to the agent.

    Returns:
        Ordered list of messages ready for the LLM provider.
    """
    messages: list[Message] = []
    if instructions:
        messages.append(SystemMessage(content=instructions))
    messages.extend(history)
    return messages


def validate_message_order(messages: Sequence[Message]) -> list[str]:
    """Check message ordering for common provider API issues.

    Detects dangling tool calls (an assistant requested tool calls but no
    matching results follow) and results that answer no call.

    Returns:
        A list of warning strings. Empty if no issues found.
    """
    warnings: list[str] = []
    pending: set[str] = set()
    orphans: list[str] = []

    for msg in messages:
        if isinstance(msg, AssistantMessage) and msg.tool_calls:
            pending.update(tc.id for tc in msg.tool_calls)
        elif isinstance(msg, ToolResult):
            if msg.tool_call_id in pending:
                pending.discard(msg.tool_call_id)
            else:
                orphans.append(msg.tool_call_id)

    if pending:
        warnings.append(f"Dangling tool calls without results: {', '.join(sorted(pending))}")
    if orphans:
        warnings.append(f"Tool results without a matching call: {', '.join(orphans)}")
    return warnings

"""Tests for message and turn result types."""

from __future__ import annotations

import pytest

from sheetpilot.ai.orchestration.types import (
    ConfirmationRequired,
    EngineResponse,
    Message,
    MessageResult,
    Outcome,
    PendingInvocation,
    StopReason,
    TextBlock,
    ToolInvocation,
)


def test_message_constructors_coerce_strings() -> None:
    message = Message.assistant("first", TextBlock("second"), ToolInvocation(id="c1", name="read_range"))

    assert message.role == "assistant"
    assert message.text == "first\nsecond"
    assert [invocation.id for invocation in message.invocations] == ["c1"]
    assert message.outcomes == ()


def test_message_rejects_unknown_roles() -> None:
    with pytest.raises(ValueError):
        Message(role="system", content=(TextBlock("x"),))  # type: ignore[arg-type]


def test_invocation_input_is_read_only() -> None:
    source = {"range": "A1"}
    invocation = ToolInvocation(id="c1", name="read_range", input=source)
    source["range"] = "B2"

    assert invocation.input["range"] == "A1"
    with pytest.raises(TypeError):
        invocation.input["range"] = "C3"  # type: ignore[index]
    assert invocation.input_dict() == {"range": "A1"}


def test_engine_response_text_skips_empty_blocks() -> None:
    response = EngineResponse(
        content=(TextBlock("a"), TextBlock(""), ToolInvocation(id="c", name="x"), TextBlock("b")),
        stop_reason=StopReason.TOOL_USE,
    )

    assert response.text == "a\nb"
    assert len(response.invocations) == 1


def test_outcome_block_drops_pending_flag() -> None:
    block = Outcome(invocation_id="c1", content="done", is_error=True, pending=True).to_block()

    assert (block.invocation_id, block.content, block.is_error) == ("c1", "done", True)


def test_turn_results_serialize_for_callers() -> None:
    pending = PendingInvocation(id="w1", name="write_range", input={"range": "A1", "values": [[1]]})
    confirmation = ConfirmationRequired(pending=(pending.summary(),), conversation_id="conv", text="Shall I?")

    assert confirmation.invocation_ids == ("w1",)
    assert confirmation.to_dict() == {
        "type": "confirmation_required",
        "pending": [{"range": "A1", "values": [[1]], "id": "w1", "operation": "write_range"}],
        "text": "Shall I?",
        "conversation_id": "conv",
    }
    assert MessageResult(text="ok", conversation_id="conv").to_dict() == {
        "type": "message",
        "text": "ok",
        "conversation_id": "conv",
    }

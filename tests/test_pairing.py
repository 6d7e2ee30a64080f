"""Tests for invocation/outcome pairing validation."""

from __future__ import annotations

from sheetpilot.ai.ai_types import Message, TextBlock, ToolInvocation, ToolOutcome
from sheetpilot.ai.services.pairing import MessageKind, classify_message, validate_invocation_pairs


def _call(*ids: str) -> Message:
    return Message.assistant(*(ToolInvocation(id=i, name="read_range", input={"range": "A1"}) for i in ids))


def _result(*ids: str) -> Message:
    return Message.user(*(ToolOutcome(invocation_id=i, content="ok") for i in ids), TextBlock("What next?"))


def test_classify_message_by_content() -> None:
    assert classify_message(Message.user("hi")) is MessageKind.TEXT
    assert classify_message(Message.assistant(TextBlock("let me look"), ToolInvocation(id="a", name="x"))) is MessageKind.INVOCATION
    assert classify_message(_result("a")) is MessageKind.OUTCOME
    assert classify_message(Message.user()) is MessageKind.UNKNOWN
    assert classify_message(None) is MessageKind.UNKNOWN


def test_matched_pairs_and_text_survive() -> None:
    messages = [Message.user("hi"), _call("a", "b"), _result("b", "a"), Message.assistant("done")]

    report = validate_invocation_pairs(messages)

    assert report.messages == messages
    assert report.pairs == 1
    assert report.dropped == 0


def test_leading_outcome_is_dropped() -> None:
    messages = [_result("a"), Message.assistant("after")]

    report = validate_invocation_pairs(messages)

    assert report.messages == [Message.assistant("after")]
    assert report.violations[0].kind == "orphan_outcome"
    assert report.violations[0].invocation_ids == ("a",)


def test_trailing_invocation_is_dropped() -> None:
    messages = [Message.user("hi"), _call("a")]

    report = validate_invocation_pairs(messages)

    assert report.messages == [Message.user("hi")]
    assert report.violations[0].kind == "orphan_invocation"


def test_mismatched_ids_drop_both_sides() -> None:
    messages = [_call("a", "b"), _result("a"), Message.user("next")]

    report = validate_invocation_pairs(messages)

    assert report.messages == [Message.user("next")]
    assert [violation.kind for violation in report.violations] == ["orphan_invocation", "orphan_outcome"]


def test_invocation_followed_by_text_is_dropped() -> None:
    messages = [_call("a"), Message.user("interrupt"), _result("a")]

    report = validate_invocation_pairs(messages)

    assert report.messages == [Message.user("interrupt")]
    assert report.dropped == 2


def test_empty_messages_are_dropped() -> None:
    report = validate_invocation_pairs([Message.assistant(), Message.user("hi")])

    assert report.messages == [Message.user("hi")]
    assert report.violations[0].kind == "unrecognized_content"

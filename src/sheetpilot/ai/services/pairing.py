"""Validation of tool invocation/outcome pairing in a message sequence."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Sequence

from ..ai_types import CONTENT_BLOCK_TYPES, Message, TextBlock, ToolInvocation, ToolOutcome

LOGGER = logging.getLogger(__name__)

ViolationKind = Literal["orphan_invocation", "orphan_outcome", "unrecognized_content"]


class MessageKind(Enum):
    TEXT = "text"
    INVOCATION = "invocation"
    OUTCOME = "outcome"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class ProtocolViolation:
    """Diagnostic record for a message dropped during validation. Never raised."""

    kind: ViolationKind
    index: int
    detail: str
    invocation_ids: tuple[str, ...] = ()


@dataclass(slots=True)
class PairingReport:
    messages: list[Message] = field(default_factory=list)
    violations: list[ProtocolViolation] = field(default_factory=list)
    pairs: int = 0

    @property
    def dropped(self) -> int:
        return len(self.violations)


def classify_message(message: Message | None) -> MessageKind:
    """Classify a message by the blocks it carries."""

    if message is None or not message.content:
        return MessageKind.UNKNOWN
    if any(not isinstance(block, CONTENT_BLOCK_TYPES) for block in message.content):
        return MessageKind.UNKNOWN
    if any(isinstance(block, ToolInvocation) for block in message.content):
        return MessageKind.INVOCATION
    if any(isinstance(block, ToolOutcome) for block in message.content):
        return MessageKind.OUTCOME
    if all(isinstance(block, TextBlock) for block in message.content):
        return MessageKind.TEXT
    return MessageKind.UNKNOWN  # pragma: no cover - exhaustive above


def validate_invocation_pairs(messages: Sequence[Message]) -> PairingReport:
    """Drop messages that would break invocation/outcome pairing.

    An invocation message survives only when the very next message is an
    outcome message answering exactly the same invocation ids. Lone outcome
    messages and messages with unrecognized or empty content are dropped.
    Text messages always survive. Relative order is preserved.
    """

    report = PairingReport()
    index = 0
    total = len(messages)
    while index < total:
        message = messages[index]
        kind = classify_message(message)
        if kind is MessageKind.TEXT:
            report.messages.append(message)
        elif kind is MessageKind.INVOCATION:
            invocation_ids = tuple(block.id for block in message.invocations)
            follower = messages[index + 1] if index + 1 < total else None
            follower_kind = classify_message(follower)
            reason = None
            if follower is None:
                reason = "no next message"
            elif follower_kind is not MessageKind.OUTCOME:
                reason = f"next message is {follower_kind.value}, not an outcome"
            else:
                outcome_ids = tuple(block.invocation_id for block in follower.outcomes)
                if sorted(outcome_ids) != sorted(invocation_ids):
                    reason = f"outcome ids {list(outcome_ids)} do not match {list(invocation_ids)}"
            if reason is None:
                report.messages.append(message)
                report.messages.append(follower)  # type: ignore[arg-type]
                report.pairs += 1
                index += 2
                continue
            _record(report, ProtocolViolation("orphan_invocation", index, reason, invocation_ids))
        elif kind is MessageKind.OUTCOME:
            outcome_ids = tuple(block.invocation_id for block in message.outcomes)
            _record(
                report,
                ProtocolViolation("orphan_outcome", index, "outcome without a preceding invocation", outcome_ids),
            )
        else:
            _record(report, ProtocolViolation("unrecognized_content", index, "empty or unrecognized content"))
        index += 1

    LOGGER.debug(
        "Pairing validation kept %s of %s message(s) (%s pair(s), %s dropped)",
        len(report.messages),
        total,
        report.pairs,
        report.dropped,
    )
    return report


def _record(report: PairingReport, violation: ProtocolViolation) -> None:
    report.violations.append(violation)
    LOGGER.warning(
        "Dropping message %s during pairing validation (%s): %s",
        violation.index,
        violation.kind,
        violation.detail,
    )


__all__ = [
    "MessageKind",
    "PairingReport",
    "ProtocolViolation",
    "ViolationKind",
    "classify_message",
    "validate_invocation_pairs",
]

"""Core type definitions for the agent loop.

Message and content block types live in :mod:`sheetpilot.ai.ai_types` and are
re-exported here; this module adds the dispatch and turn result types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, Mapping, Union

from ..ai_types import (
    ContentBlock,
    EngineResponse,
    Message,
    MessageRole,
    StopReason,
    TextBlock,
    ToolInvocation,
    ToolOutcome,
)

__all__ = [
    # Re-exports
    "ContentBlock",
    "EngineResponse",
    "Message",
    "MessageRole",
    "StopReason",
    "TextBlock",
    "ToolInvocation",
    "ToolOutcome",
    # Dispatch
    "PendingInvocation",
    "Outcome",
    # Turn results
    "PendingSummary",
    "MessageResult",
    "ConfirmationRequired",
    "TurnResult",
]


# -----------------------------------------------------------------------------
# Dispatch Types
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class PendingInvocation:
    """A write invocation awaiting user approval.

    Attributes:
        id: The invocation id assigned by the reasoning engine.
        name: Tool name.
        input: Tool input as requested.
    """

    id: str
    name: str
    input: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "input", MappingProxyType(dict(self.input or {})))

    @classmethod
    def from_invocation(cls, invocation: ToolInvocation) -> PendingInvocation:
        return cls(id=invocation.id, name=invocation.name, input=invocation.input)

    def to_invocation(self) -> ToolInvocation:
        return ToolInvocation(id=self.id, name=self.name, input=self.input)

    def summary(self) -> PendingSummary:
        return PendingSummary(id=self.id, operation=self.name, parameters=dict(self.input))


@dataclass(slots=True, frozen=True)
class Outcome:
    """Dispatcher result for one invocation.

    ``pending`` outcomes are never written to the log; their ``content`` only
    echoes the deferred request.
    """

    invocation_id: str
    content: str
    is_error: bool = False
    pending: bool = False

    def to_block(self) -> ToolOutcome:
        return ToolOutcome(invocation_id=self.invocation_id, content=self.content, is_error=self.is_error)


# -----------------------------------------------------------------------------
# Turn Results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class PendingSummary:
    """Caller-facing description of a pending write."""

    id: str
    operation: str
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {**dict(self.parameters), "id": self.id, "operation": self.operation}


@dataclass(slots=True, frozen=True)
class MessageResult:
    text: str
    conversation_id: str
    type: Literal["message"] = "message"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text, "conversation_id": self.conversation_id}


@dataclass(slots=True, frozen=True)
class ConfirmationRequired:
    """Turn halted until the user approves or denies ``pending``.

    ``text`` carries whatever the engine said alongside the write requests.
    """

    pending: tuple[PendingSummary, ...]
    conversation_id: str
    text: str = ""
    type: Literal["confirmation_required"] = "confirmation_required"

    @property
    def invocation_ids(self) -> tuple[str, ...]:
        return tuple(item.id for item in self.pending)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "pending": [item.to_dict() for item in self.pending],
            "text": self.text,
            "conversation_id": self.conversation_id,
        }


TurnResult = Union[MessageResult, ConfirmationRequired]

"""Shared typing contracts for the reasoning engine conversation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal, Mapping, Sequence, Union

MessageRole = Literal["user", "assistant"]


@dataclass(slots=True, frozen=True)
class TextBlock:
    """Natural-language content."""

    text: str

    def payload_text(self) -> str:
        return self.text


@dataclass(slots=True, frozen=True)
class ToolInvocation:
    """A request from the reasoning engine to call a named tool."""

    id: str
    name: str
    input: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "input", MappingProxyType(dict(self.input or {})))

    def payload_text(self) -> str:
        return json.dumps(dict(self.input), ensure_ascii=False, sort_keys=True, default=str)

    def input_dict(self) -> dict[str, Any]:
        return dict(self.input)


@dataclass(slots=True, frozen=True)
class ToolOutcome:
    """The result returned to the reasoning engine for one invocation."""

    invocation_id: str
    content: str
    is_error: bool = False

    def payload_text(self) -> str:
        return self.content


ContentBlock = Union[TextBlock, ToolInvocation, ToolOutcome]
CONTENT_BLOCK_TYPES: tuple[type, ...] = (TextBlock, ToolInvocation, ToolOutcome)


@dataclass(slots=True, frozen=True)
class Message:
    """Immutable conversation message.

    Attributes:
        role: Either ``"user"`` or ``"assistant"``.
        content: Ordered content blocks.
    """

    role: MessageRole
    content: tuple[ContentBlock, ...]

    def __post_init__(self) -> None:
        if self.role not in ("user", "assistant"):
            raise ValueError(f"Unsupported message role: {self.role!r}")
        object.__setattr__(self, "content", tuple(self.content))

    @classmethod
    def user(cls, *blocks: ContentBlock | str) -> Message:
        """Create a user message; bare strings become text blocks."""
        return cls(role="user", content=_coerce_blocks(blocks))

    @classmethod
    def assistant(cls, *blocks: ContentBlock | str) -> Message:
        """Create an assistant message; bare strings become text blocks."""
        return cls(role="assistant", content=_coerce_blocks(blocks))

    @property
    def text(self) -> str:
        """Joined text of all text blocks."""
        return "\n".join(block.text for block in self.content if isinstance(block, TextBlock))

    @property
    def invocations(self) -> tuple[ToolInvocation, ...]:
        return tuple(block for block in self.content if isinstance(block, ToolInvocation))

    @property
    def outcomes(self) -> tuple[ToolOutcome, ...]:
        return tuple(block for block in self.content if isinstance(block, ToolOutcome))


def _coerce_blocks(blocks: Sequence[ContentBlock | str]) -> tuple[ContentBlock, ...]:
    return tuple(TextBlock(block) if isinstance(block, str) else block for block in blocks)


class StopReason(str, Enum):
    """Why the reasoning engine stopped producing output."""

    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"


@dataclass(slots=True, frozen=True)
class EngineResponse:
    """Normalized reasoning engine response."""

    content: tuple[ContentBlock, ...]
    stop_reason: StopReason
    usage: Mapping[str, int] = field(default_factory=dict)

    @property
    def text_blocks(self) -> tuple[TextBlock, ...]:
        return tuple(block for block in self.content if isinstance(block, TextBlock))

    @property
    def invocations(self) -> tuple[ToolInvocation, ...]:
        return tuple(block for block in self.content if isinstance(block, ToolInvocation))

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.text_blocks if block.text)


__all__ = [
    "MessageRole",
    "TextBlock",
    "ToolInvocation",
    "ToolOutcome",
    "ContentBlock",
    "CONTENT_BLOCK_TYPES",
    "Message",
    "StopReason",
    "EngineResponse",
]

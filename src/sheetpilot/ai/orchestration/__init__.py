"""Conversation state, tool dispatch and the agent loop."""

from .conversation import ConversationNotFoundError, ConversationRegistry, ConversationState
from .orchestrator import (
    AgentLoop,
    AgentLoopConfig,
    IterationLimitExceeded,
    PendingInvocationError,
    TurnState,
)
from .tool_dispatcher import ToolDispatcher
from .types import (
    ConfirmationRequired,
    MessageResult,
    Outcome,
    PendingInvocation,
    PendingSummary,
    TurnResult,
)

__all__ = [
    "AgentLoop",
    "AgentLoopConfig",
    "ConfirmationRequired",
    "ConversationNotFoundError",
    "ConversationRegistry",
    "ConversationState",
    "IterationLimitExceeded",
    "MessageResult",
    "Outcome",
    "PendingInvocation",
    "PendingInvocationError",
    "PendingSummary",
    "ToolDispatcher",
    "TurnResult",
    "TurnState",
]

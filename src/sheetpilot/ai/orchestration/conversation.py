"""Per-conversation message log, pending writes and history compaction."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

from ...services import telemetry
from ...services.sheets import ResourceHandle
from ..ai_types import CONTENT_BLOCK_TYPES, Message, ToolInvocation
from ..services.context_policy import ContextBudgetPolicy, estimate_history_tokens, estimate_message_tokens
from ..services.pairing import validate_invocation_pairs
from ..services.summarizer import HistorySummarizer
from .types import PendingInvocation

LOGGER = logging.getLogger(__name__)

DEFAULT_CONVERSATION_ID = "default"


class ConversationNotFoundError(LookupError):
    """Raised when an operation names a conversation that does not exist."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ConversationState:
    """Ordered message log plus the writes awaiting confirmation.

    Messages are immutable once appended. ``lock`` serializes turns of this
    conversation; callers hold it around whole turns, not single appends.
    """

    def __init__(
        self,
        conversation_id: str,
        resource_handle: ResourceHandle,
        *,
        policy: ContextBudgetPolicy,
        summarizer: HistorySummarizer,
    ) -> None:
        self.id = conversation_id
        self.resource_handle = resource_handle
        self.lock = asyncio.Lock()
        self._policy = policy
        self._summarizer = summarizer
        self._messages: list[Message] = []
        self._pending: dict[str, PendingInvocation] = {}

    def __repr__(self) -> str:
        return f"ConversationState(id={self.id!r}, messages={len(self._messages)}, pending={len(self._pending)})"

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def policy(self) -> ContextBudgetPolicy:
        return self._policy

    def append(self, message: Message) -> None:
        if not isinstance(message, Message):
            raise TypeError(f"Expected Message, got {type(message).__name__}")
        for block in message.content:
            if not isinstance(block, CONTENT_BLOCK_TYPES):
                raise TypeError(f"Unsupported content block: {type(block).__name__}")
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def estimated_tokens(self) -> int:
        return estimate_history_tokens(self._messages)

    # ------------------------------------------------------------------
    # Pending writes
    # ------------------------------------------------------------------
    def add_pending(self, invocation: ToolInvocation | PendingInvocation) -> PendingInvocation:
        pending = invocation if isinstance(invocation, PendingInvocation) else PendingInvocation.from_invocation(invocation)
        self._pending[pending.id] = pending
        return pending

    def resolve_pending(self, invocation_ids: Sequence[str]) -> list[PendingInvocation]:
        """Remove and return the pending invocations named by ``invocation_ids``.

        Unknown ids are ignored; order follows ``invocation_ids``.
        """

        resolved: list[PendingInvocation] = []
        for invocation_id in invocation_ids:
            pending = self._pending.pop(invocation_id, None)
            if pending is not None:
                resolved.append(pending)
        return resolved

    def has_pending(self) -> bool:
        return bool(self._pending)

    def pending_invocations(self) -> tuple[PendingInvocation, ...]:
        return tuple(self._pending.values())

    def discard_pending(self) -> list[PendingInvocation]:
        discarded = list(self._pending.values())
        self._pending.clear()
        return discarded

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------
    async def for_api_consumption(self) -> list[Message]:
        """Return the history to send to the engine, compacted when over budget.

        The compacted view is ``[summary?, *suffix]`` where the suffix is the
        longest run of newest messages fitting the budget minus the summary
        reserve, with broken invocation/outcome pairs removed. Never raises.
        """

        messages = list(self._messages)
        decision = self._policy.evaluate(messages)
        if decision.verdict == "ok":
            return messages

        limit = self._policy.retained_budget
        kept: list[Message] = []
        used = 0
        for message in reversed(messages):
            cost = estimate_message_tokens(message)
            if used + cost > limit:
                break
            kept.append(message)
            used += cost
        kept.reverse()
        discarded = messages[: len(messages) - len(kept)]
        report = validate_invocation_pairs(kept)
        compacted = list(report.messages)

        summary = None
        if discarded:
            summary = await self._summarizer.summarize(discarded)
            if summary.message is not None:
                compacted.insert(0, summary.message)

        final_tokens = estimate_history_tokens(compacted)
        LOGGER.info(
            "Compacted conversation %s: %s -> %s message(s), %s -> %s token(s) (budget %s)",
            self.id,
            len(messages),
            len(compacted),
            decision.prompt_tokens,
            final_tokens,
            self._policy.prompt_budget,
        )
        telemetry.emit(
            telemetry.CONVERSATION_COMPACTED,
            {
                "conversation_id": self.id,
                "original_messages": len(messages),
                "compacted_messages": len(compacted),
                "original_tokens": decision.prompt_tokens,
                "compacted_tokens": final_tokens,
                "prompt_budget": self._policy.prompt_budget,
                "discarded_messages": len(discarded),
                "dropped_by_validation": report.dropped,
                "summary_placeholder": bool(summary and summary.used_placeholder),
            },
        )
        return compacted


class ConversationRegistry:
    """Process-lifetime map of conversation id to :class:`ConversationState`."""

    def __init__(
        self,
        *,
        policy: ContextBudgetPolicy,
        summarizer: HistorySummarizer,
        default_conversation_id: str = DEFAULT_CONVERSATION_ID,
    ) -> None:
        self._policy = policy
        self._summarizer = summarizer
        self._default_id = default_conversation_id
        self._conversations: dict[str, ConversationState] = {}

    @property
    def default_conversation_id(self) -> str:
        return self._default_id

    def get_or_create(self, conversation_id: str | None, resource_handle: ResourceHandle) -> ConversationState:
        """Return the conversation, creating it bound to ``resource_handle`` if new.

        An existing conversation keeps the handle it was created with.
        """

        key = conversation_id or self._default_id
        state = self._conversations.get(key)
        if state is None:
            state = ConversationState(key, resource_handle, policy=self._policy, summarizer=self._summarizer)
            self._conversations[key] = state
            LOGGER.debug("Created conversation %s for spreadsheet %s", key, resource_handle.spreadsheet_id)
        elif state.resource_handle.spreadsheet_id != resource_handle.spreadsheet_id:
            LOGGER.warning(
                "Conversation %s stays bound to spreadsheet %s; ignoring %s",
                key,
                state.resource_handle.spreadsheet_id,
                resource_handle.spreadsheet_id,
            )
        return state

    def get(self, conversation_id: str) -> ConversationState:
        state = self._conversations.get(conversation_id)
        if state is None:
            raise ConversationNotFoundError(conversation_id)
        return state

    def find(self, conversation_id: str) -> ConversationState | None:
        return self._conversations.get(conversation_id)

    def clear(self, conversation_id: str) -> bool:
        """Forget a conversation; returns whether it existed."""

        return self._conversations.pop(conversation_id, None) is not None

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)


__all__ = [
    "ConversationNotFoundError",
    "ConversationRegistry",
    "ConversationState",
    "DEFAULT_CONVERSATION_ID",
]

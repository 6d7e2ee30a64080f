"""Agent Loop: drives one user turn through the reasoning engine and tools.

Each entry point runs an explicit state machine (:class:`TurnState`) until the
engine finishes, a write needs the user's approval, or the iteration cap is
reached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Protocol, Sequence

from ...services import telemetry
from ...services.sheets import ResourceHandle
from .. import prompts
from ..ai_types import EngineResponse, Message, StopReason, TextBlock
from .conversation import ConversationRegistry, ConversationState
from .tool_dispatcher import ToolDispatcher, denied_payload
from .types import ConfirmationRequired, MessageResult, Outcome, TurnResult

__all__ = [
    "AgentLoop",
    "AgentLoopConfig",
    "IterationLimitExceeded",
    "PendingInvocationError",
    "ReasoningEngine",
    "TurnState",
]

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Errors & States
# -----------------------------------------------------------------------------


class IterationLimitExceeded(RuntimeError):
    """Raised when a turn needs more engine calls than the configured cap."""

    def __init__(self, conversation_id: str, max_iterations: int) -> None:
        super().__init__(
            f"Conversation {conversation_id} exceeded the limit of {max_iterations} reasoning engine calls"
        )
        self.conversation_id = conversation_id
        self.max_iterations = max_iterations


class PendingInvocationError(ValueError):
    """Raised when a confirmation names no invocation that is still pending."""


class TurnState(Enum):
    REQUESTING = "requesting"
    HANDLING_INVOCATIONS = "handling_invocations"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DONE = "done"


class ReasoningEngine(Protocol):
    async def complete(
        self,
        *,
        system_prompt: str,
        messages: Sequence[Message],
        tools: Iterable[Any] | None = None,
        max_tokens: int | None = None,
    ) -> EngineResponse:
        ...


@dataclass(slots=True, frozen=True)
class AgentLoopConfig:
    """Configuration for the agent loop.

    Attributes:
        max_iterations: Engine calls allowed per entry point before failing.
        max_response_tokens: Output token limit passed to the engine.
        system_prompt: Overrides the generated spreadsheet system prompt.
    """

    max_iterations: int = 10
    max_response_tokens: int | None = None
    system_prompt: str | None = None


# -----------------------------------------------------------------------------
# Agent Loop
# -----------------------------------------------------------------------------


class AgentLoop:
    """Caller-facing orchestrator for spreadsheet conversations.

    Example:
        loop = AgentLoop(engine=client, registry=registry)
        result = await loop.handle_user_message("Sum column B", resource_handle=handle)
        if isinstance(result, ConfirmationRequired):
            result = await loop.resolve_confirmation(result.conversation_id, result.invocation_ids, True)
    """

    def __init__(
        self,
        *,
        engine: ReasoningEngine,
        registry: ConversationRegistry,
        dispatcher: ToolDispatcher | None = None,
        config: AgentLoopConfig | None = None,
    ) -> None:
        self._engine = engine
        self._registry = registry
        self._dispatcher = dispatcher or ToolDispatcher()
        self._config = config or AgentLoopConfig()
        if self._config.max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._tools = self._dispatcher.tool_specs()

    @property
    def registry(self) -> ConversationRegistry:
        return self._registry

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    @property
    def config(self) -> AgentLoopConfig:
        return self._config

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_user_message(
        self,
        text: str,
        conversation_id: str | None = None,
        *,
        resource_handle: ResourceHandle,
    ) -> TurnResult:
        """Append ``text`` as a user message and run the loop.

        Raises:
            CommunicationError: the reasoning engine failed.
            IterationLimitExceeded: the engine kept requesting tools.
        """

        conversation = self._registry.get_or_create(conversation_id, resource_handle)
        async with conversation.lock:
            if conversation.has_pending():
                stale = conversation.discard_pending()
                LOGGER.warning(
                    "Discarding %s unresolved write(s) in conversation %s: %s",
                    len(stale),
                    conversation.id,
                    [pending.id for pending in stale],
                )
                telemetry.emit(
                    telemetry.PENDING_DISCARDED,
                    {"conversation_id": conversation.id, "invocation_ids": [pending.id for pending in stale]},
                )
            conversation.append(Message.user(text))
            return await self._run(conversation)

    async def resolve_confirmation(
        self,
        conversation_id: str,
        invocation_ids: Sequence[str],
        approved: bool,
    ) -> TurnResult:
        """Approve or deny pending writes, then continue the turn.

        Raises:
            ConversationNotFoundError: ``conversation_id`` is unknown.
            PendingInvocationError: none of ``invocation_ids`` is pending.
        """

        conversation = self._registry.get(conversation_id)
        async with conversation.lock:
            resolved = conversation.resolve_pending(list(invocation_ids))
            if not resolved:
                raise PendingInvocationError(
                    f"No pending tool calls found for {list(invocation_ids)} in conversation {conversation_id}"
                )
            for pending in resolved:
                if approved:
                    outcome = await self._dispatcher.execute(pending, conversation.resource_handle)
                    follow_up = prompts.CONTINUE_PROMPT
                else:
                    outcome = Outcome(invocation_id=pending.id, content=denied_payload(pending))
                    follow_up = prompts.DENIAL_PROMPT
                conversation.append(Message.assistant(pending.to_invocation()))
                conversation.append(Message.user(outcome.to_block(), TextBlock(follow_up)))
                LOGGER.info(
                    "%s %s (%s) in conversation %s",
                    "Executed" if approved else "Denied",
                    pending.name,
                    pending.id,
                    conversation.id,
                )
            telemetry.emit(
                telemetry.CONFIRMATION_RESOLVED,
                {
                    "conversation_id": conversation.id,
                    "approved": bool(approved),
                    "invocation_ids": [pending.id for pending in resolved],
                    "remaining": len(conversation.pending_invocations()),
                },
            )
            if conversation.has_pending():
                return self._confirmation_required(conversation, text="")
            return await self._run(conversation)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _run(self, conversation: ConversationState) -> TurnResult:
        state = TurnState.REQUESTING
        calls = 0
        while True:
            if calls >= self._config.max_iterations:
                LOGGER.error("Conversation %s hit the iteration cap of %s", conversation.id, calls)
                raise IterationLimitExceeded(conversation.id, self._config.max_iterations)
            calls += 1
            history = await conversation.for_api_consumption()
            LOGGER.debug("Engine call %s for conversation %s with %s message(s)", calls, conversation.id, len(history))
            response = await self._engine.complete(
                system_prompt=self._system_prompt(conversation),
                messages=history,
                tools=self._tools,
                max_tokens=self._config.max_response_tokens,
            )

            for block in response.text_blocks:
                if block.text:
                    conversation.append(Message.assistant(block))

            invocations = response.invocations
            if invocations:
                state = self._transition(conversation, state, TurnState.HANDLING_INVOCATIONS)
            for invocation in invocations:
                outcome = await self._dispatcher.dispatch(invocation, conversation.resource_handle, conversation)
                if outcome.pending:
                    continue
                conversation.append(Message.assistant(invocation))
                conversation.append(Message.user(outcome.to_block(), TextBlock(prompts.CONTINUE_PROMPT)))

            if conversation.has_pending():
                self._transition(conversation, state, TurnState.AWAITING_CONFIRMATION)
                return self._confirmation_required(conversation, text=response.text)

            if response.stop_reason is StopReason.MAX_TOKENS:
                LOGGER.info("Engine response truncated in conversation %s; asking it to continue", conversation.id)
                conversation.append(Message.user(prompts.TRUNCATION_NOTICE))
                state = self._transition(conversation, state, TurnState.REQUESTING)
                continue

            if not invocations and response.stop_reason is StopReason.END_TURN:
                self._transition(conversation, state, TurnState.DONE)
                text = response.text or prompts.FALLBACK_REPLY
                telemetry.emit(
                    telemetry.TURN_COMPLETED,
                    {"conversation_id": conversation.id, "engine_calls": calls, "messages": len(conversation.messages)},
                )
                return MessageResult(text=text, conversation_id=conversation.id)

            state = self._transition(conversation, state, TurnState.REQUESTING)

    def _transition(self, conversation: ConversationState, current: TurnState, target: TurnState) -> TurnState:
        if current is not target:
            LOGGER.debug("Conversation %s: %s -> %s", conversation.id, current.value, target.value)
        return target

    def _confirmation_required(self, conversation: ConversationState, *, text: str) -> ConfirmationRequired:
        pending = tuple(item.summary() for item in conversation.pending_invocations())
        telemetry.emit(
            telemetry.CONFIRMATION_REQUIRED,
            {"conversation_id": conversation.id, "invocation_ids": [item.id for item in pending]},
        )
        return ConfirmationRequired(pending=pending, conversation_id=conversation.id, text=text)

    def _system_prompt(self, conversation: ConversationState) -> str:
        if self._config.system_prompt is not None:
            return self._config.system_prompt
        return prompts.system_prompt(
            spreadsheet_id=conversation.resource_handle.spreadsheet_id,
            tool_names=(spec["function"]["name"] for spec in self._tools),
        )

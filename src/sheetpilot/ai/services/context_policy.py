"""Token estimation and context budget policy for conversation history."""

from __future__ import annotations

import logging
import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Iterable, Literal

from ...services.settings import ContextPolicySettings
from ..ai_types import Message, TextBlock, ToolInvocation, ToolOutcome

LOGGER = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD_TOKENS = 50
INVOCATION_OVERHEAD_TOKENS = 100
OUTCOME_OVERHEAD_TOKENS = 50
DECISION_HISTORY = 50

BudgetVerdict = Literal["ok", "needs_compaction"]


def estimate_text_tokens(text: str) -> int:
    """Approximate token count for raw text (four characters per token)."""

    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_message_tokens(message: Message) -> int:
    """Deterministic size estimate for one message.

    Fixed per-message overhead, a fixed overhead per invocation or outcome
    block, plus the payload size at four characters per token.
    """

    tokens = MESSAGE_OVERHEAD_TOKENS
    for block in message.content:
        if isinstance(block, TextBlock):
            tokens += estimate_text_tokens(block.text)
        elif isinstance(block, ToolInvocation):
            tokens += INVOCATION_OVERHEAD_TOKENS + estimate_text_tokens(block.payload_text())
        elif isinstance(block, ToolOutcome):
            tokens += OUTCOME_OVERHEAD_TOKENS + estimate_text_tokens(block.content)
    return tokens


def estimate_history_tokens(messages: Iterable[Message]) -> int:
    return sum(estimate_message_tokens(message) for message in messages)


def max_text_chars_for(token_budget: int) -> int:
    """Longest text whose single-block user message fits ``token_budget``."""

    return max(0, (token_budget - MESSAGE_OVERHEAD_TOKENS) * CHARS_PER_TOKEN)


@dataclass(slots=True)
class BudgetDecision:
    """Outcome from evaluating a history against the active budget."""

    verdict: BudgetVerdict
    prompt_tokens: int
    prompt_budget: int
    response_reserve: int
    message_count: int
    deficit: int = 0
    timestamp: float = field(default_factory=lambda: time.time())

    def as_payload(self) -> dict[str, object]:
        """Return a telemetry-friendly dictionary for this decision."""

        return {
            "verdict": self.verdict,
            "prompt_tokens": int(self.prompt_tokens),
            "prompt_budget": int(self.prompt_budget),
            "response_reserve": int(self.response_reserve),
            "message_count": int(self.message_count),
            "deficit": int(max(0, self.deficit)),
            "timestamp": self.timestamp,
        }


@dataclass(slots=True)
class ContextBudgetPolicy:
    """Budget numbers governing when and how history is compacted.

    ``prompt_budget`` is the estimated-token ceiling for the history sent to
    the engine. When compacting, ``summary_reserve`` of it is held back for the
    synthetic summary message and ``summary_budget`` bounds the discarded
    messages fed to the summarizer.
    """

    prompt_budget: int
    response_reserve: int
    summary_budget: int
    summary_reserve: int
    max_context_tokens: int | None = None
    _recent_decisions: Deque[BudgetDecision] = field(
        default_factory=lambda: deque(maxlen=DECISION_HISTORY), init=False, repr=False
    )

    @classmethod
    def from_settings(
        cls,
        settings: ContextPolicySettings | None,
        *,
        max_context_tokens: int,
        response_token_reserve: int,
    ) -> "ContextBudgetPolicy":
        policy_settings = settings or ContextPolicySettings()
        response_reserve = policy_settings.response_reserve_override
        if response_reserve is None:
            response_reserve = response_token_reserve
        response_reserve = max(0, min(int(response_reserve), max_context_tokens))
        prompt_budget = policy_settings.prompt_budget_override
        if prompt_budget is None:
            prompt_budget = max_context_tokens - response_reserve
        prompt_budget = max(1, min(int(prompt_budget), max_context_tokens))
        summary_reserve = max(0, min(int(policy_settings.summary_reserve_tokens), prompt_budget))
        # Bounded by the context window left after the response reserve.
        summary_budget = max(0, min(int(policy_settings.summary_budget_tokens), max_context_tokens - response_reserve))
        return cls(
            prompt_budget=prompt_budget,
            response_reserve=response_reserve,
            summary_budget=summary_budget,
            summary_reserve=summary_reserve,
            max_context_tokens=max_context_tokens,
        )

    @property
    def retained_budget(self) -> int:
        """Budget for the kept suffix once the summary reserve is held back."""

        return max(0, self.prompt_budget - self.summary_reserve)

    def evaluate(self, messages: Iterable[Message]) -> BudgetDecision:
        """Return whether ``messages`` fit the prompt budget as-is."""

        history = list(messages)
        prompt_tokens = estimate_history_tokens(history)
        deficit = prompt_tokens - self.prompt_budget
        decision = BudgetDecision(
            verdict="ok" if deficit <= 0 else "needs_compaction",
            prompt_tokens=prompt_tokens,
            prompt_budget=self.prompt_budget,
            response_reserve=self.response_reserve,
            message_count=len(history),
            deficit=max(0, deficit),
        )
        self._recent_decisions.append(decision)
        LOGGER.debug(
            "Budget verdict=%s prompt_tokens=%s budget=%s messages=%s",
            decision.verdict,
            prompt_tokens,
            self.prompt_budget,
            decision.message_count,
        )
        return decision

    def recent_decisions(self, limit: int | None = None) -> list[BudgetDecision]:
        """Most recent evaluations, oldest first."""

        decisions = list(self._recent_decisions)
        if limit is None:
            return decisions
        return decisions[-limit:] if limit > 0 else []


__all__ = [
    "BudgetDecision",
    "BudgetVerdict",
    "CHARS_PER_TOKEN",
    "ContextBudgetPolicy",
    "INVOCATION_OVERHEAD_TOKENS",
    "MESSAGE_OVERHEAD_TOKENS",
    "OUTCOME_OVERHEAD_TOKENS",
    "estimate_history_tokens",
    "estimate_message_tokens",
    "estimate_text_tokens",
    "max_text_chars_for",
]

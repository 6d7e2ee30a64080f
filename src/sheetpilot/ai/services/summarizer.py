"""Condenses discarded conversation history into one synthetic user message."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Protocol, Sequence

from .. import prompts
from ..ai_types import EngineResponse, Message
from .context_policy import estimate_message_tokens, max_text_chars_for
from .pairing import validate_invocation_pairs

LOGGER = logging.getLogger(__name__)

_SUMMARY_PATTERN = re.compile(
    rf"{re.escape(prompts.SUMMARY_OPEN_TAG)}(.*?){re.escape(prompts.SUMMARY_CLOSE_TAG)}",
    re.DOTALL,
)
_SUMMARY_RESPONSE_TOKENS = 4_096


class CompletionEngine(Protocol):
    async def complete(
        self,
        *,
        system_prompt: str,
        messages: Sequence[Message],
        tools: Iterable[Any] | None = None,
        max_tokens: int | None = None,
    ) -> EngineResponse:
        ...


@dataclass(slots=True)
class SummaryResult:
    """Summary produced for a discarded prefix.

    ``message`` is ``None`` only when even the placeholder cannot fit the
    reserve.
    """

    message: Message | None
    summarized_count: int
    total_count: int
    used_placeholder: bool

    @property
    def partial(self) -> bool:
        return self.summarized_count < self.total_count


def extract_summary_text(text: str) -> str:
    """Return the text inside ``<summary>`` tags, or the whole text stripped."""

    match = _SUMMARY_PATTERN.search(text or "")
    if match is not None:
        return match.group(1).strip()
    return (text or "").strip()


def clip_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    if max_chars <= 1:
        return text[:max_chars]
    return f"{text[: max_chars - 1].rstrip()}…"


class HistorySummarizer:
    """Asks the reasoning engine for a task-resumption summary of old messages."""

    def __init__(
        self,
        engine: CompletionEngine,
        *,
        summary_budget_tokens: int,
        summary_reserve_tokens: int,
        response_tokens: int = _SUMMARY_RESPONSE_TOKENS,
    ) -> None:
        self._engine = engine
        self._summary_budget = max(0, summary_budget_tokens)
        self._summary_reserve = max(0, summary_reserve_tokens)
        self._response_tokens = response_tokens

    async def summarize(self, discarded: Sequence[Message]) -> SummaryResult:
        """Summarize ``discarded``; never raises.

        Engine failures and empty replies yield the fixed placeholder text.
        """

        total = len(discarded)
        request = Message.user(prompts.summary_request_prompt())
        selected = self._select_for_budget(discarded, reserved=estimate_message_tokens(request))
        included = validate_invocation_pairs(selected).messages
        LOGGER.info(
            "Summarizing %s of %s discarded message(s) (%s after validation)",
            len(selected),
            total,
            len(included),
        )

        summary_text = ""
        if included:
            summary_text = await self._request_summary([*included, request])
        if not summary_text:
            return self._build_result(prompts.summary_placeholder(total), len(included), total, placeholder=True)

        if len(included) < total:
            summary_text = f"{prompts.partial_summary_note(len(included), total)}\n\n{summary_text}"
        return self._build_result(summary_text, len(included), total, placeholder=False)

    def _select_for_budget(self, discarded: Sequence[Message], *, reserved: int) -> list[Message]:
        available = self._summary_budget - reserved
        selected: list[Message] = []
        used = 0
        for message in discarded:
            cost = estimate_message_tokens(message)
            if used + cost > available:
                break
            selected.append(message)
            used += cost
        return selected

    async def _request_summary(self, messages: Sequence[Message]) -> str:
        try:
            response = await self._engine.complete(
                system_prompt="",
                messages=messages,
                tools=None,
                max_tokens=self._response_tokens,
            )
        except Exception as exc:  # compaction must never fail the caller
            LOGGER.warning("Summary generation failed; using placeholder: %s", exc)
            return ""
        text = extract_summary_text(response.text)
        if not text:
            LOGGER.warning("Summary response contained no text; using placeholder")
        return text

    def _build_result(self, text: str, summarized: int, total: int, *, placeholder: bool) -> SummaryResult:
        clipped = clip_text(text, max_text_chars_for(self._summary_reserve))
        message: Message | None = Message.user(clipped)
        if not clipped or estimate_message_tokens(message) > self._summary_reserve:
            LOGGER.warning("Summary reserve of %s tokens is too small for a summary message", self._summary_reserve)
            message = None
        return SummaryResult(
            message=message,
            summarized_count=summarized,
            total_count=total,
            used_placeholder=placeholder,
        )


__all__ = [
    "CompletionEngine",
    "HistorySummarizer",
    "SummaryResult",
    "clip_text",
    "extract_summary_text",
]

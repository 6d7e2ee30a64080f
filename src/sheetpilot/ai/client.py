"""Async reasoning engine client built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Sequence, cast

import httpx
from openai import (
    APIConnectionError,
    APIError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from openai.types.chat import ChatCompletionMessageParam, ChatCompletionToolParam
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .ai_types import (
    ContentBlock,
    EngineResponse,
    Message,
    StopReason,
    TextBlock,
    ToolInvocation,
    ToolOutcome,
)

LOGGER = logging.getLogger(__name__)

_FINISH_REASONS: Mapping[str, StopReason] = {
    "stop": StopReason.END_TURN,
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "length": StopReason.MAX_TOKENS,
}
_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    APIConnectionError,
    RateLimitError,
    InternalServerError,
    httpx.TimeoutException,
)


class CommunicationError(RuntimeError):
    """Raised when the reasoning engine is unreachable or rejects a request."""


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the reasoning client."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    temperature: float | None = 0.2
    max_output_tokens: int | None = 4_096
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


class ReasoningClient:
    """Async client returning normalized content blocks with retry semantics."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete(
        self,
        *,
        system_prompt: str,
        messages: Sequence[Message],
        tools: Iterable[ChatCompletionToolParam] | None = None,
        max_tokens: int | None = None,
    ) -> EngineResponse:
        """Run one completion over ``messages`` and normalize the reply.

        Raises:
            CommunicationError: transport, auth or protocol failure after retries.
        """

        payload = self._build_payload(
            messages=to_chat_messages(system_prompt, messages),
            tools=tools,
            max_tokens=max_tokens,
        )
        LOGGER.debug(
            "Requesting completion via %s with %s message(s) and %s tool(s)",
            self._settings.model,
            len(payload["messages"]),
            len(payload.get("tools", ())),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        try:
            response = await self._create_with_retries(payload)
        except (APIError, httpx.HTTPError) as exc:
            LOGGER.error("Reasoning engine request failed: %s", exc)
            raise CommunicationError(f"Failed to communicate with AI: {exc}") from exc
        return self._normalize_response(response)

    async def _create_with_retries(self, payload: Mapping[str, Any]) -> Any:
        async for attempt in self._retrying():
            with attempt:
                return await self._client.chat.completions.create(**payload)
        raise CommunicationError("Reasoning engine returned no response")  # pragma: no cover

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            max_retries=0,
            default_headers=headers,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
        )

    def _build_payload(
        self,
        *,
        messages: Sequence[ChatCompletionMessageParam],
        tools: Iterable[ChatCompletionToolParam] | None,
        max_tokens: int | None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": list(messages),
        }
        tool_list = list(tools or ())
        if tool_list:
            payload["tools"] = tool_list
        if self._settings.temperature is not None:
            payload["temperature"] = self._settings.temperature
        limit = max_tokens if max_tokens is not None else self._settings.max_output_tokens
        if limit is not None:
            payload["max_tokens"] = limit
        return payload

    def _normalize_response(self, response: Any) -> EngineResponse:
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise CommunicationError("Reasoning engine returned no choices")
        choice = choices[0]
        message = getattr(choice, "message", None)
        blocks: List[ContentBlock] = []
        text = getattr(message, "content", None)
        if text:
            blocks.append(TextBlock(str(text)))
        for call in getattr(message, "tool_calls", None) or []:
            function = getattr(call, "function", None)
            name = getattr(function, "name", None) or ""
            blocks.append(
                ToolInvocation(
                    id=str(getattr(call, "id", "") or ""),
                    name=name,
                    input=_parse_arguments(getattr(function, "arguments", None), name),
                )
            )
        finish_reason = str(getattr(choice, "finish_reason", "") or "")
        stop_reason = _FINISH_REASONS.get(finish_reason)
        if stop_reason is None:
            stop_reason = StopReason.TOOL_USE if any(isinstance(b, ToolInvocation) for b in blocks) else StopReason.END_TURN
        return EngineResponse(content=tuple(blocks), stop_reason=stop_reason, usage=_usage_payload(response))

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def to_chat_messages(system_prompt: str, messages: Sequence[Message]) -> List[ChatCompletionMessageParam]:
    """Translate conversation messages into chat-completions wire messages.

    Assistant invocations become ``tool_calls``; user outcomes become ``tool``
    messages followed by any user text from the same message.
    """

    wire: List[Dict[str, Any]] = []
    if system_prompt:
        wire.append({"role": "system", "content": system_prompt})
    for message in messages:
        if message.role == "assistant":
            invocations = message.invocations
            text = message.text
            if not invocations and not text:
                continue
            entry: Dict[str, Any] = {"role": "assistant", "content": text or None}
            if invocations:
                entry["tool_calls"] = [
                    {
                        "id": invocation.id,
                        "type": "function",
                        "function": {"name": invocation.name, "arguments": invocation.payload_text()},
                    }
                    for invocation in invocations
                ]
            wire.append(entry)
            continue
        for block in message.content:
            if isinstance(block, ToolOutcome):
                content = f"Error: {block.content}" if block.is_error else block.content
                wire.append({"role": "tool", "tool_call_id": block.invocation_id, "content": content})
        text = message.text
        if text:
            wire.append({"role": "user", "content": text})
    return cast(List[ChatCompletionMessageParam], wire)


def _parse_arguments(raw: Any, tool_name: str) -> dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        LOGGER.warning("Tool %s arguments are not valid JSON: %r", tool_name, raw)
        return {}
    if not isinstance(parsed, Mapping):
        LOGGER.warning("Tool %s arguments are not a JSON object: %r", tool_name, raw)
        return {}
    return dict(parsed)


def _usage_payload(response: Any) -> dict[str, int]:
    usage = getattr(response, "usage", None)
    if usage is None:
        return {}
    payload: dict[str, int] = {}
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = getattr(usage, key, None)
        if isinstance(value, int):
            payload[key] = value
    return payload


__all__ = [
    "ClientSettings",
    "CommunicationError",
    "ReasoningClient",
    "to_chat_messages",
]

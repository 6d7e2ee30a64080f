"""Shared test helpers and stub classes.

Fakes for the reasoning engine and the spreadsheet client plus small
factories for responses and agent loops. Import from here instead of
duplicating these classes in individual test files.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Iterable, Mapping, Sequence

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from sheetpilot.ai.ai_types import EngineResponse, Message, StopReason, TextBlock, ToolInvocation
from sheetpilot.ai.orchestration.conversation import ConversationRegistry
from sheetpilot.ai.orchestration.orchestrator import AgentLoop, AgentLoopConfig
from sheetpilot.ai.services.context_policy import ContextBudgetPolicy
from sheetpilot.ai.services.summarizer import HistorySummarizer
from sheetpilot.services.sheets import ResourceHandle


def text_response(text: str, stop_reason: StopReason = StopReason.END_TURN) -> EngineResponse:
    return EngineResponse(content=(TextBlock(text),), stop_reason=stop_reason)


def tool_response(*invocations: ToolInvocation, text: str | None = None) -> EngineResponse:
    blocks: list[Any] = [TextBlock(text)] if text else []
    blocks.extend(invocations)
    return EngineResponse(content=tuple(blocks), stop_reason=StopReason.TOOL_USE)


class FakeReasoningEngine:
    """Scripted reasoning engine.

    ``script`` items are returned in order; an exception instance is raised
    instead. A callable ``responder`` takes precedence and receives the
    messages of each call.
    """

    def __init__(
        self,
        script: Iterable[EngineResponse | BaseException] = (),
        *,
        responder: Callable[[Sequence[Message]], EngineResponse] | None = None,
    ) -> None:
        self._script = list(script)
        self._responder = responder
        self.calls: list[dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def last_messages(self) -> list[Message]:
        return list(self.calls[-1]["messages"])

    async def complete(
        self,
        *,
        system_prompt: str,
        messages: Sequence[Message],
        tools: Iterable[Any] | None = None,
        max_tokens: int | None = None,
    ) -> EngineResponse:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "messages": list(messages),
                "tools": list(tools or ()),
                "max_tokens": max_tokens,
            }
        )
        if self._responder is not None:
            return self._responder(messages)
        if not self._script:
            raise AssertionError("FakeReasoningEngine ran out of scripted responses")
        item = self._script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeResourceClient:
    """In-memory spreadsheet client recording every call."""

    def __init__(
        self,
        *,
        values: Sequence[Sequence[Any]] | None = None,
        range_label: str = "Sheet1!A1:B2",
        errors: Mapping[str, BaseException] | None = None,
    ) -> None:
        self.values = [list(row) for row in (values if values is not None else [[1, 2]])]
        self.range_label = range_label
        self.errors = dict(errors or {})
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def calls_for(self, name: str) -> list[tuple[Any, ...]]:
        return [args for called, args in self.calls if called == name]

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        error = self.errors.get(name)
        if error is not None:
            raise error

    async def read_range(self, spreadsheet_id: str, range: str) -> dict[str, Any]:
        self._record("read_range", spreadsheet_id, range)
        return {"values": self.values, "range": self.range_label}

    async def write_range(self, spreadsheet_id: str, range: str, values: Sequence[Sequence[Any]], value_input_option: str = "USER_ENTERED") -> dict[str, Any]:
        self._record("write_range", spreadsheet_id, range, values, value_input_option)
        cells = sum(len(row) for row in values)
        return {"updatedCells": cells, "updatedRows": len(values), "updatedColumns": 1, "updatedRange": range}

    async def append_row(self, spreadsheet_id: str, range: str, values: Sequence[Any], value_input_option: str = "USER_ENTERED") -> dict[str, Any]:
        self._record("append_row", spreadsheet_id, range, values, value_input_option)
        return {"updatedCells": len(values), "updatedRows": 1, "updatedRange": range}

    async def clear_range(self, spreadsheet_id: str, range: str) -> dict[str, Any]:
        self._record("clear_range", spreadsheet_id, range)
        return {"clearedRange": range}

    async def get_metadata(self, spreadsheet_id: str) -> dict[str, Any]:
        self._record("get_metadata", spreadsheet_id)
        return {
            "title": "Budget",
            "sheets": [{"title": "Sheet1", "sheetId": 0, "gridProperties": {"rowCount": 100, "columnCount": 26}}],
        }

    async def create_chart(self, spreadsheet_id: str, options: Mapping[str, Any]) -> dict[str, Any]:
        self._record("create_chart", spreadsheet_id, dict(options))
        return {"chartId": 42, "success": True}

    async def test_connection(self, spreadsheet_id: str) -> dict[str, Any]:
        self._record("test_connection", spreadsheet_id)
        return {"success": True, "title": "Budget", "spreadsheetId": spreadsheet_id}


def make_handle(client: FakeResourceClient | None = None, spreadsheet_id: str = "sheet-123") -> ResourceHandle:
    return ResourceHandle(spreadsheet_id=spreadsheet_id, client=client or FakeResourceClient())


def make_policy(
    *,
    prompt_budget: int = 100_000,
    response_reserve: int = 4_096,
    summary_budget: int = 50_000,
    summary_reserve: int = 2_000,
) -> ContextBudgetPolicy:
    return ContextBudgetPolicy(
        prompt_budget=prompt_budget,
        response_reserve=response_reserve,
        summary_budget=summary_budget,
        summary_reserve=summary_reserve,
    )


def make_registry(engine: FakeReasoningEngine, policy: ContextBudgetPolicy | None = None) -> ConversationRegistry:
    active_policy = policy or make_policy()
    summarizer = HistorySummarizer(
        engine,
        summary_budget_tokens=active_policy.summary_budget,
        summary_reserve_tokens=active_policy.summary_reserve,
    )
    return ConversationRegistry(policy=active_policy, summarizer=summarizer)


def make_loop(
    engine: FakeReasoningEngine,
    *,
    policy: ContextBudgetPolicy | None = None,
    max_iterations: int = 10,
) -> AgentLoop:
    return AgentLoop(
        engine=engine,
        registry=make_registry(engine, policy),
        config=AgentLoopConfig(max_iterations=max_iterations),
    )


@functools.lru_cache(maxsize=1)
def rsa_key_pair() -> tuple[str, str]:
    """Return a (private, public) PEM pair, generated once per test session."""

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    return private_pem, public_pem


def service_account_info(*, token_uri: str = "https://oauth.test/token", **extra: Any) -> dict[str, Any]:
    """Service account key file contents signed with :func:`rsa_key_pair`."""

    info: dict[str, Any] = {
        "type": "service_account",
        "client_email": "agent@sheetpilot-test.iam.gserviceaccount.com",
        "private_key": rsa_key_pair()[0],
        "private_key_id": "key-1",
        "token_uri": token_uri,
    }
    info.update(extra)
    return info

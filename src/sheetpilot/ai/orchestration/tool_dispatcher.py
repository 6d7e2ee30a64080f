"""Tool Dispatcher for the spreadsheet agent.

Routes tool invocations to the resource client. Read tools run immediately;
write tools are parked as pending invocations until the user confirms them.
Resource failures are turned into error outcomes and never propagate.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Mapping

from ...services import telemetry
from ...services.sheets import DEFAULT_VALUE_INPUT_OPTION, ResourceHandle
from ..ai_types import ToolInvocation
from ..tools.catalog import SPREADSHEET_TOOLS, WRITE_TOOLS, ToolClass, catalog_by_name, classify_tool
from ..tools.errors import ErrorCode, MissingParameterError, ToolError, UnknownToolError
from ..tools.formatting import format_tool_result
from .conversation import ConversationState
from .types import Outcome, PendingInvocation

LOGGER = logging.getLogger(__name__)

ToolHandler = Callable[[ResourceHandle, Mapping[str, Any]], Awaitable[Any]]


# -----------------------------------------------------------------------------
# Handlers
# -----------------------------------------------------------------------------


def _require(arguments: Mapping[str, Any], name: str) -> Any:
    value = arguments.get(name)
    if value is None or value == "":
        raise MissingParameterError(message=f"Missing required parameter: {name}", parameter=name)
    return value


async def _read_range(handle: ResourceHandle, arguments: Mapping[str, Any]) -> Any:
    return await handle.client.read_range(handle.spreadsheet_id, _require(arguments, "range"))


async def _write_range(handle: ResourceHandle, arguments: Mapping[str, Any]) -> Any:
    return await handle.client.write_range(
        handle.spreadsheet_id,
        _require(arguments, "range"),
        _require(arguments, "values"),
        arguments.get("valueInputOption") or DEFAULT_VALUE_INPUT_OPTION,
    )


async def _append_row(handle: ResourceHandle, arguments: Mapping[str, Any]) -> Any:
    return await handle.client.append_row(
        handle.spreadsheet_id,
        _require(arguments, "range"),
        _require(arguments, "values"),
        arguments.get("valueInputOption") or DEFAULT_VALUE_INPUT_OPTION,
    )


async def _clear_range(handle: ResourceHandle, arguments: Mapping[str, Any]) -> Any:
    return await handle.client.clear_range(handle.spreadsheet_id, _require(arguments, "range"))


async def _get_metadata(handle: ResourceHandle, arguments: Mapping[str, Any]) -> Any:
    return await handle.client.get_metadata(handle.spreadsheet_id)


async def _create_chart(handle: ResourceHandle, arguments: Mapping[str, Any]) -> Any:
    _require(arguments, "dataSourceRange")
    _require(arguments, "chartType")
    return await handle.client.create_chart(handle.spreadsheet_id, dict(arguments))


DEFAULT_HANDLERS: Mapping[str, ToolHandler] = {
    "read_range": _read_range,
    "write_range": _write_range,
    "append_row": _append_row,
    "clear_range": _clear_range,
    "get_spreadsheet_metadata": _get_metadata,
    "create_chart": _create_chart,
}


# -----------------------------------------------------------------------------
# Tool Dispatcher
# -----------------------------------------------------------------------------


class ToolDispatcher:
    """Classifies and executes tool invocations against a resource handle.

    Example:
        dispatcher = ToolDispatcher()
        outcome = await dispatcher.dispatch(invocation, handle, conversation)
    """

    def __init__(
        self,
        *,
        write_tools: Iterable[str] = WRITE_TOOLS,
        handlers: Mapping[str, ToolHandler] | None = None,
    ) -> None:
        self._write_tools = frozenset(write_tools)
        self._handlers = dict(handlers or DEFAULT_HANDLERS)
        self._catalog = catalog_by_name(SPREADSHEET_TOOLS)

    @property
    def write_tools(self) -> frozenset[str]:
        return self._write_tools

    def classify(self, name: str) -> ToolClass:
        return classify_tool(name, write_tools=self._write_tools)

    def tool_specs(self) -> list[Any]:
        """OpenAI tool specs for every catalog tool this dispatcher can run."""

        return [entry.as_openai_tool() for name, entry in self._catalog.items() if name in self._handlers]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        invocation: ToolInvocation,
        handle: ResourceHandle,
        conversation: ConversationState,
    ) -> Outcome:
        """Run a read invocation now, or park a write invocation as pending."""

        if invocation.name not in self._handlers:
            return self._error_outcome(
                invocation,
                UnknownToolError(message=f"Unknown tool: {invocation.name}", tool_name=invocation.name),
            )
        if self.classify(invocation.name) is ToolClass.WRITE:
            pending = conversation.add_pending(invocation)
            LOGGER.info("Deferred %s (%s) pending confirmation", invocation.name, invocation.id)
            self._emit(invocation, conversation_id=conversation.id, status="pending")
            return Outcome(
                invocation_id=invocation.id,
                content=_pending_payload(pending),
                pending=True,
            )
        return await self._run(invocation, handle, conversation_id=conversation.id)

    async def execute(self, invocation: ToolInvocation | PendingInvocation, handle: ResourceHandle) -> Outcome:
        """Run a confirmed invocation, calling the resource client exactly once."""

        if isinstance(invocation, PendingInvocation):
            invocation = invocation.to_invocation()
        if invocation.name not in self._handlers:
            return self._error_outcome(
                invocation,
                UnknownToolError(message=f"Unknown tool: {invocation.name}", tool_name=invocation.name),
            )
        return await self._run(invocation, handle, conversation_id=None)

    async def _run(self, invocation: ToolInvocation, handle: ResourceHandle, *, conversation_id: str | None) -> Outcome:
        handler = self._handlers[invocation.name]
        started = time.perf_counter()
        try:
            result = await handler(handle, invocation.input)
        except ToolError as exc:
            LOGGER.warning("Tool %s (%s) failed: %s", invocation.name, invocation.id, exc)
            outcome = self._error_outcome(invocation, exc)
        except Exception as exc:
            LOGGER.exception("Tool %s (%s) failed unexpectedly", invocation.name, invocation.id)
            outcome = self._error_outcome(
                invocation,
                ToolError(error_code=ErrorCode.INTERNAL_ERROR, message=str(exc) or "Tool execution failed"),
            )
        else:
            outcome = Outcome(invocation_id=invocation.id, content=format_tool_result(invocation.name, result))
        elapsed_ms = (time.perf_counter() - started) * 1000
        LOGGER.debug("Tool %s (%s) finished in %.1fms error=%s", invocation.name, invocation.id, elapsed_ms, outcome.is_error)
        self._emit(
            invocation,
            conversation_id=conversation_id,
            status="error" if outcome.is_error else "ok",
            elapsed_ms=round(elapsed_ms, 2),
        )
        return outcome

    def _error_outcome(self, invocation: ToolInvocation, error: ToolError) -> Outcome:
        return Outcome(
            invocation_id=invocation.id,
            content=json.dumps(error.to_dict(), ensure_ascii=False, default=str),
            is_error=True,
        )

    def _emit(self, invocation: ToolInvocation, **payload: Any) -> None:
        telemetry.emit(
            telemetry.TOOL_DISPATCHED,
            {"tool": invocation.name, "invocation_id": invocation.id, **payload},
        )


def _pending_payload(pending: PendingInvocation) -> str:
    return json.dumps(
        {**dict(pending.input), "pending": True, "operation": pending.name},
        ensure_ascii=False,
        default=str,
    )


def denied_payload(pending: PendingInvocation) -> str:
    """Outcome content recorded when the user declines a pending write."""

    return json.dumps(
        {
            "denied": True,
            "operation": pending.name,
            "range": pending.input.get("range"),
            "values": pending.input.get("values"),
        },
        ensure_ascii=False,
        default=str,
    )


__all__ = [
    "DEFAULT_HANDLERS",
    "ToolDispatcher",
    "ToolHandler",
    "denied_payload",
]

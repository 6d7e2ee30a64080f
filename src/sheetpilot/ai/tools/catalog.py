"""Static catalog of spreadsheet tools advertised to the reasoning engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, cast

from openai.types.chat import ChatCompletionToolParam


class ToolClass(Enum):
    """Dispatch classes for catalog tools."""

    READ = "read"
    WRITE = "write"


# Tools that mutate the spreadsheet and must be confirmed by the user.
WRITE_TOOLS: frozenset[str] = frozenset({"write_range", "append_row", "clear_range", "create_chart"})

_CELL_VALUE_SCHEMA: dict[str, Any] = {"type": ["string", "number", "boolean"]}
_VALUE_INPUT_OPTION_SCHEMA: dict[str, Any] = {
    "type": "string",
    "enum": ["RAW", "USER_ENTERED"],
    "description": (
        "How to interpret the input values. RAW: values are stored as-is. "
        "USER_ENTERED: values are parsed as if typed into the sheet."
    ),
    "default": "USER_ENTERED",
}


@dataclass(slots=True, frozen=True)
class ToolCatalogEntry:
    """Tool metadata advertised to the reasoning engine.

    Attributes:
        name: Tool identifier used in invocations.
        description: Human-readable description shown to the model.
        input_schema: JSON Schema for the invocation input.
    """

    name: str
    description: str
    input_schema: Mapping[str, Any]

    def as_openai_tool(self) -> ChatCompletionToolParam:
        """Return an OpenAI-compatible function tool spec."""

        return cast(
            ChatCompletionToolParam,
            {
                "type": "function",
                "function": {
                    "name": self.name,
                    "description": self.description,
                    "parameters": dict(self.input_schema),
                },
            },
        )


SPREADSHEET_TOOLS: tuple[ToolCatalogEntry, ...] = (
    ToolCatalogEntry(
        name="read_range",
        description=(
            'Read values from a specific range in the Google Sheet. Use A1 notation '
            '(e.g., "A1:C10" or "Sheet1!A1:C10").'
        ),
        input_schema={
            "type": "object",
            "properties": {
                "range": {
                    "type": "string",
                    "description": 'The range to read in A1 notation (e.g., "A1:C10" or "Sheet1!A1:C10")',
                },
            },
            "required": ["range"],
        },
    ),
    ToolCatalogEntry(
        name="write_range",
        description=(
            "Write values to a specific range in the Google Sheet. "
            "This operation requires user confirmation before execution."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "range": {
                    "type": "string",
                    "description": 'The range to write to in A1 notation (e.g., "A1:C3" or "Sheet1!A1:C3")',
                },
                "values": {
                    "type": "array",
                    "items": {"type": "array", "items": _CELL_VALUE_SCHEMA},
                    "description": "A 2D array of values to write. Each inner array represents a row.",
                },
                "valueInputOption": _VALUE_INPUT_OPTION_SCHEMA,
            },
            "required": ["range", "values"],
        },
    ),
    ToolCatalogEntry(
        name="append_row",
        description=(
            "Append a new row to the end of a range in the Google Sheet. "
            "This operation requires user confirmation before execution."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "range": {
                    "type": "string",
                    "description": 'The range to append to (e.g., "A:C" or "Sheet1!A:C")',
                },
                "values": {
                    "type": "array",
                    "items": _CELL_VALUE_SCHEMA,
                    "description": "An array of values for the new row",
                },
                "valueInputOption": _VALUE_INPUT_OPTION_SCHEMA,
            },
            "required": ["range", "values"],
        },
    ),
    ToolCatalogEntry(
        name="clear_range",
        description=(
            "Clear all values from a specific range in the Google Sheet. "
            "This operation requires user confirmation before execution."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "range": {"type": "string", "description": "The range to clear in A1 notation"},
            },
            "required": ["range"],
        },
    ),
    ToolCatalogEntry(
        name="get_spreadsheet_metadata",
        description="Get metadata about the spreadsheet including sheet names and properties.",
        input_schema={"type": "object", "properties": {}, "required": []},
    ),
    ToolCatalogEntry(
        name="create_chart",
        description=(
            "Create a chart from a data range. The first column of the range is used as the "
            "domain (x-axis) and every following column becomes a series; the first row is "
            "treated as headers. This operation requires user confirmation before execution."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "dataSourceRange": {
                    "type": "string",
                    "description": 'The data range in A1 notation (e.g., "Sheet1!A1:C10")',
                },
                "chartType": {
                    "type": "string",
                    "enum": ["LINE", "COLUMN", "BAR", "PIE", "AREA", "SCATTER"],
                    "description": "The kind of chart to create",
                },
                "title": {"type": "string", "description": "Optional chart title"},
                "sheetId": {
                    "type": "integer",
                    "description": "Optional numeric sheet id; resolved from the range when omitted",
                },
                "position": {
                    "type": "object",
                    "properties": {
                        "rowIndex": {"type": "integer"},
                        "columnIndex": {"type": "integer"},
                    },
                    "description": "Zero-based anchor cell for the chart",
                },
                "legendPosition": {
                    "type": "string",
                    "enum": ["BOTTOM_LEGEND", "LEFT_LEGEND", "RIGHT_LEGEND", "TOP_LEGEND", "NO_LEGEND"],
                    "default": "BOTTOM_LEGEND",
                },
            },
            "required": ["dataSourceRange", "chartType"],
        },
    ),
)


def classify_tool(name: str, *, write_tools: Iterable[str] = WRITE_TOOLS) -> ToolClass:
    """Return the dispatch class for ``name`` by write-set membership."""

    return ToolClass.WRITE if name in frozenset(write_tools) else ToolClass.READ


def catalog_by_name(entries: Iterable[ToolCatalogEntry] = SPREADSHEET_TOOLS) -> dict[str, ToolCatalogEntry]:
    return {entry.name: entry for entry in entries}


__all__ = [
    "ToolClass",
    "ToolCatalogEntry",
    "WRITE_TOOLS",
    "SPREADSHEET_TOOLS",
    "classify_tool",
    "catalog_by_name",
]

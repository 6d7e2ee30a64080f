"""Spreadsheet tool catalog, formatting and error types."""

from .catalog import (
    SPREADSHEET_TOOLS,
    WRITE_TOOLS,
    ToolCatalogEntry,
    ToolClass,
    catalog_by_name,
    classify_tool,
)
from .errors import (
    ErrorCode,
    InvalidRangeError,
    MissingParameterError,
    NotConfiguredError,
    ResourceError,
    SheetNotFoundError,
    ToolError,
    UnknownToolError,
)
from .formatting import format_tool_result, format_values

__all__ = [
    "SPREADSHEET_TOOLS",
    "WRITE_TOOLS",
    "ToolCatalogEntry",
    "ToolClass",
    "catalog_by_name",
    "classify_tool",
    "ErrorCode",
    "InvalidRangeError",
    "MissingParameterError",
    "NotConfiguredError",
    "ResourceError",
    "SheetNotFoundError",
    "ToolError",
    "UnknownToolError",
    "format_tool_result",
    "format_values",
]

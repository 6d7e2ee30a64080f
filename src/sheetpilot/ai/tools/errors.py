"""Standardized error types for spreadsheet tools.

This module provides a hierarchy of error classes with consistent
JSON serialization for tool outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes used in tool outcomes."""

    # Resource errors
    RESOURCE_ERROR = "resource_error"
    NOT_CONFIGURED = "not_configured"
    INVALID_RANGE = "invalid_range"
    SHEET_NOT_FOUND = "sheet_not_found"

    # Dispatch errors
    UNKNOWN_TOOL = "unknown_tool"
    INVALID_PARAMETER = "invalid_parameter"
    MISSING_PARAMETER = "missing_parameter"

    # General errors
    INTERNAL_ERROR = "internal_error"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class ToolError(Exception):
    """Base exception class for all tool errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for JSON tool outcomes."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Resource Errors
# -----------------------------------------------------------------------------

@dataclass
class ResourceError(ToolError):
    """Raised by the spreadsheet client when a remote operation fails.

    Covers bad range syntax, auth failures, missing spreadsheets and
    transport problems alike; the dispatcher turns it into an error outcome.
    """

    error_code: str = field(default=ErrorCode.RESOURCE_ERROR)
    message: str = field(default="Spreadsheet operation failed")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    status_code: int | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


@dataclass
class NotConfiguredError(ResourceError):
    """Raised when the spreadsheet client has no credentials."""

    error_code: str = field(default=ErrorCode.NOT_CONFIGURED)
    message: str = field(default="Google Sheets service not configured")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Provide a Sheets access token or service account key in the settings")


@dataclass
class InvalidRangeError(ResourceError):
    """Raised when an A1 range cannot be interpreted."""

    error_code: str = field(default=ErrorCode.INVALID_RANGE)
    message: str = field(default="Invalid range")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Use A1 notation such as 'Sheet1!A1:C10'")

    range: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.range is not None:
            result["range"] = self.range
        return result


@dataclass
class SheetNotFoundError(ResourceError):
    """Raised when a named sheet does not exist in the spreadsheet."""

    error_code: str = field(default=ErrorCode.SHEET_NOT_FOUND)
    message: str = field(default="Sheet not found")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Call get_spreadsheet_metadata to list the available sheets")

    sheet_name: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.sheet_name is not None:
            result["sheet_name"] = self.sheet_name
        return result


# -----------------------------------------------------------------------------
# Dispatch Errors
# -----------------------------------------------------------------------------

@dataclass
class UnknownToolError(ToolError):
    """Raised when the model names a tool that is not in the catalog."""

    error_code: str = field(default=ErrorCode.UNKNOWN_TOOL)
    message: str = field(default="Unknown tool")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Use one of the advertised tools")

    tool_name: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.tool_name is not None:
            result["tool_name"] = self.tool_name
        return result


@dataclass
class MissingParameterError(ToolError):
    """Raised when a required tool parameter is absent."""

    error_code: str = field(default=ErrorCode.MISSING_PARAMETER)
    message: str = field(default="Required parameter is missing")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Provide all required parameters")

    parameter: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.parameter is not None:
            result["parameter"] = self.parameter
        return result


__all__ = [
    "ErrorCode",
    "ToolError",
    "ResourceError",
    "NotConfiguredError",
    "InvalidRangeError",
    "SheetNotFoundError",
    "UnknownToolError",
    "MissingParameterError",
]

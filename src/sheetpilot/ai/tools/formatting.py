"""Compact textual renderings of spreadsheet results for model consumption."""

from __future__ import annotations

import json
from typing import Any, Callable, Mapping, Sequence

_MAX_ROWS = 200
_MAX_CELL_CHARS = 80
_CELL_SEPARATOR = " | "


def _format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    text = " ".join(str(value).split())
    if len(text) > _MAX_CELL_CHARS:
        text = f"{text[: _MAX_CELL_CHARS - 1].rstrip()}…"
    return text


def format_values(values: Sequence[Sequence[Any]] | None, *, max_rows: int = _MAX_ROWS) -> list[str]:
    """Render a 2D value grid as numbered, pipe-separated rows."""

    rows = list(values or [])
    lines = [
        f"row {index}: {_CELL_SEPARATOR.join(_format_cell(cell) for cell in row)}"
        for index, row in enumerate(rows[:max_rows], start=1)
    ]
    if len(rows) > max_rows:
        lines.append(f"... {len(rows) - max_rows} more row(s) omitted")
    return lines


def _format_read_range(result: Mapping[str, Any]) -> str:
    values = result.get("values") or []
    label = result.get("range") or "range"
    if not values:
        return f"Range {label} is empty."
    width = max((len(row) for row in values), default=0)
    header = f"Range {label} ({len(values)} row(s) x {width} column(s)):"
    return "\n".join([header, *format_values(values)])


def _format_update(result: Mapping[str, Any]) -> str:
    cells = result.get("updatedCells")
    rows = result.get("updatedRows")
    target = result.get("updatedRange") or "the sheet"
    parts = [f"Updated {target}"]
    if cells is not None:
        parts.append(f"{cells} cell(s)")
    if rows is not None:
        parts.append(f"{rows} row(s)")
    return ", ".join(parts) + "."


def _format_clear(result: Mapping[str, Any]) -> str:
    return f"Cleared {result.get('clearedRange') or 'the requested range'}."


def _format_metadata(result: Mapping[str, Any]) -> str:
    sheets = result.get("sheets") or []
    title = result.get("title") or "(untitled)"
    lines = [f"Spreadsheet '{title}' with {len(sheets)} sheet(s):"]
    for sheet in sheets:
        grid = sheet.get("gridProperties") or {}
        size = ""
        if grid:
            size = f", {grid.get('rowCount', '?')} rows x {grid.get('columnCount', '?')} columns"
        lines.append(f"- {sheet.get('title')} (sheetId {sheet.get('sheetId')}{size})")
    return "\n".join(lines)


def _format_chart(result: Mapping[str, Any]) -> str:
    chart_id = result.get("chartId")
    if chart_id is None:
        return "Chart created."
    return f"Created chart {chart_id}."


_FORMATTERS: Mapping[str, Callable[[Mapping[str, Any]], str]] = {
    "read_range": _format_read_range,
    "write_range": _format_update,
    "append_row": _format_update,
    "clear_range": _format_clear,
    "get_spreadsheet_metadata": _format_metadata,
    "create_chart": _format_chart,
}


def format_tool_result(tool_name: str, result: Any) -> str:
    """Return a compact rendering of ``result`` for the named tool.

    Unknown tools fall back to compact JSON.
    """

    formatter = _FORMATTERS.get(tool_name)
    if formatter is not None and isinstance(result, Mapping):
        return formatter(result)
    try:
        return json.dumps(result, ensure_ascii=False, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return str(result)


__all__ = ["format_tool_result", "format_values"]

"""Structured helpers for A1-notation spreadsheet ranges."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_CELL_RANGE_RE = re.compile(r"^\$?([A-Za-z]+)\$?(\d+):\$?([A-Za-z]+)\$?(\d+)$")


def column_to_index(column: str) -> int:
    """Convert a column label (``A``, ``AB``) into a zero-based index."""

    label = (column or "").strip().upper()
    if not label or not label.isalpha():
        raise ValueError(f"Invalid column label: {column!r}")
    index = 0
    for char in label:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index - 1


def index_to_column(index: int) -> str:
    """Convert a zero-based column index back into its A1 label."""

    if index < 0:
        raise ValueError("Column index must be non-negative")
    label = ""
    number = index + 1
    while number:
        number, remainder = divmod(number - 1, 26)
        label = chr(ord("A") + remainder) + label
    return label


def split_sheet_name(a1_range: str) -> tuple[str | None, str]:
    """Split ``Sheet1!A1:B2`` into ``("Sheet1", "A1:B2")``."""

    text = (a1_range or "").strip()
    if "!" not in text:
        return None, text
    sheet, _, cells = text.rpartition("!")
    sheet = sheet.strip()
    if len(sheet) >= 2 and sheet[0] == sheet[-1] == "'":
        sheet = sheet[1:-1].replace("''", "'")
    return (sheet or None), (cells or text)


@dataclass(slots=True, frozen=True)
class GridRange:
    """Zero-based, end-exclusive grid coordinates of an A1 cell range."""

    start_row: int
    start_column: int
    end_row: int
    end_column: int
    sheet_name: str | None = None

    @classmethod
    def parse(cls, a1_range: str) -> GridRange:
        """Parse a bounded A1 range such as ``Sheet1!A1:C10``."""

        sheet_name, cells = split_sheet_name(a1_range)
        match = _CELL_RANGE_RE.match(cells.strip())
        if match is None:
            raise ValueError(f"Invalid range format: {cells}. Expected format: A1:C10")
        first_col, first_row, last_col, last_row = match.groups()
        start_column = column_to_index(first_col)
        end_column = column_to_index(last_col) + 1
        start_row = int(first_row) - 1
        end_row = int(last_row)
        if end_column <= start_column or end_row <= start_row:
            raise ValueError(f"Range {cells} must go from top-left to bottom-right")
        return cls(
            start_row=start_row,
            start_column=start_column,
            end_row=end_row,
            end_column=end_column,
            sheet_name=sheet_name,
        )

    @property
    def row_count(self) -> int:
        return self.end_row - self.start_row

    @property
    def column_count(self) -> int:
        return self.end_column - self.start_column

    def to_a1(self) -> str:
        """Return the range in A1 notation, prefixed with the sheet name when known."""

        cells = (
            f"{index_to_column(self.start_column)}{self.start_row + 1}:"
            f"{index_to_column(self.end_column - 1)}{self.end_row}"
        )
        if self.sheet_name:
            return f"{self.sheet_name}!{cells}"
        return cells

    def as_grid_source(self, sheet_id: int, *, start_column: int | None = None, end_column: int | None = None) -> dict[str, Any]:
        """Serialize as a Sheets API ``GridRange`` payload."""

        return {
            "sheetId": sheet_id,
            "startRowIndex": self.start_row,
            "endRowIndex": self.end_row,
            "startColumnIndex": self.start_column if start_column is None else start_column,
            "endColumnIndex": self.end_column if end_column is None else end_column,
        }

"""Core domain types and utilities."""

from .ranges import GridRange, column_to_index, index_to_column, split_sheet_name

__all__ = ["GridRange", "column_to_index", "index_to_column", "split_sheet_name"]

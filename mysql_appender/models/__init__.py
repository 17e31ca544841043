"""Data models for the MySQL log writer."""

from .log_record import LogRecord
from .log_table import (
    BASE_INDEX_COLUMNS,
    INSERT_COLUMNS,
    MAX_TEXT_LENGTH,
    RawColumnType,
    build_log_table,
    custom_column_names,
)

__all__ = [
    "LogRecord",
    "BASE_INDEX_COLUMNS",
    "INSERT_COLUMNS",
    "MAX_TEXT_LENGTH",
    "RawColumnType",
    "build_log_table",
    "custom_column_names",
]

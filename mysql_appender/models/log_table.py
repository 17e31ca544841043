"""Table definition for persisted log records."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy import JSON, Column, DateTime, Index, Integer, MetaData, String, Table, Text
from sqlalchemy.dialects import mysql
from sqlalchemy.types import UserDefinedType

# Longest text stored in a TEXT column.
MAX_TEXT_LENGTH = 65535

BASE_INDEX_COLUMNS = ("timestamp", "level", "tag", "logger_name")

# Insert column order, excluding the auto-increment id.
INSERT_COLUMNS = (
    "timestamp",
    "level",
    "level_value",
    "tag",
    "message",
    "logger_name",
    "class_name",
    "method_name",
    "file_location",
    "line_number",
    "error",
    "stack_trace",
    "mdc_context",
    "app_version",
    "device_id",
    "session_id",
    "hostname",
)


class RawColumnType(UserDefinedType):
    """Column type emitted verbatim from a caller-supplied type string."""

    cache_ok = True

    def __init__(self, type_string: str) -> None:
        self.type_string = type_string

    def get_col_spec(self, **kw) -> str:
        return self.type_string


def _base_columns() -> List[Column]:
    return [
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("timestamp", DateTime().with_variant(mysql.DATETIME(fsp=3), "mysql"), nullable=False),
        Column("level", String(10), nullable=False),
        Column("level_value", Integer, nullable=False),
        Column("tag", String(255)),
        Column("message", Text, nullable=False),
        Column("logger_name", String(255)),
        Column("class_name", String(255)),
        Column("method_name", String(255)),
        Column("file_location", String(500)),
        Column("line_number", Integer),
        Column("error", Text),
        Column("stack_trace", Text),
        Column("mdc_context", JSON),
        Column("app_version", String(50)),
        Column("device_id", String(100)),
        Column("session_id", String(100)),
        Column("hostname", String(255)),
    ]


def index_name(table_name: str, column: str) -> str:
    # Index names are schema-wide on some engines, so they carry the table name.
    return f"idx_{table_name}_{column}"


def requested_index_columns(
    index_columns: Iterable[str], custom_fields: Mapping[str, str]
) -> List[str]:
    """Extra index columns: ``timestamp`` or declared custom columns, minus base indices."""
    extras: List[str] = []
    for column in index_columns:
        if column in BASE_INDEX_COLUMNS or column in extras:
            continue
        if column == "timestamp" or column in custom_fields:
            extras.append(column)
    return extras


def build_log_table(
    metadata: MetaData,
    name: str,
    custom_fields: Optional[Mapping[str, str]] = None,
    index_columns: Iterable[str] = (),
    create_indices: bool = True,
    table_engine: Optional[str] = "InnoDB",
    charset: Optional[str] = "utf8mb4",
    use_compression: bool = False,
) -> Table:
    """Build the log table: fixed base columns, custom columns and indices."""
    custom_fields = dict(custom_fields or {})
    columns: List[Column] = _base_columns()
    for column_name, type_string in custom_fields.items():
        columns.append(Column(column_name, RawColumnType(type_string)))

    index_targets = list(BASE_INDEX_COLUMNS)
    if create_indices:
        index_targets.extend(requested_index_columns(index_columns, custom_fields))

    options: Dict[str, str] = {}
    if table_engine:
        options["mysql_engine"] = table_engine
    if charset:
        options["mysql_default_charset"] = charset
    if use_compression:
        options["mysql_row_format"] = "COMPRESSED"

    table = Table(name, metadata, *columns, **options)
    for column in index_targets:
        Index(index_name(name, column), table.c[column])
    return table


def custom_column_names(table: Table) -> List[str]:
    base = {"id", *INSERT_COLUMNS}
    return [column.name for column in table.columns if column.name not in base]

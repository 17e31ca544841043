"""Read-side SELECT construction for persisted log records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Union

from sqlalchemy import Select, Table, select
from sqlalchemy.sql.elements import UnaryExpression

LevelSpec = Union[int, str]


def level_value(level: LevelSpec) -> int:
    """Numeric severity for a level given as a number or a stdlib level name."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_order_by(table: Table, order_by: str) -> List[UnaryExpression]:
    """Parse ``"column [ASC|DESC], ..."`` into order clauses on real columns only."""
    clauses: List[UnaryExpression] = []
    for term in order_by.split(","):
        parts = term.split()
        if not parts or len(parts) > 2:
            raise ValueError(f"Invalid order_by term: {term.strip()!r}")
        column_name = parts[0]
        direction = parts[1].upper() if len(parts) == 2 else "ASC"
        if column_name not in table.c:
            raise ValueError(f"Unknown order_by column: {column_name!r}")
        if direction not in {"ASC", "DESC"}:
            raise ValueError(f"Invalid order_by direction: {parts[1]!r}")
        column = table.c[column_name]
        clauses.append(column.desc() if direction == "DESC" else column.asc())
    return clauses


def build_log_query(
    table: Table,
    min_level: Optional[LevelSpec] = None,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    tag: Optional[str] = None,
    logger_name: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    order_by: str = "timestamp DESC",
) -> Select:
    """Parameterized SELECT with conjunctive optional filters."""
    if limit < 0 or offset < 0:
        raise ValueError("limit and offset must not be negative")

    stmt = select(table)
    if min_level is not None:
        stmt = stmt.where(table.c.level_value >= level_value(min_level))
    if start_time is not None:
        stmt = stmt.where(table.c.timestamp >= _as_utc(start_time))
    if end_time is not None:
        stmt = stmt.where(table.c.timestamp <= _as_utc(end_time))
    if tag:
        stmt = stmt.where(table.c.tag == tag)
    if logger_name:
        stmt = stmt.where(table.c.logger_name == logger_name)

    return stmt.order_by(*parse_order_by(table, order_by)).limit(limit).offset(offset)

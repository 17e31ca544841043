"""Batch serialization, insert execution and the requeue/drop policy."""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import Table, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from ..config import APPENDER_TYPE
from ..errors import BufferOverflowError, TransientWriteError
from ..models.log_record import LogRecord
from ..models.log_table import MAX_TEXT_LENGTH, custom_column_names
from . import diagnostic_context
from .log_buffer import LogBuffer
from .statistics import WriterStatistics

logger = logging.getLogger("mysql_appender.flush")


def truncate(text: Optional[str], max_length: int = MAX_TEXT_LENGTH) -> Optional[str]:
    """Cut ``text`` to exactly ``max_length`` characters."""
    if text is None or len(text) <= max_length:
        return text
    return text[:max_length]


def local_hostname() -> str:
    try:
        return socket.gethostname()
    except OSError:
        return "unknown"


class FlushExecutor:
    """Turns batches of records into parameterized inserts."""

    def __init__(
        self,
        table: Table,
        buffer: LogBuffer,
        statistics: WriterStatistics,
        operation_timeout: Optional[float] = None,
        context_provider: Callable[[], Mapping[str, str]] = diagnostic_context.snapshot,
        environment_provider: Callable[[], Mapping[str, Optional[str]]] = diagnostic_context.environment,
        default_logger_name: str = APPENDER_TYPE,
    ) -> None:
        self.table = table
        self.buffer = buffer
        self.statistics = statistics
        self.operation_timeout = operation_timeout
        self.context_provider = context_provider
        self.environment_provider = environment_provider
        # Stored for records that carry no logger name.
        self.default_logger_name = default_logger_name
        self.custom_columns = custom_column_names(table)
        self.hostname = local_hostname()

    def build_row(
        self,
        record: LogRecord,
        flush_context: Mapping[str, str],
        environment: Mapping[str, Optional[str]],
    ) -> Dict[str, Any]:
        context = record.context if record.context is not None else flush_context
        row: Dict[str, Any] = {
            "timestamp": record.timestamp,
            "level": record.level,
            "level_value": record.level_value,
            "tag": record.tag or "",
            "message": truncate(str(record.message)),
            "logger_name": record.logger_name or self.default_logger_name,
            "class_name": record.class_name or "",
            "method_name": record.method_name or "",
            "file_location": record.file_location or "",
            "line_number": record.line_number,
            "error": truncate(record.error) or "",
            "stack_trace": truncate(record.stack_trace) or "",
            "mdc_context": dict(context),
            "app_version": record.app_version or environment.get("app_version") or "",
            "device_id": record.device_id or environment.get("device_id") or "",
            "session_id": record.session_id or environment.get("session_id") or "",
            "hostname": record.hostname or self.hostname,
        }
        for name in self.custom_columns:
            row[name] = record.custom_values.get(name)
        return row

    def build_rows(self, records: Sequence[LogRecord]) -> List[Dict[str, Any]]:
        flush_context = self.context_provider()
        environment = self.environment_provider()
        return [self.build_row(record, flush_context, environment) for record in records]

    async def insert(self, connection: AsyncConnection, records: Sequence[LogRecord]) -> None:
        """Insert ``records`` in one statement and commit.

        Raises:
            TransientWriteError: the insert failed or timed out.
        """
        rows = self.build_rows(records)
        if len(rows) == 1:
            operation = connection.execute(insert(self.table), rows[0])
        else:
            operation = connection.execute(insert(self.table).values(rows))

        try:
            if self.operation_timeout:
                await asyncio.wait_for(operation, timeout=self.operation_timeout)
            else:
                await operation
            await connection.commit()
        except (SQLAlchemyError, asyncio.TimeoutError) as exc:
            try:
                await connection.rollback()
            except SQLAlchemyError as rollback_exc:
                logger.debug("Rollback after failed insert also failed: %s", rollback_exc)
            raise TransientWriteError(
                f"Failed to insert {len(records)} log records into {self.table.name}: {exc!r}",
                record_count=len(records),
            ) from exc

    def record_success(self, records: Sequence[LogRecord]) -> None:
        self.statistics.record_success(len(records))
        logger.debug("Inserted %s log records into %s", len(records), self.table.name)

    def handle_failure(self, records: Sequence[LogRecord], error: Exception) -> None:
        """Count a failed batch and requeue it, or drop it when the buffer is full."""
        self.statistics.record_failure(len(records))
        logger.error("Failed to insert logs into %s: %s", self.table.name, error)
        try:
            self.buffer.requeue(records)
        except BufferOverflowError as overflow:
            self.statistics.record_dropped(overflow.record_count)
            logger.warning("%s", overflow.message)

"""Write-pipeline components used by :class:`~mysql_appender.writer.MySqlWriter`."""

from .connection_manager import ConnectionManager, ConnectionState
from .flush_executor import FlushExecutor, truncate
from .log_buffer import LogBuffer
from .log_query import build_log_query
from .rotation_manager import RotationManager
from .schema_manager import SchemaManager
from .statistics import WriterStatistics

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "FlushExecutor",
    "LogBuffer",
    "RotationManager",
    "SchemaManager",
    "WriterStatistics",
    "build_log_query",
    "truncate",
]

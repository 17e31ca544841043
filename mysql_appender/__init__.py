"""Batched, self-healing MySQL log writer."""

from .appender import Appender
from .config import APPENDER_TYPE, WriterConfig
from .errors import (
    BufferOverflowError,
    ConfigurationError,
    DatabaseConnectionError,
    LogWriterError,
    RotationError,
    TransientWriteError,
    UnsupportedOperationError,
)
from .logging_utils import MySqlLogHandler, disable_mysql_logging, enable_mysql_logging
from .models.log_record import LogRecord
from .registry import AppenderRegistry, get_registry, register_default_appenders, reset_registry
from .writer import MySqlWriter

__all__ = [
    "APPENDER_TYPE",
    "Appender",
    "AppenderRegistry",
    "BufferOverflowError",
    "ConfigurationError",
    "DatabaseConnectionError",
    "LogRecord",
    "LogWriterError",
    "MySqlLogHandler",
    "MySqlWriter",
    "RotationError",
    "TransientWriteError",
    "UnsupportedOperationError",
    "WriterConfig",
    "disable_mysql_logging",
    "enable_mysql_logging",
    "get_registry",
    "register_default_appenders",
    "reset_registry",
]

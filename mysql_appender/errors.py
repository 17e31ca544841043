"""Exception hierarchy for the MySQL log writer."""

from __future__ import annotations

from typing import Optional


class LogWriterError(Exception):
    """Base exception for all log writer errors."""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigurationError(LogWriterError, ValueError):
    """Raised when the writer configuration is missing required options."""

    def __init__(self, message: str, option: Optional[str] = None) -> None:
        self.option = option
        super().__init__(message, recoverable=False)


class DatabaseConnectionError(LogWriterError, ConnectionError):
    """Connecting failed, or the reconnect ceiling was reached."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message, recoverable=False)


class TransientWriteError(LogWriterError):
    """A single insert or batch insert failed; the batch may be retried."""

    def __init__(self, message: str, record_count: int) -> None:
        self.record_count = record_count
        super().__init__(message, recoverable=True)


class BufferOverflowError(LogWriterError):
    """A failed batch could not be requeued because the buffer is at capacity."""

    def __init__(self, record_count: int, buffer_size: int, capacity: int) -> None:
        self.record_count = record_count
        self.buffer_size = buffer_size
        self.capacity = capacity
        super().__init__(
            f"Dropping {record_count} log records due to buffer overflow "
            f"(buffer={buffer_size}, capacity={capacity})",
            recoverable=False,
        )


class RotationError(LogWriterError):
    """Table rotation failed. Never propagated to the write path."""

    def __init__(self, message: str, table: str, archive_table: Optional[str] = None) -> None:
        self.table = table
        self.archive_table = archive_table
        super().__init__(message, recoverable=True)


class UnsupportedOperationError(LogWriterError, NotImplementedError):
    """The requested construction path is not supported."""

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)

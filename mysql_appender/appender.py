"""Capability interface shared by log sinks."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models.log_record import LogRecord


@runtime_checkable
class Appender(Protocol):
    """A sink that receives log records from a logging facade."""

    enabled: bool

    def append(self, record: LogRecord) -> None:
        ...

    async def flush(self) -> None:
        ...

    async def dispose(self) -> None:
        ...

    def get_type(self) -> str:
        ...

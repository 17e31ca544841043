"""Immutable log event handed from the logging facade to the writer."""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional


def _utc_millis(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


@dataclass(frozen=True)
class LogRecord:
    """One log event as persisted by the writer."""

    level: str
    level_value: int
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tag: Optional[str] = None
    logger_name: Optional[str] = None
    class_name: Optional[str] = None
    method_name: Optional[str] = None
    file_location: Optional[str] = None
    line_number: Optional[int] = None
    error: Optional[str] = None
    stack_trace: Optional[str] = None
    # None means no context was captured at emit time.
    context: Optional[Mapping[str, str]] = None
    app_version: Optional[str] = None
    device_id: Optional[str] = None
    session_id: Optional[str] = None
    hostname: Optional[str] = None
    custom_values: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", _utc_millis(self.timestamp))
        if self.context is not None:
            object.__setattr__(
                self, "context", MappingProxyType({str(k): str(v) for k, v in self.context.items()})
            )
        object.__setattr__(self, "custom_values", MappingProxyType(dict(self.custom_values)))

    @classmethod
    def from_logging_record(
        cls,
        record: logging.LogRecord,
        context: Optional[Mapping[str, str]] = None,
        custom_field_names: Iterable[str] = (),
    ) -> "LogRecord":
        """Convert a stdlib ``logging.LogRecord``.

        ``tag``, ``app_version``, ``device_id`` and ``session_id`` are read from
        ``extra``; any ``extra`` key naming a custom column becomes that column's
        value.
        """
        error: Optional[str] = None
        stack_trace: Optional[str] = None
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            error = f"{type(exc).__name__}: {exc}"
            stack_trace = "".join(traceback.format_exception(*record.exc_info))
        elif record.exc_text:
            stack_trace = record.exc_text
        if record.stack_info:
            stack_trace = f"{stack_trace}\n{record.stack_info}" if stack_trace else record.stack_info

        custom_values = {
            name: getattr(record, name) for name in custom_field_names if hasattr(record, name)
        }

        return cls(
            level=record.levelname,
            level_value=record.levelno,
            message=record.getMessage(),
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
            tag=getattr(record, "tag", None),
            logger_name=record.name,
            class_name=record.module,
            method_name=record.funcName,
            file_location=f"{record.pathname}:{record.lineno}",
            line_number=record.lineno,
            error=error,
            stack_trace=stack_trace,
            context=context,
            app_version=getattr(record, "app_version", None),
            device_id=getattr(record, "device_id", None),
            session_id=getattr(record, "session_id", None),
            custom_values=custom_values,
        )

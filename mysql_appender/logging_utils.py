"""Bridge between stdlib ``logging`` and the MySQL writer."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from sqlalchemy.ext.asyncio import AsyncEngine

from .config import WriterConfig
from .models.log_record import LogRecord
from .services import diagnostic_context
from .writer import MySqlWriter

# Records from the writer's own loggers would feed back into the writer.
_INTERNAL_LOGGER_PREFIX = "mysql_appender"


class MySqlLogHandler(logging.Handler):
    """Logging handler that buffers records into a :class:`MySqlWriter`."""

    def __init__(self, writer: MySqlWriter, level: Union[int, str] = logging.NOTSET) -> None:
        super().__init__(level)
        self.writer = writer
        self._custom_fields = tuple(writer.config.custom_fields)

    def emit(self, record: logging.LogRecord) -> None:  # noqa: D401 - standard emit signature
        if record.name == _INTERNAL_LOGGER_PREFIX or record.name.startswith(f"{_INTERNAL_LOGGER_PREFIX}."):
            return
        try:
            log_record = LogRecord.from_logging_record(
                record,
                context=diagnostic_context.snapshot(),
                custom_field_names=self._custom_fields,
            )
            self.writer.append(log_record)
        except Exception:  # pylint: disable=broad-except
            self.handleError(record)


_writer_instance: Optional[MySqlWriter] = None
_handler_instance: Optional[MySqlLogHandler] = None


async def enable_mysql_logging(
    config: Union[Mapping[str, Any], WriterConfig],
    test_mode: bool = False,
    engine: Optional[AsyncEngine] = None,
) -> MySqlWriter:
    """Create a writer and attach it to the root logger."""
    global _writer_instance, _handler_instance

    if _writer_instance is not None:
        # Already configured for this process.
        return _writer_instance

    writer = await MySqlWriter.from_config(config, test_mode=test_mode, engine=engine)
    level_name = writer.config.level.upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = MySqlLogHandler(writer, level=level)

    root_logger = logging.getLogger()
    root_logger.setLevel(min(root_logger.level or level, level))
    root_logger.addHandler(handler)

    _writer_instance = writer
    _handler_instance = handler
    return writer


async def disable_mysql_logging() -> None:
    """Detach the handler and dispose of the writer if one is configured."""
    global _writer_instance, _handler_instance

    if _writer_instance is None:
        return
    writer, handler = _writer_instance, _handler_instance
    _writer_instance = None
    _handler_instance = None
    if handler is not None:
        logging.getLogger().removeHandler(handler)
    await writer.dispose()


def get_active_writer() -> Optional[MySqlWriter]:
    return _writer_instance

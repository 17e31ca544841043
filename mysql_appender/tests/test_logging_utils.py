"""Tests for the stdlib logging bridge."""

import logging

import pytest
import pytest_asyncio

from mysql_appender import logging_utils
from mysql_appender.logging_utils import MySqlLogHandler, disable_mysql_logging, enable_mysql_logging, get_active_writer
from mysql_appender.services import diagnostic_context
from mysql_appender.writer import MySqlWriter


@pytest_asyncio.fixture
async def writer(base_config):
    test_writer = await MySqlWriter.from_config(
        {**base_config, "batchSize": 100, "customFields": {"user_id": "VARCHAR(100)"}}, test_mode=True
    )
    yield test_writer
    await test_writer.dispose()


@pytest.fixture
def app_logger(writer):
    logger = logging.getLogger("tests.app")
    handler = MySqlLogHandler(writer)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    yield logger
    logger.removeHandler(handler)
    logger.propagate = True


@pytest.mark.asyncio
async def test_handler_buffers_records(writer, app_logger):
    """Test that logged records reach the writer's buffer."""
    diagnostic_context.put("request_id", "r-1")

    app_logger.warning("disk at %s%%", 91, extra={"tag": "storage", "user_id": "u-5"})

    records = writer.buffer.swap()
    assert len(records) == 1
    record = records[0]
    assert record.message == "disk at 91%"
    assert record.level == "WARNING"
    assert record.tag == "storage"
    assert record.logger_name == "tests.app"
    assert record.custom_values["user_id"] == "u-5"
    assert record.context == {"request_id": "r-1"}


@pytest.mark.asyncio
async def test_handler_captures_exceptions(writer, app_logger):
    """Test that exception details are attached."""
    try:
        raise KeyError("missing")
    except KeyError:
        app_logger.exception("lookup failed")

    record = writer.buffer.swap()[0]
    assert record.error.startswith("KeyError")
    assert "Traceback" in record.stack_trace


@pytest.mark.asyncio
async def test_handler_ignores_own_loggers(writer):
    """Test that the writer's internal log records are not written back."""
    handler = MySqlLogHandler(writer)
    for name in ("mysql_appender", "mysql_appender.flush"):
        handler.emit(logging.LogRecord(name, logging.ERROR, __file__, 1, "insert failed", None, None))

    assert len(writer.buffer) == 0


@pytest.mark.asyncio
async def test_enable_and_disable(base_config):
    """Test attaching and detaching the writer on the root logger."""
    writer = await enable_mysql_logging({**base_config, "level": "WARNING"}, test_mode=True)
    try:
        assert get_active_writer() is writer
        assert await enable_mysql_logging(base_config, test_mode=True) is writer
        assert logging_utils._handler_instance in logging.getLogger().handlers  # pylint: disable=protected-access

        logging.getLogger("tests.enable").warning("stored")
        logging.getLogger("tests.enable").info("below level")
        assert len(writer.buffer) == 1
    finally:
        await disable_mysql_logging()

    assert get_active_writer() is None
    assert writer.get_statistics()["successful_inserts"] == 1
    assert all(not isinstance(handler, MySqlLogHandler) for handler in logging.getLogger().handlers)

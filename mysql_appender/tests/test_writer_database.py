"""Tests for the writer against a real (SQLite) database."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select, text

from mysql_appender.errors import DatabaseConnectionError, TransientWriteError
from mysql_appender.services import diagnostic_context
from mysql_appender.services.connection_manager import ConnectionState
from mysql_appender.writer import MySqlWriter

from .factories import BASE_TIME, make_record, make_records


async def _count(engine, table="logs"):
    async with engine.connect() as conn:
        result = await conn.execute(text(f"SELECT COUNT(*) FROM {table}"))
        return result.scalar()


@pytest.mark.asyncio
async def test_initialize_creates_table(engine, base_config):
    """Test that initialization connects and provisions the table."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)

    assert writer.initialized
    assert writer.connection_state is ConnectionState.CONNECTED
    assert writer.get_statistics()["connection_active"] is True
    assert await _count(engine) == 0

    await writer.dispose()
    assert writer.connection_state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_flush_persists_records(engine, base_config):
    """Test that flushed records end up in the table in order."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)
    for record in make_records(3, tag="orders"):
        writer.append(record)

    await writer.flush()

    rows = await writer.query_logs(order_by="timestamp ASC")
    assert [row["message"] for row in rows] == ["Message 0", "Message 1", "Message 2"]
    assert all(row["tag"] == "orders" for row in rows)
    assert writer.get_statistics()["successful_inserts"] == 3
    await writer.dispose()


@pytest.mark.asyncio
async def test_threshold_triggers_background_write(engine, base_config):
    """Test that a full buffer is written without an explicit flush."""
    writer = await MySqlWriter.from_config({**base_config, "batchSize": 2}, engine=engine)

    writer.append(make_record("one"))
    writer.append(make_record("two"))
    assert len(writer._pending) == 1  # pylint: disable=protected-access

    await writer._wait_for_pending_writes()  # pylint: disable=protected-access

    assert await _count(engine) == 2
    assert writer.get_statistics()["successful_inserts"] == 2
    assert writer.get_statistics()["buffer_size"] == 0
    await writer.dispose()


@pytest.mark.asyncio
async def test_timer_flush(engine, base_config):
    """Test that the batch timer writes a partial batch."""
    writer = await MySqlWriter.from_config({**base_config, "batchIntervalSeconds": 0.05}, engine=engine)
    writer.append(make_record())

    await asyncio.sleep(0.5)

    assert writer.get_statistics()["successful_inserts"] == 1
    assert writer.get_statistics()["buffer_size"] == 0
    await writer.dispose()


@pytest.mark.asyncio
async def test_dispose_flushes_to_database(engine, base_config):
    """Test that dispose writes remaining records before closing."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)
    for record in make_records(4):
        writer.append(record)

    await writer.dispose()

    assert await _count(engine) == 4
    assert writer.connection_state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_failed_insert_requeues(engine, base_config):
    """Test that records survive a failed insert."""
    writer = await MySqlWriter.from_config({**base_config, "autoCreateTable": False}, engine=engine)
    writer.append(make_record("kept"))

    await writer.flush()

    stats = writer.get_statistics()
    assert stats["failed_inserts"] == 1
    assert stats["successful_inserts"] == 0
    assert stats["buffer_size"] == 1

    # Once the table exists the requeued record is written.
    async with writer._lock:  # pylint: disable=protected-access
        await writer.schema.ensure_table_exists(writer.connections.connection)
    await writer.flush()

    assert writer.get_statistics()["successful_inserts"] == 1
    assert await _count(engine) == 1
    await writer.dispose()


@pytest.mark.asyncio
async def test_context_is_persisted(engine, base_config):
    """Test that diagnostic context and environment fields are stored."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)
    diagnostic_context.put("request_id", "req-42")
    diagnostic_context.set_app_version("3.2.1")

    writer.append(make_record())
    await writer.flush()

    rows = await writer.query_logs()
    assert rows[0]["mdc_context"] == {"request_id": "req-42"}
    assert rows[0]["app_version"] == "3.2.1"
    await writer.dispose()


@pytest.mark.asyncio
async def test_custom_fields(engine, base_config):
    """Test that custom column values are stored."""
    writer = await MySqlWriter.from_config(
        {**base_config, "customFields": {"user_id": "VARCHAR(100)", "action": "VARCHAR(255)"}}, engine=engine
    )
    writer.append(make_record(custom_values={"user_id": "u-1", "action": "login"}))
    writer.append(make_record())
    await writer.flush()

    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT user_id, action FROM logs ORDER BY id"))
        rows = [tuple(row) for row in result]

    assert rows == [("u-1", "login"), (None, None)]
    await writer.dispose()


@pytest.mark.asyncio
async def test_query_filters(engine, base_config):
    """Test level, time, tag and logger filters."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)
    writer.append(make_record("debug", level="DEBUG", level_value=10, timestamp=BASE_TIME, tag="a"))
    writer.append(make_record("info", timestamp=BASE_TIME + timedelta(minutes=1), tag="a", logger_name="app.api"))
    writer.append(
        make_record("error", level="ERROR", level_value=40, timestamp=BASE_TIME + timedelta(minutes=2), tag="b")
    )
    await writer.flush()

    assert [row["message"] for row in await writer.query_logs(min_level="INFO")] == ["error", "info"]
    assert [row["message"] for row in await writer.query_logs(min_level=40)] == ["error"]
    assert [row["message"] for row in await writer.query_logs(tag="a", order_by="timestamp ASC")] == ["debug", "info"]
    assert [row["message"] for row in await writer.query_logs(logger_name="app.api")] == ["info"]
    assert [
        row["message"]
        for row in await writer.query_logs(
            start_time=BASE_TIME + timedelta(seconds=30), end_time=BASE_TIME + timedelta(seconds=90)
        )
    ] == ["info"]
    assert [row["message"] for row in await writer.query_logs(limit=1, offset=1)] == ["info"]
    await writer.dispose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "order_by",
    ["timestamp; DROP TABLE logs", "nonexistent DESC", "timestamp SIDEWAYS", ""],
)
async def test_query_rejects_bad_order_by(engine, base_config, order_by):
    """Test that order_by only accepts known columns and directions."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)

    with pytest.raises(ValueError):
        await writer.query_logs(order_by=order_by)

    assert await _count(engine) == 0
    await writer.dispose()


@pytest.mark.asyncio
async def test_query_rejects_unknown_level(engine, base_config):
    """Test that an unknown level name is rejected."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)

    with pytest.raises(ValueError):
        await writer.query_logs(min_level="LOUD")
    await writer.dispose()


@pytest.mark.asyncio
async def test_rotation(engine, base_config):
    """Test that check_and_rotate archives the oldest half of max_rows."""
    writer = await MySqlWriter.from_config(
        {**base_config, "enableRotation": True, "maxRows": 4, "archiveTablePrefix": "logs_archive"}, engine=engine
    )
    for record in make_records(6):
        writer.append(record)
    await writer.flush()

    archive = await writer.check_and_rotate()

    assert archive is not None
    assert archive.startswith("logs_archive_")
    assert await _count(engine) == 4
    assert await _count(engine, archive) == 2
    await writer.dispose()


@pytest.mark.asyncio
async def test_rotation_disabled(engine, base_config):
    """Test that no rotation happens while rotation is disabled."""
    writer = await MySqlWriter.from_config({**base_config, "maxRows": 2}, engine=engine)
    for record in make_records(3):
        writer.append(record)
    await writer.flush()

    assert await writer.check_and_rotate() is None

    await writer.set_rotation_enabled(True)
    assert await writer.check_and_rotate() is not None
    await writer.set_rotation_enabled(False)
    assert writer._rotation_timer is None  # pylint: disable=protected-access
    await writer.dispose()


@pytest.mark.asyncio
async def test_connection_failure_on_flush(engine, base_config):
    """Test that a flush on a failed connection raises and keeps the records."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)
    writer.connections.state = ConnectionState.FAILED
    writer.append(make_record())

    with pytest.raises(DatabaseConnectionError):
        await writer.flush()

    stats = writer.get_statistics()
    assert stats["failed_inserts"] == 1
    assert stats["buffer_size"] == 1
    writer.buffer.swap()
    await writer.dispose()


@pytest.mark.asyncio
async def test_query_sees_every_row(engine, base_config):
    """Test that query_logs sees exactly the rows in the table."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)
    for record in make_records(7):
        writer.append(record)
    await writer.flush()

    async with engine.connect() as conn:
        total = (await conn.execute(select(func.count()).select_from(writer.schema.table))).scalar()

    assert total == len(await writer.query_logs(limit=100)) == 7
    await writer.dispose()


@pytest.mark.asyncio
async def test_failed_batch_keeps_insertion_order(engine, base_config, monkeypatch):
    """Test that a batch put back after a failed insert is written before newer records."""
    writer = await MySqlWriter.from_config({**base_config, "batchSize": 2}, engine=engine)
    real_insert = writer.executor.insert
    calls = []

    async def flaky_insert(connection, records):
        calls.append([record.message for record in records])
        if len(calls) == 1:
            raise TransientWriteError("insert failed", record_count=len(records))
        await real_insert(connection, records)

    monkeypatch.setattr(writer.executor, "insert", flaky_insert)

    for record in make_records(4):
        writer.append(record)
    await writer._wait_for_pending_writes()  # pylint: disable=protected-access
    await writer.flush()

    async with engine.connect() as conn:
        result = await conn.execute(text("SELECT message FROM logs ORDER BY id"))
        stored = [row[0] for row in result]

    assert stored == ["Message 0", "Message 1", "Message 2", "Message 3"]
    stats = writer.get_statistics()
    assert stats["failed_inserts"] == len(calls[0])
    assert stats["successful_inserts"] == 4
    assert stats["dropped_records"] == 0
    await writer.dispose()


@pytest.mark.asyncio
async def test_initialize_recovers_failed_connection(engine, base_config):
    """Test that calling initialize again leaves the FAILED state."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)
    writer.connections.state = ConnectionState.FAILED
    writer.connections.reconnect_attempts = 3
    writer.append(make_record("waiting"))

    with pytest.raises(DatabaseConnectionError):
        await writer.flush()

    await writer.initialize()

    assert writer.connection_state is ConnectionState.CONNECTED
    assert writer.connections.reconnect_attempts == 0
    assert writer.initialized

    await writer.flush()
    assert await _count(engine) == 1
    assert writer.get_statistics()["buffer_size"] == 0
    await writer.dispose()


@pytest.mark.asyncio
async def test_operations_never_share_the_connection(engine, base_config, monkeypatch):
    """Test that flushes, background writes and rotation checks use the connection one at a time."""
    writer = await MySqlWriter.from_config(
        {**base_config, "batchSize": 2, "enableRotation": True, "maxRows": 1000}, engine=engine
    )
    events = []
    lock_held = []
    active = 0
    max_active = 0

    def tracked(name, func, delay):
        async def wrapper(*args, **kwargs):
            nonlocal active, max_active
            lock_held.append(writer._lock.locked())  # pylint: disable=protected-access
            active += 1
            max_active = max(max_active, active)
            events.append(("enter", name))
            try:
                await asyncio.sleep(delay)
                return await func(*args, **kwargs)
            finally:
                events.append(("exit", name))
                active -= 1

        return wrapper

    monkeypatch.setattr(writer.executor, "insert", tracked("insert", writer.executor.insert, 0.05))
    monkeypatch.setattr(writer.rotation, "count_rows", tracked("rotation", writer.rotation.count_rows, 0.02))

    async def write(*messages):
        for message in messages:
            writer.append(make_record(message))
        await writer.flush()

    await asyncio.gather(
        write("a"),
        writer.check_and_rotate(),
        write("b"),
        write("c", "d"),
        writer.check_and_rotate(),
    )
    await writer._wait_for_pending_writes()  # pylint: disable=protected-access

    assert max_active == 1
    assert all(lock_held)
    for enter, leave in zip(events[::2], events[1::2]):
        assert enter[0] == "enter"
        assert leave == ("exit", enter[1])
    assert sum(1 for kind, name in events if kind == "enter" and name == "rotation") == 2
    assert sum(1 for kind, name in events if kind == "enter" and name == "insert") >= 2
    assert await _count(engine) == 4
    await writer.dispose()


@pytest.mark.asyncio
async def test_missing_logger_name_uses_writer_type(engine, base_config):
    """Test that records without a logger name are stored under the writer type."""
    writer = await MySqlWriter.from_config(base_config, engine=engine)
    writer.append(make_record("anonymous"))
    writer.append(make_record("named", logger_name="app.api"))
    await writer.flush()

    rows = await writer.query_logs(order_by="id ASC")
    assert [row["logger_name"] for row in rows] == ["MYSQL", "app.api"]
    await writer.dispose()

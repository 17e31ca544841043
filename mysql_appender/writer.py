"""Batched MySQL log writer."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from .config import APPENDER_TYPE, WriterConfig
from .database import create_writer_engine
from .errors import (
    DatabaseConnectionError,
    LogWriterError,
    TransientWriteError,
    UnsupportedOperationError,
)
from .models.log_record import LogRecord
from .services.connection_manager import ConnectionManager, ConnectionState
from .services.flush_executor import FlushExecutor
from .services.log_buffer import LogBuffer
from .services.log_query import LevelSpec, build_log_query
from .services.rotation_manager import RotationManager
from .services.schema_manager import SchemaManager
from .services.statistics import WriterStatistics

logger = logging.getLogger("mysql_appender.writer")

_PendingWrite = Union["asyncio.Task[None]", "concurrent.futures.Future[None]"]


class MySqlWriter:
    """Stores log records in a MySQL table.

    Records are buffered and written in batches when the buffer reaches
    ``batch_size`` or when the flush timer fires. A single connection is shared
    by flushes, rotation checks and queries; all of them hold ``_lock`` while
    they use it.

    In test mode no network operation is performed, but the buffer and the
    statistics behave as if every insert succeeded.
    """

    appender_name = APPENDER_TYPE

    def __init__(
        self,
        config: WriterConfig,
        test_mode: bool = False,
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        self.config = config
        self.test_mode = test_mode
        self.enabled = config.enabled
        self.rotation_enabled = config.enable_rotation
        self.created = datetime.now(timezone.utc)

        self.buffer = LogBuffer(config.batch_size)
        self.statistics = WriterStatistics()
        self.schema = SchemaManager(config)
        self.executor = FlushExecutor(
            self.schema.table,
            self.buffer,
            self.statistics,
            operation_timeout=config.operation_timeout_seconds,
            default_logger_name=self.appender_name,
        )
        self.rotation = RotationManager(
            self.schema,
            max_rows=config.max_rows,
            operation_timeout=config.operation_timeout_seconds,
        )

        self._engine = engine
        self._owns_engine = engine is None
        self.connections: Optional[ConnectionManager] = None
        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._initialized = False
        self._disposing = False
        self._flush_timer: Optional[asyncio.Task[None]] = None
        self._flush_stop = asyncio.Event()
        self._rotation_timer: Optional[asyncio.Task[None]] = None
        self._rotation_stop = asyncio.Event()
        self._pending: Set[_PendingWrite] = set()
        self._flush_requested = False

    # --- construction -----------------------------------------------------

    @classmethod
    async def from_config(
        cls,
        config: Union[Mapping[str, Any], WriterConfig],
        test_mode: bool = False,
        engine: Optional[AsyncEngine] = None,
    ) -> "MySqlWriter":
        """Build and initialize a writer from a config mapping or ``WriterConfig``.

        Raises:
            ConfigurationError: ``host`` or ``database`` is missing.
            DatabaseConnectionError: the initial connection failed.
        """
        writer_config = config.clone() if isinstance(config, WriterConfig) else WriterConfig.from_mapping(config)
        writer = cls(writer_config, test_mode=test_mode, engine=engine)
        await writer.initialize()
        return writer

    @classmethod
    def from_config_sync(cls, config: Union[Mapping[str, Any], WriterConfig]) -> "MySqlWriter":
        raise UnsupportedOperationError(
            "MySqlWriter requires async initialization. Use 'await MySqlWriter.from_config(...)'"
        )

    async def clone(self) -> "MySqlWriter":
        """Independent writer with a copy of this writer's configuration."""
        return await MySqlWriter.from_config(self.config.clone(), test_mode=self.test_mode)

    # --- lifecycle --------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def connection_state(self) -> ConnectionState:
        if self.connections is None:
            return ConnectionState.DISCONNECTED
        return self.connections.state

    def _needs_initialize(self) -> bool:
        if not self._initialized:
            return True
        return self.connections is not None and self.connections.state is ConnectionState.FAILED

    async def initialize(self) -> None:
        """Connect, provision the table and start the timers.

        Calling it again on a writer whose connection has ``FAILED`` resets the
        reconnect counter and connects anew.
        """
        if not self._needs_initialize():
            return
        self._loop = asyncio.get_running_loop()

        if self.test_mode:
            logger.debug("MySqlWriter in test mode - skipping database initialization")
            self._initialized = True
            return

        async with self._lock:
            if not self._needs_initialize():
                return
            self._initialized = False
            if self._engine is None:
                self._engine = create_writer_engine(self.config)
            if self.connections is None:
                self.connections = ConnectionManager(
                    self._engine,
                    max_reconnect_attempts=self.config.max_reconnect_attempts,
                    reconnect_delay=self.config.reconnect_delay_seconds,
                    description=f"{self.config.host}:{self.config.port}/{self.config.database}",
                )
            self.connections.reset()
            try:
                connection = await self.connections.connect()
                if self.config.auto_create_table:
                    await self.schema.ensure_table_exists(connection)
            except (LogWriterError, SQLAlchemyError) as exc:
                logger.error("Failed to initialize MySqlWriter: %s", exc)
                await self.connections.close()
                raise
            self._initialized = True

        if not self._disposing:
            self._start_timers()
        logger.debug("MySqlWriter initialized with %s", self.config.redacted())

    def _start_timers(self) -> None:
        if self._flush_timer is None or self._flush_timer.done():
            self._flush_stop = asyncio.Event()
            self._flush_timer = asyncio.create_task(
                self._run_periodic(self.config.batch_interval_seconds, self._timed_flush, self._flush_stop),
                name=f"mysql-log-flush-{self.config.table}",
            )
            logger.debug("Batch timer started with interval: %ss", self.config.batch_interval_seconds)
        if self.rotation_enabled:
            self._start_rotation_timer()

    def _start_rotation_timer(self) -> None:
        if self._rotation_timer is not None and not self._rotation_timer.done():
            return
        self._rotation_stop = asyncio.Event()
        self._rotation_timer = asyncio.create_task(
            self._run_periodic(self.config.rotation_check_interval, self.check_and_rotate, self._rotation_stop),
            name=f"mysql-log-rotation-{self.config.table}",
        )

    async def _run_periodic(
        self, interval: float, action: Callable[[], Awaitable[Any]], stop: asyncio.Event
    ) -> None:
        # Stops between runs once ``stop`` is set; a running action is never interrupted.
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                try:
                    await action()
                except Exception:  # pylint: disable=broad-except
                    logger.exception("Periodic task %s failed", getattr(action, "__name__", action))

    async def _timed_flush(self) -> None:
        if len(self.buffer) == 0:
            return
        try:
            await self.flush()
        except DatabaseConnectionError as exc:
            logger.error("Periodic flush abandoned: %s", exc)

    async def _stop_timers(self) -> None:
        self._flush_stop.set()
        self._rotation_stop.set()
        timers = [task for task in (self._flush_timer, self._rotation_timer) if task is not None]
        self._flush_timer = None
        self._rotation_timer = None
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

    async def set_rotation_enabled(self, enabled: bool) -> None:
        """Start or stop the rotation timer. Earlier rotations are not undone."""
        self.rotation_enabled = enabled
        if enabled:
            if self._initialized and not self.test_mode:
                self._start_rotation_timer()
            return
        self._rotation_stop.set()
        timer, self._rotation_timer = self._rotation_timer, None
        if timer is not None:
            await asyncio.gather(timer, return_exceptions=True)

    async def dispose(self) -> None:
        """Stop timers, flush what is buffered and release the connection.

        Every step runs even when an earlier one fails; the first error is
        re-raised once all steps have run.
        """
        self._disposing = True
        errors: List[BaseException] = []
        steps: List[Callable[[], Awaitable[None]]] = [
            self._stop_timers,
            self._wait_for_pending_writes,
            self.flush,
            self._close_connection,
        ]
        try:
            for step in steps:
                try:
                    await step()
                except Exception as exc:  # pylint: disable=broad-except
                    logger.error("MySqlWriter dispose step %s failed: %s", step.__name__, exc)
                    errors.append(exc)
        finally:
            self._initialized = False
            self._disposing = False

        remaining = len(self.buffer)
        if remaining:
            logger.warning("MySqlWriter disposed with %s unwritten log records", remaining)
        logger.debug("MySqlWriter disposed")
        if errors:
            raise errors[0]

    async def _wait_for_pending_writes(self) -> None:
        waiters = [
            asyncio.wrap_future(item) if isinstance(item, concurrent.futures.Future) else item
            for item in list(self._pending)
        ]
        if waiters:
            await asyncio.gather(*waiters, return_exceptions=True)

    async def _close_connection(self) -> None:
        if self.connections is None:
            return
        async with self._lock:
            await self.connections.close()
            if self._owns_engine and self._engine is not None:
                await self._engine.dispose()
                self._engine = None
                self.connections = None

    # --- write path -------------------------------------------------------

    def get_type(self) -> str:
        return self.appender_name

    def append(self, record: LogRecord) -> None:
        """Buffer a record. Never blocks and never raises."""
        if not self.enabled:
            return
        if self.buffer.append(record):
            try:
                self._dispatch_flush()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Failed to schedule log flush")

    def _dispatch_flush(self) -> None:
        if self.test_mode:
            self._record_simulated(self.buffer.swap())
            return

        loop = self._loop
        if loop is None or loop.is_closed():
            # Records stay buffered until the writer is initialized.
            return
        if self._flush_requested:
            return
        self._flush_requested = True

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        pending: _PendingWrite
        try:
            if running is loop:
                pending = loop.create_task(self._background_write())
            else:
                pending = asyncio.run_coroutine_threadsafe(self._background_write(), loop)
        except Exception:
            self._flush_requested = False
            raise
        self._pending.add(pending)
        pending.add_done_callback(self._pending.discard)

    def _record_simulated(self, records: List[LogRecord]) -> None:
        if not records:
            return
        logger.debug(
            "Test mode: would insert %s logs into MySQL table %s", len(records), self.config.table
        )
        self.statistics.record_success(len(records))

    async def _background_write(self) -> None:
        try:
            await self._write_batch()
        except Exception:  # pylint: disable=broad-except
            logger.exception("Background flush of buffered log records failed")

    async def flush(self) -> None:
        """Write every buffered record now.

        Raises:
            DatabaseConnectionError: the connection could not be established;
                the batch has been requeued (or dropped on overflow).
        """
        if self.test_mode:
            self._record_simulated(self.buffer.swap())
            return
        if len(self.buffer) == 0:
            return
        await self._write_batch(raise_errors=True)

    async def _write_batch(self, raise_errors: bool = False) -> None:
        # The buffer is swapped only while holding the lock, so a requeued
        # batch is back at the front before the next swap.
        if not self._initialized:
            try:
                await self.initialize()
            except (LogWriterError, SQLAlchemyError) as exc:
                self._flush_requested = False
                records = self.buffer.swap()
                if records:
                    self.executor.handle_failure(records, exc)
                if raise_errors:
                    raise
                return

        async with self._lock:
            self._flush_requested = False
            records = self.buffer.swap()
            if not records:
                return
            try:
                connection = await self._ensure_connection()
                await self.executor.insert(connection, records)
            except TransientWriteError as exc:
                if self.connections is not None:
                    self.connections.mark_stale()
                self.executor.handle_failure(records, exc)
                return
            except DatabaseConnectionError as exc:
                self.executor.handle_failure(records, exc)
                if raise_errors:
                    raise
                return
            self.executor.record_success(records)

    async def _ensure_connection(self) -> AsyncConnection:
        if self.connections is None:
            raise DatabaseConnectionError("MySqlWriter is not initialized")
        return await self.connections.ensure()

    # --- rotation & queries -----------------------------------------------

    async def check_and_rotate(self) -> Optional[str]:
        """Archive the oldest rows if the table exceeds ``max_rows``.

        Returns the archive table name when a rotation happened.
        """
        if not self.rotation_enabled or self.test_mode:
            return None
        async with self._lock:
            return await self.rotation.check_and_rotate(self._ensure_connection)

    async def query_logs(
        self,
        min_level: Optional[LevelSpec] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        tag: Optional[str] = None,
        logger_name: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
        order_by: str = "timestamp DESC",
    ) -> List[Dict[str, Any]]:
        """Fetch stored records matching every given filter."""
        if self.test_mode:
            return []

        stmt = build_log_query(
            self.schema.table,
            min_level=min_level,
            start_time=start_time,
            end_time=end_time,
            tag=tag,
            logger_name=logger_name,
            limit=limit,
            offset=offset,
            order_by=order_by,
        )
        if not self._initialized:
            await self.initialize()
        async with self._lock:
            connection = await self._ensure_connection()
            result = await connection.execute(stmt)
            rows = [dict(row._mapping) for row in result]
            await connection.commit()
        return rows

    # --- introspection ----------------------------------------------------

    def get_statistics(self) -> Dict[str, Any]:
        connection_active = self.connections is not None and self.connections.is_active
        return self.statistics.snapshot(len(self.buffer), connection_active)

    def __repr__(self) -> str:
        return (
            f"MySqlWriter(host: {self.config.host}:{self.config.port}, database: {self.config.database}, "
            f"table: {self.config.table}, batch_size: {self.config.batch_size}, enabled: {self.enabled}, "
            f"stats: {{inserted: {self.statistics.successful_inserts}, failed: {self.statistics.failed_inserts}}})"
        )

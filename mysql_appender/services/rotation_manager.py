"""Archive the oldest rows once the live table grows past its ceiling."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from sqlalchemy import MetaData, Table, delete, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from ..errors import RotationError
from .schema_manager import SchemaManager

logger = logging.getLogger("mysql_appender.rotation")


class RotationManager:
    """Moves ``max_rows // 2`` of the oldest rows into a fresh archive table.

    Row counts assume this writer is the only one inserting into the table.
    """

    def __init__(
        self,
        schema: SchemaManager,
        max_rows: int,
        operation_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.schema = schema
        self.max_rows = max_rows
        self.operation_timeout = operation_timeout
        self.clock = clock
        self.last_archive_table: Optional[str] = None

    @property
    def table(self) -> Table:
        return self.schema.table

    @property
    def rows_per_rotation(self) -> int:
        return self.max_rows // 2

    def archive_table_name(self) -> str:
        return f"{self.schema.config.archive_base_name}_{int(self.clock() * 1000)}"

    async def count_rows(self, connection: AsyncConnection) -> int:
        result = await connection.execute(select(func.count()).select_from(self.table))
        count = result.scalar() or 0
        await connection.commit()
        return count

    async def check_and_rotate(self, connection_provider: Callable[[], Awaitable[AsyncConnection]]) -> Optional[str]:
        """Rotate when the live table exceeds ``max_rows``.

        Returns the archive table name when a rotation happened. Failures are
        logged and swallowed so they never reach the write path.
        """
        try:
            connection = await connection_provider()
            row_count = await self.count_rows(connection)
            if row_count <= self.max_rows:
                logger.debug("Table %s has %s rows (limit %s); no rotation", self.table.name, row_count, self.max_rows)
                return None
            return await self._run(self.rotate(connection))
        except RotationError as exc:
            logger.error("Failed to rotate table: %s", exc)
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Failed to check table rotation: %s", exc)
        return None

    async def _run(self, operation: Awaitable[str]) -> str:
        if self.operation_timeout:
            return await asyncio.wait_for(operation, timeout=self.operation_timeout)
        return await operation

    async def rotate(self, connection: AsyncConnection) -> str:
        """Create the archive table, then copy and delete the oldest rows in one transaction."""
        archive_name = self.archive_table_name()
        archive_metadata = MetaData()
        archive = self.schema.build_table(archive_name, archive_metadata)
        table = self.table
        limit = self.rows_per_rotation

        try:
            await connection.run_sync(archive_metadata.create_all, tables=[archive], checkfirst=False)
            await connection.commit()
        except SQLAlchemyError as exc:
            await connection.rollback()
            raise RotationError(f"Could not create archive table {archive_name}: {exc}", table.name, archive_name) from exc

        # Derived table so MySQL accepts LIMIT inside the IN subquery.
        oldest = (
            select(table.c.id)
            .order_by(table.c.timestamp.asc(), table.c.id.asc())
            .limit(limit)
            .subquery("oldest")
        )
        oldest_ids = select(oldest.c.id)
        column_names = [column.name for column in table.columns]

        copy_stmt = insert(archive).from_select(
            column_names,
            select(*[table.c[name] for name in column_names]).where(table.c.id.in_(oldest_ids)),
        )
        delete_stmt = delete(table).where(table.c.id.in_(oldest_ids))

        try:
            await connection.execute(copy_stmt)
            await connection.execute(delete_stmt)
            await connection.commit()
        except SQLAlchemyError as exc:
            await connection.rollback()
            raise RotationError(
                f"Could not move rows from {table.name} to {archive_name}: {exc}", table.name, archive_name
            ) from exc

        self.last_archive_table = archive_name
        logger.info("Rotated %s oldest rows of table %s to %s", limit, table.name, archive_name)
        return archive_name

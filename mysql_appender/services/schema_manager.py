"""Idempotent provisioning of the log table."""

from __future__ import annotations

import logging

from sqlalchemy import MetaData, Table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from ..config import WriterConfig
from ..models.log_table import build_log_table

logger = logging.getLogger("mysql_appender.schema")


class SchemaManager:
    """Builds the log table definition and creates it at most once."""

    def __init__(self, config: WriterConfig) -> None:
        self.config = config
        self.metadata = MetaData()
        self.table: Table = self.build_table(config.table, self.metadata)
        self.checked = False

    def build_table(self, name: str, metadata: MetaData) -> Table:
        """Build a log table named ``name``; also used for archive tables."""
        return build_log_table(
            metadata,
            name,
            custom_fields=self.config.custom_fields,
            index_columns=self.config.index_columns,
            create_indices=self.config.create_indices,
            table_engine=self.config.table_engine,
            charset=self.config.charset,
            use_compression=self.config.use_compression,
        )

    async def ensure_table_exists(self, connection: AsyncConnection) -> bool:
        """Create the table if missing. Return True when a create was attempted.

        Repeat calls after a successful check do nothing.
        """
        if self.checked:
            return False
        try:
            await connection.run_sync(self.metadata.create_all, tables=[self.table], checkfirst=True)
            await connection.commit()
        except SQLAlchemyError:
            logger.exception("Failed to create table %s", self.table.name)
            await connection.rollback()
            raise
        self.checked = True
        logger.debug("Table %s is ready", self.table.name)
        return True

"""Single-connection lifecycle with liveness probes and reconnect backoff."""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ..errors import DatabaseConnectionError

logger = logging.getLogger("mysql_appender.connection")

STALE_AFTER = timedelta(minutes=5)


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class ConnectionManager:
    """Owns one ``AsyncConnection`` for a writer.

    Not safe for concurrent use on its own: the writer serializes every call
    behind its connection lock.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        max_reconnect_attempts: int = 3,
        reconnect_delay: float = 2.0,
        description: str = "database",
    ) -> None:
        self.engine = engine
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.description = description
        self.state = ConnectionState.DISCONNECTED
        self.reconnect_attempts = 0
        self.last_check: Optional[datetime] = None
        self._connection: Optional[AsyncConnection] = None
        self._sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @property
    def connection(self) -> AsyncConnection:
        if self._connection is None:
            raise DatabaseConnectionError(f"No open connection to {self.description}")
        return self._connection

    @property
    def is_active(self) -> bool:
        return self._connection is not None

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt ``attempt`` (1-based)."""
        return self.reconnect_delay * attempt

    async def connect(self) -> AsyncConnection:
        """Open a fresh connection, closing any previous one."""
        await self._discard()
        previous = self.state
        self.state = ConnectionState.CONNECTING
        try:
            self._connection = await self.engine.connect()
        except (SQLAlchemyError, OSError) as exc:
            self.state = previous if previous is ConnectionState.RECONNECTING else ConnectionState.DISCONNECTED
            logger.error("Connection to %s failed: %s", self.description, exc)
            raise DatabaseConnectionError(f"Connection to {self.description} failed: {exc}") from exc

        self.last_check = datetime.now(timezone.utc)
        self.reconnect_attempts = 0
        self.state = ConnectionState.CONNECTED
        logger.debug("Connection established to %s", self.description)
        return self._connection

    def _is_stale(self) -> bool:
        if self.last_check is None:
            return True
        return datetime.now(timezone.utc) - self.last_check > STALE_AFTER

    async def ensure(self) -> AsyncConnection:
        """Return a live connection, probing and reconnecting as needed.

        Raises:
            DatabaseConnectionError: the reconnect ceiling was reached, or the
                manager is already ``FAILED``.
        """
        if self.state is ConnectionState.FAILED:
            raise DatabaseConnectionError(
                f"Connection to {self.description} permanently failed", attempts=self.reconnect_attempts
            )
        if self._connection is not None and not self._is_stale():
            return self._connection

        if self._connection is None:
            try:
                return await self.connect()
            except DatabaseConnectionError:
                logger.warning("No connection to %s, retrying with backoff", self.description)
        else:
            try:
                await self._connection.execute(text("SELECT 1"))
                await self._connection.commit()
                self.last_check = datetime.now(timezone.utc)
                self.state = ConnectionState.CONNECTED
                return self._connection
            except SQLAlchemyError as exc:
                logger.warning("Connection test failed, reconnecting... (%s)", exc)
        self.state = ConnectionState.DEGRADED
        return await self.reconnect()

    async def reconnect(self) -> AsyncConnection:
        """Reconnect with linear-growth backoff, up to ``max_reconnect_attempts`` tries."""
        self.state = ConnectionState.RECONNECTING
        last_error: Optional[Exception] = None
        while self.reconnect_attempts < self.max_reconnect_attempts:
            self.reconnect_attempts += 1
            delay = self.backoff_delay(self.reconnect_attempts)
            logger.info(
                "Reconnect attempt %s/%s to %s in %.1fs",
                self.reconnect_attempts,
                self.max_reconnect_attempts,
                self.description,
                delay,
            )
            await self._sleep(delay)
            try:
                return await self.connect()
            except DatabaseConnectionError as exc:
                last_error = exc

        self.state = ConnectionState.FAILED
        await self._discard()
        logger.error(
            "Max reconnection attempts (%s) reached for %s", self.max_reconnect_attempts, self.description
        )
        raise DatabaseConnectionError(
            f"Max reconnection attempts reached for {self.description}",
            attempts=self.reconnect_attempts,
        ) from last_error

    def mark_stale(self) -> None:
        """Force a liveness probe on the next ``ensure``."""
        self.last_check = None

    def reset(self) -> None:
        """Leave ``FAILED`` so the next ``ensure`` may reconnect again."""
        self.reconnect_attempts = 0
        if self.state is ConnectionState.FAILED:
            self.state = ConnectionState.DISCONNECTED

    async def _discard(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            await connection.close()
        except SQLAlchemyError as exc:
            logger.debug("Ignoring error while closing stale connection: %s", exc)

    async def close(self) -> None:
        await self._discard()
        if self.state is not ConnectionState.FAILED:
            self.state = ConnectionState.DISCONNECTED
        logger.debug("Connection to %s closed", self.description)

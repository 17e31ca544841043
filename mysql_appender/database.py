"""Async engine construction for the log writer."""

import ssl
from typing import Any, Dict

from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from .config import WriterConfig

MYSQL_DRIVER = "mysql+aiomysql"


def build_database_url(config: WriterConfig) -> URL:
    """Build the SQLAlchemy URL for the configured MySQL server."""
    return URL.create(
        MYSQL_DRIVER,
        username=config.user,
        password=config.password,
        host=config.host,
        port=config.port,
        database=config.database,
        query={"charset": config.charset},
    )


def build_connect_args(config: WriterConfig) -> Dict[str, Any]:
    """Driver-level connection arguments (timeout and TLS)."""
    connect_args: Dict[str, Any] = {"connect_timeout": config.connection_timeout}
    if config.use_ssl:
        connect_args["ssl"] = ssl.create_default_context()
    return connect_args


def create_writer_engine(config: WriterConfig, echo: bool = False) -> AsyncEngine:
    """Create the engine backing a writer's single connection."""
    return create_async_engine(
        build_database_url(config),
        echo=echo,
        # One connection per writer.
        poolclass=NullPool,
        connect_args=build_connect_args(config),
    )

"""Shared fixtures: file-backed SQLite engines stand in for MySQL."""

from typing import Any, Dict

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from mysql_appender.services import diagnostic_context


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Async SQLite engine backed by a per-test database file."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'logs.db'}",
        poolclass=NullPool,
    )
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def base_config() -> Dict[str, Any]:
    return {
        "type": "MYSQL",
        "host": "localhost",
        "database": "test_db",
        "batchSize": 50,
        "batchIntervalSeconds": 60,
    }


@pytest.fixture(autouse=True)
def clean_diagnostic_context():
    diagnostic_context.clear()
    yield
    diagnostic_context.clear()

"""Integration tests for the read-side API."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from mysql_appender.main import create_app
from mysql_appender.writer import MySqlWriter

from .factories import make_record, make_records


@pytest_asyncio.fixture
async def writer(engine, base_config):
    db_writer = await MySqlWriter.from_config(base_config, engine=engine)
    yield db_writer
    await db_writer.dispose()


@pytest_asyncio.fixture
async def client(writer):
    async with AsyncClient(transport=ASGITransport(app=create_app(writer)), base_url="http://test") as test_client:
        yield test_client


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Test health check endpoint."""
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["writer"] == "MYSQL"
    assert data["connection_state"] == "connected"


@pytest.mark.asyncio
async def test_list_logs(client: AsyncClient, writer):
    """Test listing stored logs."""
    for record in make_records(3, tag="api"):
        writer.append(record)
    await writer.flush()

    response = await client.get("/api/logs", params={"order_by": "timestamp ASC"})

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 3
    assert [item["message"] for item in data["items"]] == ["Message 0", "Message 1", "Message 2"]
    assert data["items"][0]["tag"] == "api"
    assert data["items"][0]["timestamp"].startswith("2024-01-01T00:00:00")


@pytest.mark.asyncio
async def test_list_logs_filtered_by_level(client: AsyncClient, writer):
    """Test filtering by minimum level name and number."""
    writer.append(make_record("info"))
    writer.append(make_record("error", level="ERROR", level_value=40))
    await writer.flush()

    by_name = (await client.get("/api/logs", params={"min_level": "ERROR"})).json()
    by_number = (await client.get("/api/logs", params={"min_level": "40"})).json()

    assert [item["message"] for item in by_name["items"]] == ["error"]
    assert by_number["items"] == by_name["items"]


@pytest.mark.asyncio
async def test_list_logs_bad_order_by(client: AsyncClient):
    """Test that an invalid order_by is a client error."""
    response = await client.get("/api/logs", params={"order_by": "password DESC"})

    assert response.status_code == 400
    assert "order_by" in response.json()["detail"]


@pytest.mark.asyncio
async def test_writer_statistics(client: AsyncClient, writer):
    """Test the statistics endpoint."""
    writer.append(make_record())
    await writer.flush()
    writer.append(make_record())

    response = await client.get("/api/logs/stats")

    assert response.status_code == 200
    data = response.json()
    assert data["type"] == "MYSQL"
    assert data["table"] == "logs"
    assert data["successful_inserts"] == 1
    assert data["buffer_size"] == 1
    assert data["connection_active"] is True
    assert data["connection_state"] == "connected"


@pytest.mark.asyncio
async def test_api_token_required(writer):
    """Test that a configured API token is enforced."""
    app = create_app(writer, api_token="s3cret")
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        denied = await test_client.get("/api/logs/stats")
        allowed = await test_client.get("/api/logs/stats", headers={"X-API-Key": "s3cret"})

    assert denied.status_code == 401
    assert allowed.status_code == 200

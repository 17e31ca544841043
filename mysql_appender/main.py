"""FastAPI application exposing a writer's stored logs."""

from typing import Optional

from fastapi import FastAPI

from .api import logs
from .writer import MySqlWriter


def create_app(writer: MySqlWriter, api_token: Optional[str] = None) -> FastAPI:
    """Build the read-side API around an already initialized writer.

    The caller owns the writer's lifecycle (``initialize``/``dispose``).
    """
    app = FastAPI(title="MySQL Log Writer", version="1.0.0")
    app.state.writer = writer
    app.state.api_token = api_token

    app.include_router(logs.router, prefix="/api/logs", tags=["Logs"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "writer": writer.get_type(),
            "connection_state": writer.connection_state.value,
        }

    return app

"""Read-side endpoints for persisted logs and writer statistics."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel

from ..errors import DatabaseConnectionError
from ..writer import MySqlWriter

router = APIRouter()
logger = logging.getLogger("mysql_appender.api")


class WriterStatisticsResponse(BaseModel):
    """Snapshot of a writer's insert counters."""

    type: str
    table: str
    successful_inserts: int
    failed_inserts: int
    dropped_records: int
    last_insert_time: Optional[str] = None
    buffer_size: int
    connection_active: bool
    connection_state: str


def get_writer(request: Request) -> MySqlWriter:
    writer = getattr(request.app.state, "writer", None)
    if writer is None:
        raise HTTPException(status_code=503, detail="Log writer not configured")
    return writer


async def _require_api_token(request: Request, x_api_key: Optional[str] = Header(default=None)) -> None:
    token = (getattr(request.app.state, "api_token", None) or "").strip()
    if not token:
        return
    if x_api_key != token:
        raise HTTPException(status_code=401, detail="Invalid API key")


def _serialize(row: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value.isoformat() if isinstance(value, datetime) else value for key, value in row.items()}


@router.get("", dependencies=[Depends(_require_api_token)])
async def list_logs(
    min_level: Optional[str] = Query(default=None, description="Minimum level name or number (e.g. WARNING, 30)."),
    start_time: Optional[datetime] = Query(default=None),
    end_time: Optional[datetime] = Query(default=None),
    tag: Optional[str] = Query(default=None),
    logger_name: Optional[str] = Query(default=None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    order_by: str = Query("timestamp DESC"),
    writer: MySqlWriter = Depends(get_writer),
) -> Dict[str, Any]:
    level: Optional[Any] = None
    if min_level:
        level = int(min_level) if min_level.isdigit() else min_level

    try:
        rows: List[Dict[str, Any]] = await writer.query_logs(
            min_level=level,
            start_time=start_time,
            end_time=end_time,
            tag=tag,
            logger_name=logger_name,
            limit=limit,
            offset=offset,
            order_by=order_by,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except DatabaseConnectionError as exc:
        logger.warning("Log query failed: %s", exc)
        raise HTTPException(status_code=503, detail="Log database unavailable") from exc

    return {"items": [_serialize(row) for row in rows], "count": len(rows)}


@router.get("/stats", response_model=WriterStatisticsResponse, dependencies=[Depends(_require_api_token)])
async def writer_statistics(writer: MySqlWriter = Depends(get_writer)) -> WriterStatisticsResponse:
    stats = writer.get_statistics()
    return WriterStatisticsResponse(
        type=writer.get_type(),
        table=writer.config.table,
        connection_state=writer.connection_state.value,
        **stats,
    )

"""Ready-made writer configurations for common deployments."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .config import APPENDER_TYPE


def _base(host: str, database: str, user: Optional[str], password: Optional[str], table: str) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "type": APPENDER_TYPE,
        "host": host,
        "port": 3306,
        "database": database,
        "table": table,
    }
    if user is not None:
        config["user"] = user
    if password is not None:
        config["password"] = password
    return config


def production(
    host: str, database: str, user: Optional[str] = None, password: Optional[str] = None, table: str = "logs"
) -> Dict[str, Any]:
    """Large batches, reconnect headroom and rotation at ten million rows."""
    return {
        **_base(host, database, user, password, table),
        "level": "INFO",
        "batchSize": 100,
        "batchIntervalSeconds": 10,
        "usePreparedStatements": True,
        "maxReconnectAttempts": 5,
        "reconnectDelaySeconds": 2,
        "enableRotation": True,
        "maxRows": 10_000_000,
        "rotationCheckInterval": 3600,
        "useCompression": False,
        "tableEngine": "InnoDB",
        "createIndices": True,
    }


def development(
    host: str, database: str, user: Optional[str] = None, password: Optional[str] = None, table: str = "dev_logs"
) -> Dict[str, Any]:
    """Every record inserted immediately, for debugging."""
    return {
        **_base(host, database, user, password, table),
        "level": "DEBUG",
        "batchSize": 1,
        "batchIntervalSeconds": 1,
        "autoCreateTable": True,
        "createIndices": True,
        "indexColumns": ["timestamp", "level", "tag", "logger_name"],
    }


def high_volume(
    host: str, database: str, user: Optional[str] = None, password: Optional[str] = None, table: str = "logs"
) -> Dict[str, Any]:
    return {
        **_base(host, database, user, password, table),
        "batchSize": 200,
        "batchIntervalSeconds": 5,
        "usePreparedStatements": True,
        "useCompression": True,
        "tableEngine": "InnoDB",
        "createIndices": True,
        "indexColumns": ["timestamp", "level"],
    }


def analytics(
    host: str, database: str, user: Optional[str] = None, password: Optional[str] = None, table: str = "events"
) -> Dict[str, Any]:
    """Event tracking table with typed analytics columns."""
    return {
        **_base(host, database, user, password, table),
        "batchSize": 500,
        "batchIntervalSeconds": 30,
        "useCompression": True,
        "tableEngine": "InnoDB",
        "customFields": {
            "event_type": "VARCHAR(100)",
            "event_data": "JSON",
            "duration_ms": "INT",
            "user_segment": "VARCHAR(50)",
        },
        "createIndices": True,
        "indexColumns": ["timestamp", "event_type", "user_segment"],
    }


def audit(
    host: str, database: str, user: Optional[str] = None, password: Optional[str] = None, table: str = "audit_logs"
) -> Dict[str, Any]:
    """Audit trail: transactional engine, no rotation, actor columns."""
    return {
        **_base(host, database, user, password, table),
        "level": "INFO",
        "batchSize": 50,
        "batchIntervalSeconds": 5,
        "tableEngine": "InnoDB",
        "enableRotation": False,
        "customFields": {
            "user_id": "VARCHAR(100)",
            "action": "VARCHAR(255)",
            "ip_address": "VARCHAR(45)",
            "user_agent": "TEXT",
        },
        "createIndices": True,
        "indexColumns": ["timestamp", "level", "user_id", "action"],
    }


PRESETS = {
    "production": production,
    "development": development,
    "high_volume": high_volume,
    "analytics": analytics,
    "audit": audit,
}

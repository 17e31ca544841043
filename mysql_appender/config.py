"""Writer configuration loaded from mappings or environment variables."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

PROJECT_ROOT = Path(__file__).resolve().parent.parent

APPENDER_TYPE = "MYSQL"

DEFAULT_INDEX_COLUMNS = ["timestamp", "level", "tag", "logger_name"]

# Option names as they appear in host configuration files.
_OPTION_ALIASES = {
    "host": "host",
    "port": "port",
    "database": "database",
    "user": "user",
    "password": "password",
    "table": "table",
    "useSSL": "use_ssl",
    "connectionTimeout": "connection_timeout",
    "autoCreateTable": "auto_create_table",
    "useCompression": "use_compression",
    "tableEngine": "table_engine",
    "charset": "charset",
    "customFields": "custom_fields",
    "batchSize": "batch_size",
    "batchIntervalSeconds": "batch_interval_seconds",
    "usePreparedStatements": "use_prepared_statements",
    "maxReconnectAttempts": "max_reconnect_attempts",
    "reconnectDelaySeconds": "reconnect_delay_seconds",
    "enableRotation": "enable_rotation",
    "maxRows": "max_rows",
    "rotationCheckInterval": "rotation_check_interval",
    "archiveTablePrefix": "archive_table_prefix",
    "createIndices": "create_indices",
    "indexColumns": "index_columns",
    "enabled": "enabled",
    "level": "level",
    "operationTimeoutSeconds": "operation_timeout_seconds",
}


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name, "")
    if not raw.strip():
        return list(default)
    return [value.strip() for value in raw.split(",") if value.strip()]


def _env_fields(name: str) -> Dict[str, str]:
    """Parse ``name:TYPE;name:TYPE`` pairs (types may contain commas)."""
    result: Dict[str, str] = {}
    for chunk in os.getenv(name, "").split(";"):
        chunk = chunk.strip()
        if not chunk or ":" not in chunk:
            continue
        column, column_type = chunk.split(":", 1)
        result[column.strip()] = column_type.strip()
    return result


@dataclass
class WriterConfig:
    """Configuration for a single MySQL log writer.

    Instances are plain values: use :meth:`clone` to duplicate one, never share
    the mutable ``custom_fields``/``index_columns`` containers between writers.
    """

    host: str
    database: str
    port: int = 3306
    user: Optional[str] = None
    password: Optional[str] = None
    table: str = "logs"
    use_ssl: bool = False
    connection_timeout: int = 30

    # Table
    auto_create_table: bool = True
    use_compression: bool = False
    table_engine: str = "InnoDB"
    charset: str = "utf8mb4"
    custom_fields: Dict[str, str] = field(default_factory=dict)
    create_indices: bool = True
    index_columns: List[str] = field(default_factory=lambda: list(DEFAULT_INDEX_COLUMNS))

    # Batching
    batch_size: int = 50
    batch_interval_seconds: float = 10
    # Kept for config compatibility; inserts are always parameterized.
    use_prepared_statements: bool = True

    # Reconnects
    max_reconnect_attempts: int = 3
    reconnect_delay_seconds: float = 2

    # Rotation
    enable_rotation: bool = False
    max_rows: int = 1_000_000
    rotation_check_interval: float = 3600
    archive_table_prefix: Optional[str] = None

    # Host-facing
    enabled: bool = True
    level: str = "INFO"
    operation_timeout_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.host:
            raise ConfigurationError("Missing host argument for MySqlWriter", option="host")
        if not self.database:
            raise ConfigurationError("Missing database argument for MySqlWriter", option="database")
        if self.batch_size < 1:
            raise ConfigurationError("batchSize must be at least 1", option="batch_size")
        if self.batch_interval_seconds <= 0:
            raise ConfigurationError(
                "batchIntervalSeconds must be positive", option="batch_interval_seconds"
            )
        if self.max_reconnect_attempts < 0:
            raise ConfigurationError(
                "maxReconnectAttempts cannot be negative", option="max_reconnect_attempts"
            )
        if self.max_rows < 1:
            raise ConfigurationError("maxRows must be at least 1", option="max_rows")

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "WriterConfig":
        """Build a config from a host configuration mapping.

        Accepts the camelCase option names used in logger configuration files as
        well as the snake_case field names. Unknown keys (``type`` and other
        facade-level options) are ignored.
        """
        known = {item.name for item in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in config.items():
            name = _OPTION_ALIASES.get(key, key)
            if name in known:
                values[name] = value

        for required in ("host", "database"):
            if not values.get(required):
                raise ConfigurationError(
                    f"Missing {required} argument for MySqlWriter", option=required
                )

        if "custom_fields" in values:
            values["custom_fields"] = dict(values["custom_fields"] or {})
        if "index_columns" in values:
            values["index_columns"] = list(values["index_columns"] or [])
        return cls(**values)

    @classmethod
    def from_env(cls, prefix: str = "MYSQL_LOG_", env_file: Optional[Path] = None) -> "WriterConfig":
        """Build a config from ``MYSQL_LOG_*`` environment variables."""
        load_dotenv(dotenv_path=env_file or PROJECT_ROOT / ".env")

        def env(name: str, default: str = "") -> str:
            return os.getenv(f"{prefix}{name}", default)

        archive_prefix = env("ARCHIVE_TABLE_PREFIX")
        timeout = env("OPERATION_TIMEOUT_SECONDS")
        return cls(
            host=env("HOST"),
            database=env("DATABASE"),
            port=int(env("PORT", "3306")),
            user=env("USER") or None,
            password=env("PASSWORD") or None,
            table=env("TABLE", "logs"),
            use_ssl=_env_bool(f"{prefix}USE_SSL", "False"),
            connection_timeout=int(env("CONNECTION_TIMEOUT", "30")),
            auto_create_table=_env_bool(f"{prefix}AUTO_CREATE_TABLE", "True"),
            use_compression=_env_bool(f"{prefix}USE_COMPRESSION", "False"),
            table_engine=env("TABLE_ENGINE", "InnoDB"),
            charset=env("CHARSET", "utf8mb4"),
            custom_fields=_env_fields(f"{prefix}CUSTOM_FIELDS"),
            create_indices=_env_bool(f"{prefix}CREATE_INDICES", "True"),
            index_columns=_env_list(f"{prefix}INDEX_COLUMNS", DEFAULT_INDEX_COLUMNS),
            batch_size=int(env("BATCH_SIZE", "50")),
            batch_interval_seconds=float(env("BATCH_INTERVAL_SECONDS", "10")),
            use_prepared_statements=_env_bool(f"{prefix}USE_PREPARED_STATEMENTS", "True"),
            max_reconnect_attempts=int(env("MAX_RECONNECT_ATTEMPTS", "3")),
            reconnect_delay_seconds=float(env("RECONNECT_DELAY_SECONDS", "2")),
            enable_rotation=_env_bool(f"{prefix}ENABLE_ROTATION", "False"),
            max_rows=int(env("MAX_ROWS", "1000000")),
            rotation_check_interval=float(env("ROTATION_CHECK_INTERVAL", "3600")),
            archive_table_prefix=archive_prefix or None,
            enabled=_env_bool(f"{prefix}ENABLED", "True"),
            level=env("LEVEL", "INFO"),
            operation_timeout_seconds=float(timeout) if timeout else None,
        )

    def clone(self, **changes: Any) -> "WriterConfig":
        """Return an independent copy, optionally overriding some fields."""
        duplicate = replace(
            self,
            custom_fields=copy.deepcopy(self.custom_fields),
            index_columns=list(self.index_columns),
        )
        return replace(duplicate, **changes) if changes else duplicate

    @property
    def archive_base_name(self) -> str:
        return self.archive_table_prefix or self.table

    def redacted(self) -> Dict[str, Any]:
        """Return the config as a dict with the password masked."""
        data = {item.name: getattr(self, item.name) for item in fields(self)}
        if data.get("password"):
            data["password"] = "***"
        return data

"""Insert bookkeeping for a writer."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class WriterStatistics:
    """Monotonic insert counters. Never reset for the lifetime of the process."""

    successful_inserts: int = 0
    failed_inserts: int = 0
    dropped_records: int = 0
    last_insert_time: Optional[datetime] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_success(self, count: int) -> None:
        with self._lock:
            self.successful_inserts += count
            self.last_insert_time = datetime.now(timezone.utc)

    def record_failure(self, count: int) -> None:
        with self._lock:
            self.failed_inserts += count

    def record_dropped(self, count: int) -> None:
        with self._lock:
            self.dropped_records += count

    def snapshot(self, buffer_size: int, connection_active: bool) -> Dict[str, Any]:
        """Read-only view combining the counters with derived state."""
        with self._lock:
            return {
                "successful_inserts": self.successful_inserts,
                "failed_inserts": self.failed_inserts,
                "dropped_records": self.dropped_records,
                "last_insert_time": self.last_insert_time.isoformat() if self.last_insert_time else None,
                "buffer_size": buffer_size,
                "connection_active": connection_active,
            }

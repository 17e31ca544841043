"""Thread-safe pending-record buffer."""

from __future__ import annotations

import threading
from typing import List, Sequence

from ..errors import BufferOverflowError
from ..models.log_record import LogRecord


class LogBuffer:
    """Ordered buffer of records awaiting a flush.

    Appends and swaps may come from any thread; the flush that drains the
    buffer runs on the event loop.
    """

    def __init__(self, batch_size: int) -> None:
        self.batch_size = batch_size
        self._records: List[LogRecord] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def capacity(self) -> int:
        """Buffer length at or above which failed batches are no longer requeued."""
        return self.batch_size * 2

    def append(self, record: LogRecord) -> bool:
        """Add a record; return True once the buffer reached ``batch_size``."""
        with self._lock:
            self._records.append(record)
            return len(self._records) >= self.batch_size

    def swap(self) -> List[LogRecord]:
        """Take every pending record, leaving a fresh empty buffer."""
        with self._lock:
            records = self._records
            self._records = []
            return records

    def requeue(self, records: Sequence[LogRecord]) -> None:
        """Put a failed batch back at the front, oldest first.

        Raises:
            BufferOverflowError: the buffer already holds ``capacity`` records.
        """
        with self._lock:
            if len(self._records) >= self.capacity:
                raise BufferOverflowError(len(records), len(self._records), self.capacity)
            self._records[:0] = records

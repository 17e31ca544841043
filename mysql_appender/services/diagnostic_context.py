"""Process-wide diagnostic context attached to persisted log records."""

from __future__ import annotations

import threading
from typing import Dict, Optional

_lock = threading.Lock()
_values: Dict[str, str] = {}
_environment: Dict[str, Optional[str]] = {
    "app_version": None,
    "device_id": None,
    "session_id": None,
}


def put(key: str, value: object) -> None:
    with _lock:
        _values[key] = str(value)


def get(key: str) -> Optional[str]:
    with _lock:
        return _values.get(key)


def remove(key: str) -> None:
    with _lock:
        _values.pop(key, None)


def clear() -> None:
    """Drop every context value and environment field."""
    with _lock:
        _values.clear()
        for key in _environment:
            _environment[key] = None


def snapshot() -> Dict[str, str]:
    """Copy of the current context map."""
    with _lock:
        return dict(_values)


def set_app_version(value: Optional[str]) -> None:
    with _lock:
        _environment["app_version"] = value


def set_device_id(value: Optional[str]) -> None:
    with _lock:
        _environment["device_id"] = value


def set_session_id(value: Optional[str]) -> None:
    with _lock:
        _environment["session_id"] = value


def environment() -> Dict[str, Optional[str]]:
    """Process-level app version, device id and session id."""
    with _lock:
        return dict(_environment)

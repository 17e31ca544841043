"""HTTP API routers."""

from . import logs

__all__ = ["logs"]

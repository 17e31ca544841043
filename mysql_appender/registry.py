"""Explicit factory registry mapping appender type names to constructors."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from .appender import Appender
from .config import APPENDER_TYPE
from .errors import ConfigurationError
from .writer import MySqlWriter

logger = logging.getLogger("mysql_appender.registry")

AppenderFactory = Callable[[Mapping[str, Any], bool], Awaitable[Appender]]


async def construct_mysql_writer(config: Mapping[str, Any], test_mode: bool = False) -> Appender:
    return await MySqlWriter.from_config(config, test_mode=test_mode)


class AppenderRegistry:
    """Name → factory map resolved at startup.

    Nothing is registered on import; the entry point calls
    :func:`register_default_appenders` (or :meth:`register`) once.
    """

    def __init__(self) -> None:
        self._factories: Dict[str, AppenderFactory] = {}

    def register(self, type_name: str, factory: AppenderFactory) -> None:
        key = type_name.upper()
        if key in self._factories and self._factories[key] is not factory:
            logger.warning("Replacing appender factory for type %s", key)
        self._factories[key] = factory

    def unregister(self, type_name: str) -> None:
        self._factories.pop(type_name.upper(), None)

    def is_registered(self, type_name: str) -> bool:
        return type_name.upper() in self._factories

    def registered_types(self) -> List[str]:
        return sorted(self._factories)

    def clear(self) -> None:
        self._factories.clear()

    async def create(self, config: Mapping[str, Any], test_mode: bool = False) -> Appender:
        """Construct the appender named by ``config["type"]``."""
        type_name = str(config.get("type") or "").upper()
        if not type_name:
            raise ConfigurationError("Appender config is missing 'type'", option="type")
        factory = self._factories.get(type_name)
        if factory is None:
            raise ConfigurationError(f"Unknown appender type: {type_name}", option="type")
        return await factory(config, test_mode)

    async def create_all(self, configs: List[Mapping[str, Any]], test_mode: bool = False) -> List[Appender]:
        """Construct every appender in order, disposing earlier ones if a later one fails."""
        created: List[Appender] = []
        try:
            for config in configs:
                created.append(await self.create(config, test_mode=test_mode))
        except Exception:
            for appender in created:
                await appender.dispose()
            raise
        return created


_default_registry: Optional[AppenderRegistry] = None


def get_registry() -> AppenderRegistry:
    """Process-wide registry, created empty on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = AppenderRegistry()
    return _default_registry


def register_default_appenders(registry: Optional[AppenderRegistry] = None) -> AppenderRegistry:
    """Register the MYSQL writer. Safe to call more than once."""
    registry = registry or get_registry()
    registry.register(APPENDER_TYPE, construct_mysql_writer)
    logger.debug("%s appender registered", APPENDER_TYPE)
    return registry


def reset_registry() -> None:
    """Tear down the process-wide registry."""
    global _default_registry
    if _default_registry is not None:
        _default_registry.clear()
    _default_registry = None

"""Connection factory: one entry point for every supported dialect."""

from __future__ import annotations

from typing import Callable, Mapping

from ..models import DatabaseConfig, DBType
from .base import DatabaseConnection
from .errors import ConfigurationError
from .mysql import MySQLConnection
from .postgres import PostgresConnection
from .sqlite import SQLiteConnection

ConnectionFactory = Callable[[DatabaseConfig], DatabaseConnection]

_DRIVERS: dict[DBType, ConnectionFactory] = {
    DBType.POSTGRESQL: PostgresConnection,
    DBType.MYSQL: MySQLConnection,
    DBType.SQLITE: SQLiteConnection,
}
_overrides: dict[DBType, ConnectionFactory] = {}


def create_database_connection(config: DatabaseConfig) -> DatabaseConnection:
    """Build an unopened connection for ``config``.

    Unsupported dialects fail here, synchronously, with :class:`ConfigurationError`.
    """

    db_type = DBType.parse(config.type)
    if db_type is None:
        raise ConfigurationError(f"Unsupported database type: {config.type}")
    factory = _overrides.get(db_type) or _DRIVERS[db_type]
    return factory(config)


def set_connection_factory_overrides(overrides: Mapping[DBType, ConnectionFactory]) -> None:
    """Swap in alternative drivers (tests, demo backends)."""

    _overrides.update(overrides)


def clear_connection_factory_overrides() -> None:
    _overrides.clear()


__all__ = [
    "ConnectionFactory",
    "clear_connection_factory_overrides",
    "create_database_connection",
    "set_connection_factory_overrides",
]

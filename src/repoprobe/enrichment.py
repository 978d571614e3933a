"""Cross-app database merging and consumer attribution.

All functions are pure: they return new tuples and never touch their inputs.
"""

import logging
from collections.abc import Iterable, Sequence

from repoprobe.models import (
    DatabaseType,
    DetectedDatabase,
    DetectedEnvVariable,
    DetectedService,
    ServiceType,
)

logger = logging.getLogger(__name__)

_REDIS_LIKE = frozenset({DatabaseType.REDIS, DatabaseType.KEYDB, DatabaseType.DRAGONFLY})
_MYSQL_LIKE = frozenset({DatabaseType.MYSQL, DatabaseType.MARIADB})

# URL scheme (before any "+driver" suffix) -> database types it can address
SCHEME_TYPES: dict[str, frozenset[DatabaseType]] = {
    "postgres": frozenset({DatabaseType.POSTGRESQL}),
    "postgresql": frozenset({DatabaseType.POSTGRESQL}),
    "mysql": _MYSQL_LIKE,
    "mysql2": _MYSQL_LIKE,
    "mariadb": _MYSQL_LIKE,
    "mongodb": frozenset({DatabaseType.MONGODB}),
    "redis": _REDIS_LIKE,
    "rediss": _REDIS_LIKE,
    "clickhouse": frozenset({DatabaseType.CLICKHOUSE}),
}

# Env var key prefixes that refer to a database type
KEY_PREFIXES: dict[DatabaseType, tuple[str, ...]] = {
    DatabaseType.POSTGRESQL: ("POSTGRES", "PG_", "PGHOST", "PGUSER", "PGPASSWORD", "PGDATABASE", "PGPORT"),
    DatabaseType.MYSQL: ("MYSQL",),
    DatabaseType.MARIADB: ("MARIADB", "MYSQL"),
    DatabaseType.MONGODB: ("MONGO",),
    DatabaseType.REDIS: ("REDIS",),
    DatabaseType.KEYDB: ("KEYDB", "REDIS"),
    DatabaseType.DRAGONFLY: ("DRAGONFLY", "REDIS"),
    DatabaseType.CLICKHOUSE: ("CLICKHOUSE",),
}


def url_scheme_types(value: str | None) -> frozenset[DatabaseType] | None:
    """Database types a connection URL can point at, or None for non-database values."""
    if not value or "://" not in value:
        return None
    scheme = value.split("://", 1)[0].strip().lower().split("+", 1)[0]
    return SCHEME_TYPES.get(scheme)


def references_database(db_type: DatabaseType, var: DetectedEnvVariable) -> bool:
    """Whether an env var refers to a database of db_type.

    A var correlates when its value is a connection URL for db_type, when its
    key starts with a prefix for db_type, or when it is the conventional
    variable for db_type and its value does not name another engine.
    """
    key = var.key.upper()
    scheme_types = url_scheme_types(var.default_value)
    if scheme_types is not None:
        return db_type in scheme_types
    if key.startswith(KEY_PREFIXES[db_type]):
        return True
    return key == db_type.env_var_name


def enrich_database_consumers(
    databases: Sequence[DetectedDatabase],
    env_variables: Sequence[DetectedEnvVariable],
) -> tuple[DetectedDatabase, ...]:
    """Attribute each database to the apps whose env vars reference it.

    Consumers are only ever appended, in env var order, without duplicates.
    Running it twice gives the same result as running it once.
    """
    enriched = []
    for database in databases:
        apps = [var.for_app for var in env_variables if references_database(database.type, var)]
        updated = database.with_consumers(*apps)
        if updated.consumers != database.consumers:
            logger.debug("%s consumers: %s", database.name, ", ".join(updated.consumers))
        enriched.append(updated)
    return tuple(enriched)


def merge_databases(*groups: Iterable[DetectedDatabase]) -> tuple[DetectedDatabase, ...]:
    """Collapse databases of the same type, keeping the first and uniting consumers."""
    merged: dict[DatabaseType, DetectedDatabase] = {}
    for group in groups:
        for database in group:
            existing = merged.get(database.type)
            merged[database.type] = (
                database if existing is None else existing.with_consumers(*database.consumers)
            )
    return tuple(merged.values())


def merge_services(*groups: Iterable[DetectedService]) -> tuple[DetectedService, ...]:
    """Collapse services of the same type, keeping the first and uniting consumers."""
    merged: dict[ServiceType, DetectedService] = {}
    for group in groups:
        for service in group:
            existing = merged.get(service.type)
            merged[service.type] = (
                service if existing is None else existing.with_consumers(*service.consumers)
            )
    return tuple(merged.values())

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg
from psycopg_pool import ConnectionPool, PoolTimeout

from trust_safety.config.settings import Settings
from trust_safety.exceptions import InfrastructureError

_pool: ConnectionPool | None = None


def build_conninfo(settings: Settings) -> str:
    return (
        f"host={settings.db_host} "
        f"port={settings.db_port} "
        f"dbname={settings.db_database} "
        f"user={settings.db_username} "
        f"password={settings.db_password}"
    )


def init_pool(settings: Settings) -> None:
    """Initialize the global connection pool from settings."""
    global _pool  # noqa: PLW0603
    _pool = ConnectionPool(
        build_conninfo(settings),
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        open=True,
    )


def close_pool() -> None:
    """Close the global connection pool."""
    global _pool  # noqa: PLW0603
    if _pool is not None:
        _pool.close()
        _pool = None


@contextmanager
def get_connection() -> Generator[psycopg.Connection[Any], None, None]:
    """Yield a connection from the pool. Caller manages commit/rollback.

    Raises:
        InfrastructureError: if the pool is missing or the database is unreachable.
    """
    if _pool is None:
        raise InfrastructureError("Connection pool not initialized. Call init_pool() first.")
    try:
        with _pool.connection() as conn:
            yield conn
    except (psycopg.OperationalError, PoolTimeout) as exc:
        raise InfrastructureError(f"Database unavailable: {exc}") from exc


@contextmanager
def connection_scope(
    conn: psycopg.Connection[Any] | None = None,
) -> Generator[psycopg.Connection[Any], None, None]:
    """Yield ``conn`` unchanged, or a pooled connection committed on success.

    Repositories write through this so a caller can group several writes into
    one transaction by passing its own connection; the caller then commits.
    """
    if conn is not None:
        yield conn
        return
    with get_connection() as owned:
        yield owned
        owned.commit()

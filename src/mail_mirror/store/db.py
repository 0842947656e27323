"""Relational store connector.

Postgres is the production store; SQLite is accepted for local runs and tests.
Both dialects support single-statement `INSERT ... ON CONFLICT`, which is the
only atomicity the synchronization engine relies on.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import structlog
from sqlalchemy import Table, create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, IntegrityError

from mail_mirror.exceptions import ConfigurationError, StoreWriteError

logger = structlog.get_logger()


def create_store_engine(database_url: str, *, check: bool = True) -> Engine:
    """Create the SQLAlchemy engine for the mirror.

    Args:
        database_url: SQLAlchemy database URL.
        check: Verify the database is reachable before returning.
    """

    engine = create_engine(database_url, pool_pre_ping=True)
    if check:
        check_connection(engine)
    return engine


def check_connection(engine: Engine) -> None:
    """Verify the database is reachable."""

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


@contextmanager
def connect(engine: Engine, conn: Connection | None = None) -> Iterator[Connection]:
    """Yield `conn` if given, otherwise a fresh transaction on `engine`."""

    if conn is not None:
        yield conn
        return
    with engine.begin() as new_conn:
        yield new_conn


@contextmanager
def store_write(operation: str, **context: Any) -> Iterator[None]:
    """Surface driver failures as StoreWriteError."""

    try:
        yield
    except (IntegrityError, DBAPIError) as exc:
        logger.error("store_write_failed", operation=operation, error=str(exc), **context)
        raise StoreWriteError(f"{operation} failed: {exc}") from exc


def _dialect_insert(conn: Connection, table: Table):
    name = conn.dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise ConfigurationError(f"unsupported database dialect for upserts: {name}")
    return insert(table)


def insert_ignore(
    conn: Connection,
    table: Table,
    values: dict[str, Any],
    *,
    index_elements: Sequence[str],
) -> bool:
    """Insert a row, doing nothing if the key already exists.

    Returns:
        True if a new row was written.
    """

    stmt = _dialect_insert(conn, table).values(**values).on_conflict_do_nothing(
        index_elements=list(index_elements)
    )
    result = conn.execute(stmt)
    return bool(result.rowcount)


def upsert(
    conn: Connection,
    table: Table,
    values: dict[str, Any],
    *,
    index_elements: Sequence[str],
    update_columns: Sequence[str],
) -> None:
    """Insert a row, overwriting `update_columns` if the key already exists."""

    stmt = _dialect_insert(conn, table).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(index_elements),
        set_={col: stmt.excluded[col] for col in update_columns},
    )
    conn.execute(stmt)

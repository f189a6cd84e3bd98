"""Cursor helpers that run `?`-placeholder queries on any supported dialect."""

from collections.abc import Sequence
from typing import Any

from chat_storage.adapters.dialect import (
    SQLDialect,
    bind_parameters,
    translate_placeholders,
)


def execute(
    conn: Any, dialect: SQLDialect, query: str, params: Sequence[Any] = ()
) -> int:
    """Run a statement and return the affected row count."""
    cursor = conn.cursor()
    try:
        cursor.execute(
            translate_placeholders(query, dialect), bind_parameters(params, dialect)
        )
        return int(cursor.rowcount)
    finally:
        cursor.close()


def execute_many(
    conn: Any, dialect: SQLDialect, query: str, rows: Sequence[Sequence[Any]]
) -> None:
    """Run one statement once per parameter row."""
    if not rows:
        return
    cursor = conn.cursor()
    try:
        cursor.executemany(
            translate_placeholders(query, dialect),
            [bind_parameters(row, dialect) for row in rows],
        )
    finally:
        cursor.close()


def fetch_all(
    conn: Any, dialect: SQLDialect, query: str, params: Sequence[Any] = ()
) -> list[dict[str, Any]]:
    """Run a query and return rows as column-name dictionaries."""
    cursor = conn.cursor()
    try:
        cursor.execute(
            translate_placeholders(query, dialect), bind_parameters(params, dialect)
        )
        columns = [column[0] for column in cursor.description]
        return [dict(zip(columns, row, strict=True)) for row in cursor.fetchall()]
    finally:
        cursor.close()


def fetch_one(
    conn: Any, dialect: SQLDialect, query: str, params: Sequence[Any] = ()
) -> dict[str, Any] | None:
    """Run a query and return the first row, or None."""
    rows = fetch_all(conn, dialect, query, params)
    return rows[0] if rows else None


def fetch_scalar(
    conn: Any, dialect: SQLDialect, query: str, params: Sequence[Any] = ()
) -> Any:
    """Run a query and return the first column of the first row, or None."""
    row = fetch_one(conn, dialect, query, params)
    if row is None:
        return None
    return next(iter(row.values()))

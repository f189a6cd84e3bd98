"""SQL dialect support for queries written once with `?` placeholders.

Every query in the repository is written with the universal `?` token. SQLite
binds `?` natively; psycopg2 needs numbered markers, so the Nth `?` becomes
`%(pN)s` and the parameters are bound as a mapping.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from enum import StrEnum
from typing import Any, Final

PLACEHOLDER: Final[str] = "?"
POSTGRES_PARAM_PREFIX: Final[str] = "p"


class SQLDialect(StrEnum):
    """Supported SQL engines."""

    SQLITE = "sqlite"
    POSTGRES = "postgres"


def translate_placeholders(query: str, dialect: SQLDialect) -> str:
    """Rewrite `?` placeholders into the binding syntax of the dialect.

    Args:
        query: SQL with one `?` per bound parameter
        dialect: Target engine

    Returns:
        Query valid for the engine's driver

    Example:
        >>> translate_placeholders("a = ? AND b = ?", SQLDialect.POSTGRES)
        'a = %(p1)s AND b = %(p2)s'
    """
    # psycopg2 leaves `%` alone when nothing is bound
    if dialect is SQLDialect.SQLITE or PLACEHOLDER not in query:
        return query

    parts: list[str] = []
    ordinal = 0
    for char in query:
        if char == PLACEHOLDER:
            ordinal += 1
            parts.append(f"%({POSTGRES_PARAM_PREFIX}{ordinal})s")
        elif char == "%":
            parts.append("%%")
        else:
            parts.append(char)
    return "".join(parts)


def bind_parameters(
    params: Sequence[Any], dialect: SQLDialect
) -> tuple[Any, ...] | dict[str, Any] | None:
    """Shape positional parameters for a query translated for `dialect`."""
    if dialect is SQLDialect.SQLITE:
        return tuple(params)
    if not params:
        return None
    return {
        f"{POSTGRES_PARAM_PREFIX}{index}": value
        for index, value in enumerate(params, start=1)
    }


def serialize_datetime(
    value: datetime | None, dialect: SQLDialect
) -> datetime | str | None:
    """SQLite stores fixed-width ISO-8601 text, PostgreSQL takes datetimes."""
    if value is None:
        return None
    if dialect is SQLDialect.SQLITE:
        return value.isoformat(timespec="microseconds")
    return value


def blob_type(dialect: SQLDialect) -> str:
    """Binary column type."""
    return "BYTEA" if dialect is SQLDialect.POSTGRES else "BLOB"


def timestamp_type(dialect: SQLDialect) -> str:
    """Timestamp column type."""
    return "TIMESTAMPTZ" if dialect is SQLDialect.POSTGRES else "TIMESTAMP"

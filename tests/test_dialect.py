"""Tests for placeholder translation and dialect helpers."""

from datetime import datetime

import pytest
import pytz

from chat_storage.adapters.dialect import (
    SQLDialect,
    bind_parameters,
    blob_type,
    serialize_datetime,
    timestamp_type,
    translate_placeholders,
)


def test_sqlite_query_is_unchanged() -> None:
    query = "SELECT * FROM chats WHERE chat_id = ? AND device_id = ?"
    assert translate_placeholders(query, SQLDialect.SQLITE) == query


def test_postgres_markers_are_numbered_left_to_right() -> None:
    query = "UPDATE chats SET name = ? WHERE chat_id = ? AND device_id = ?"

    translated = translate_placeholders(query, SQLDialect.POSTGRES)

    assert translated == (
        "UPDATE chats SET name = %(p1)s WHERE chat_id = %(p2)s AND device_id = %(p3)s"
    )


@pytest.mark.parametrize("count", [1, 2, 7, 16])
def test_postgres_marker_count_matches_placeholders(count: int) -> None:
    query = ", ".join("?" for _ in range(count))

    translated = translate_placeholders(query, SQLDialect.POSTGRES)

    assert "?" not in translated
    assert translated == ", ".join(f"%(p{i})s" for i in range(1, count + 1))


def test_postgres_literal_percent_is_escaped_when_binding() -> None:
    translated = translate_placeholders(
        "SELECT '100%' WHERE name LIKE ?", SQLDialect.POSTGRES
    )
    assert translated == "SELECT '100%%' WHERE name LIKE %(p1)s"


def test_postgres_query_without_placeholders_is_unchanged() -> None:
    query = "SELECT COUNT(*) FROM messages WHERE content LIKE '%x%'"
    assert translate_placeholders(query, SQLDialect.POSTGRES) == query


def test_bind_parameters_shapes_match_translation() -> None:
    assert bind_parameters(["a", 1], SQLDialect.SQLITE) == ("a", 1)
    assert bind_parameters(["a", 1], SQLDialect.POSTGRES) == {"p1": "a", "p2": 1}
    assert bind_parameters([], SQLDialect.POSTGRES) is None


def test_serialize_datetime_per_dialect() -> None:
    value = datetime(2025, 1, 2, 3, 4, 5, tzinfo=pytz.UTC)

    assert (
        serialize_datetime(value, SQLDialect.SQLITE)
        == "2025-01-02T03:04:05.000000+00:00"
    )
    assert serialize_datetime(value, SQLDialect.POSTGRES) is value
    assert serialize_datetime(None, SQLDialect.SQLITE) is None


def test_column_types() -> None:
    assert blob_type(SQLDialect.POSTGRES) == "BYTEA"
    assert blob_type(SQLDialect.SQLITE) == "BLOB"
    assert timestamp_type(SQLDialect.POSTGRES) == "TIMESTAMPTZ"
    assert timestamp_type(SQLDialect.SQLITE) == "TIMESTAMP"

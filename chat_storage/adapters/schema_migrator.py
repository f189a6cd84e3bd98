"""In-process schema migrations for the chat storage tables.

Migrations are an append-only list of additive, re-runnable DDL statements.
The highest applied index is recorded in `schema_version`; each step and its
version record commit in the same transaction, and a failed step stops startup.
"""

from collections.abc import Sequence
from typing import Final

from chat_storage.adapters.dialect import (
    SQLDialect,
    blob_type,
    serialize_datetime,
    timestamp_type,
)
from chat_storage.adapters.sql_execution import execute, fetch_scalar
from chat_storage.config.logging_config import get_logger
from chat_storage.domain.exceptions import MigrationError, RepositoryError
from chat_storage.domain.models import utc_now
from chat_storage.domain.protocols import ConnectionPool

logger = get_logger(__name__)

SCHEMA_VERSION_TABLE: Final[str] = "schema_version"

# Append only. Never edit or reorder an entry that has shipped.
_MIGRATIONS: Final[tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS chats (
        chat_id VARCHAR(255) NOT NULL,
        device_id VARCHAR(255) NOT NULL DEFAULT '',
        name VARCHAR(255),
        last_message_time {timestamp},
        ephemeral_expiration INTEGER DEFAULT 0,
        created_at {timestamp} DEFAULT CURRENT_TIMESTAMP,
        updated_at {timestamp} DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (chat_id, device_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        message_id VARCHAR(255) NOT NULL,
        chat_id VARCHAR(255) NOT NULL,
        device_id VARCHAR(255) NOT NULL DEFAULT '',
        sender VARCHAR(255),
        content TEXT,
        timestamp {timestamp},
        is_from_me BOOLEAN DEFAULT FALSE,
        media_kind VARCHAR(50),
        filename VARCHAR(255),
        url TEXT,
        media_key {blob},
        content_hash {blob},
        encrypted_content_hash {blob},
        byte_length BIGINT DEFAULT 0,
        created_at {timestamp} DEFAULT CURRENT_TIMESTAMP,
        updated_at {timestamp} DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (message_id, chat_id, device_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS devices (
        device_id VARCHAR(255) PRIMARY KEY,
        display_name VARCHAR(255) DEFAULT '',
        chat_namespace_id VARCHAR(255) DEFAULT '',
        created_at {timestamp} DEFAULT CURRENT_TIMESTAMP,
        updated_at {timestamp} DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_chats_device_last_message
    ON chats (device_id, last_message_time)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_messages_chat_device_timestamp
    ON messages (chat_id, device_id, timestamp)
    """,
)


class SchemaMigrator:
    """Applies pending migrations against one connection pool."""

    def __init__(
        self, pool: ConnectionPool, ddl: Sequence[str] = _MIGRATIONS
    ) -> None:
        """Bind to a pool; `ddl` templates may use {blob} and {timestamp}."""
        self._pool = pool
        self._ddl = tuple(ddl)
        self._dialect: SQLDialect = pool.dialect

    def migrations(self) -> list[str]:
        """Migration DDL rendered for the active dialect, in application order."""
        return [
            ddl.format(
                blob=blob_type(self._dialect),
                timestamp=timestamp_type(self._dialect),
            ).strip()
            for ddl in self._ddl
        ]

    def current_version(self) -> int:
        """Highest applied migration index, creating the version table if needed.

        Raises:
            RepositoryError: If the version table cannot be created or read
        """
        with self._pool.transaction() as conn:
            execute(
                conn,
                self._dialect,
                f"CREATE TABLE IF NOT EXISTS {SCHEMA_VERSION_TABLE} ("
                "version INTEGER PRIMARY KEY, "
                f"updated_at {timestamp_type(self._dialect)} DEFAULT CURRENT_TIMESTAMP)",
            )
            version = fetch_scalar(
                conn,
                self._dialect,
                f"SELECT COALESCE(MAX(version), 0) AS version FROM {SCHEMA_VERSION_TABLE}",
            )
        return int(version or 0)

    def migrate(self) -> int:
        """Apply every pending migration in order.

        Returns:
            Number of migrations applied (0 when already up to date)

        Raises:
            MigrationError: If a step fails; the version stays at the last good step
        """
        current = self.current_version()
        migrations = self.migrations()
        if current >= len(migrations):
            logger.info(
                "schema_up_to_date", version=current, dialect=self._dialect.value
            )
            return 0

        logger.info(
            "schema_migration_started",
            from_version=current,
            to_version=len(migrations),
            dialect=self._dialect.value,
        )
        applied = 0
        for index in range(current, len(migrations)):
            version = index + 1
            try:
                with self._pool.transaction() as conn:
                    execute(conn, self._dialect, migrations[index])
                    execute(
                        conn,
                        self._dialect,
                        f"INSERT INTO {SCHEMA_VERSION_TABLE} (version, updated_at) "
                        "VALUES (?, ?) "
                        "ON CONFLICT (version) DO UPDATE SET updated_at = excluded.updated_at",
                        (version, serialize_datetime(utc_now(), self._dialect)),
                    )
            except RepositoryError as exc:
                logger.error(
                    "schema_migration_failed",
                    version=version,
                    dialect=self._dialect.value,
                    error=str(exc),
                )
                raise MigrationError(version, str(exc)) from exc

            applied += 1
            logger.info("schema_migration_applied", version=version)

        return applied

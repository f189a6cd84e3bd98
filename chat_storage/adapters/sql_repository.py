"""SQL repository for chats, messages and device records.

One implementation serves SQLite and PostgreSQL: queries are written once with
`?` placeholders and translated for the pool's dialect. Upserts use the native
`INSERT ... ON CONFLICT DO UPDATE` clause shared by both engines, so concurrent
writers to the same new key cannot collide.
"""

from datetime import datetime
from typing import Any, Final

from chat_storage.adapters.dialect import SQLDialect, serialize_datetime
from chat_storage.adapters.schema_migrator import SchemaMigrator
from chat_storage.adapters.sql_execution import (
    execute,
    execute_many,
    fetch_all,
    fetch_one,
    fetch_scalar,
)
from chat_storage.config.logging_config import get_logger
from chat_storage.domain.exceptions import ValidationError
from chat_storage.domain.models import (
    Chat,
    ChatFilter,
    DeviceRecord,
    MediaDescriptor,
    Message,
    MessageFilter,
    StorageStatistics,
    ensure_utc,
    utc_now,
)
from chat_storage.domain.protocols import ConnectionPool

logger = get_logger(__name__)

CHAT_COLUMNS: Final[str] = (
    "chat_id, device_id, name, last_message_time, ephemeral_expiration, "
    "created_at, updated_at"
)
MESSAGE_COLUMNS: Final[str] = (
    "message_id, chat_id, device_id, sender, content, timestamp, is_from_me, "
    "media_kind, filename, url, media_key, content_hash, encrypted_content_hash, "
    "byte_length, created_at, updated_at"
)
DEVICE_COLUMNS: Final[str] = (
    "device_id, display_name, chat_namespace_id, created_at, updated_at"
)

UPSERT_CHAT_SQL: Final[str] = f"""
    INSERT INTO chats ({CHAT_COLUMNS})
    VALUES (?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT (chat_id, device_id) DO UPDATE SET
        name = excluded.name,
        last_message_time = excluded.last_message_time,
        ephemeral_expiration = excluded.ephemeral_expiration,
        updated_at = excluded.updated_at
"""

UPSERT_MESSAGE_SQL: Final[str] = f"""
    INSERT INTO messages ({MESSAGE_COLUMNS})
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT (message_id, chat_id, device_id) DO UPDATE SET
        sender = excluded.sender,
        content = excluded.content,
        timestamp = excluded.timestamp,
        is_from_me = excluded.is_from_me,
        media_kind = excluded.media_kind,
        filename = excluded.filename,
        url = excluded.url,
        media_key = excluded.media_key,
        content_hash = excluded.content_hash,
        encrypted_content_hash = excluded.encrypted_content_hash,
        byte_length = excluded.byte_length,
        updated_at = excluded.updated_at
"""

UPSERT_DEVICE_SQL: Final[str] = f"""
    INSERT INTO devices ({DEVICE_COLUMNS})
    VALUES (?, ?, ?, ?, ?)
    ON CONFLICT (device_id) DO UPDATE SET
        display_name = excluded.display_name,
        chat_namespace_id = excluded.chat_namespace_id,
        updated_at = excluded.updated_at
"""

STORAGE_STATISTICS_SQL: Final[str] = """
    SELECT
        (SELECT COUNT(*) FROM chats) AS chat_count,
        (SELECT COUNT(*) FROM messages) AS message_count
"""

LIKE_ESCAPE_CHAR: Final[str] = "\\"


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return (
        text.replace(LIKE_ESCAPE_CHAR, LIKE_ESCAPE_CHAR * 2)
        .replace("%", LIKE_ESCAPE_CHAR + "%")
        .replace("_", LIKE_ESCAPE_CHAR + "_")
    )


def _contains_pattern(text: str) -> str:
    return f"%{escape_like(text.lower())}%"


def _parse_timestamp(value: Any) -> datetime | None:
    """SQLite returns ISO text, PostgreSQL returns datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value)))


def _to_bytes(value: Any) -> bytes | None:
    # psycopg2 hands BYTEA back as memoryview
    if value is None:
        return None
    return bytes(value)


class SQLChatStorageRepository:
    """Chat storage backed by a SQLite or PostgreSQL connection pool."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Initialize repository.

        Args:
            pool: Connection provider; its dialect drives query translation
        """
        self._pool = pool
        self._dialect: SQLDialect = pool.dialect
        self._migrator = SchemaMigrator(pool)

    @property
    def dialect(self) -> SQLDialect:
        return self._dialect

    def initialize_schema(self) -> int:
        """Apply pending schema migrations.

        Returns:
            Number of migrations applied

        Raises:
            MigrationError: If any migration step fails
        """
        return self._migrator.migrate()

    def schema_version(self) -> int:
        """Currently recorded schema version."""
        return self._migrator.current_version()

    def close(self) -> None:
        """Release pooled connections."""
        self._pool.close()

    # ------------------------------------------------------------------ helpers

    def _ts(self, value: datetime | None) -> datetime | str | None:
        return serialize_datetime(ensure_utc(value), self._dialect)

    def _row_to_chat(self, row: dict[str, Any]) -> Chat:
        return Chat(
            chat_id=row["chat_id"],
            device_id=row["device_id"] or "",
            name=row["name"] or "",
            last_message_time=_parse_timestamp(row["last_message_time"]),
            ephemeral_expiration=int(row["ephemeral_expiration"] or 0),
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )

    def _row_to_message(self, row: dict[str, Any]) -> Message:
        media = None
        if row["media_kind"]:
            media = MediaDescriptor(
                kind=row["media_kind"],
                filename=row["filename"] or "",
                url=row["url"] or "",
                media_key=_to_bytes(row["media_key"]),
                content_hash=_to_bytes(row["content_hash"]),
                encrypted_content_hash=_to_bytes(row["encrypted_content_hash"]),
                byte_length=int(row["byte_length"] or 0),
            )
        return Message(
            message_id=row["message_id"],
            chat_id=row["chat_id"],
            device_id=row["device_id"] or "",
            sender=row["sender"] or "",
            content=row["content"] or "",
            timestamp=_parse_timestamp(row["timestamp"]),
            is_from_me=bool(row["is_from_me"]),
            media=media,
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )

    def _row_to_device(self, row: dict[str, Any]) -> DeviceRecord:
        return DeviceRecord(
            device_id=row["device_id"],
            display_name=row["display_name"] or "",
            chat_namespace_id=row["chat_namespace_id"] or "",
            created_at=_parse_timestamp(row["created_at"]),
            updated_at=_parse_timestamp(row["updated_at"]),
        )

    def _message_values(self, message: Message, now: datetime) -> tuple[Any, ...]:
        media = message.media
        return (
            message.message_id,
            message.chat_id,
            message.device_id,
            message.sender,
            message.content,
            self._ts(message.timestamp),
            message.is_from_me,
            media.kind if media else "",
            media.filename if media else "",
            media.url if media else "",
            media.media_key if media else None,
            media.content_hash if media else None,
            media.encrypted_content_hash if media else None,
            media.byte_length if media else 0,
            self._ts(now),
            self._ts(now),
        )

    def _query(self, query: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        with self._pool.connection() as conn:
            return fetch_all(conn, self._dialect, query, params)

    def _query_one(
        self, query: str, params: tuple[Any, ...] = ()
    ) -> dict[str, Any] | None:
        with self._pool.connection() as conn:
            return fetch_one(conn, self._dialect, query, params)

    def _count(self, query: str, params: tuple[Any, ...] = ()) -> int:
        with self._pool.connection() as conn:
            return int(fetch_scalar(conn, self._dialect, query, params) or 0)

    # -------------------------------------------------------------------- chats

    def store_chat(self, chat: Chat) -> None:
        """Insert or update a chat keyed by (chat_id, device_id).

        Raises:
            RepositoryError: On storage errors
        """
        now = utc_now()
        with self._pool.transaction() as conn:
            execute(
                conn,
                self._dialect,
                UPSERT_CHAT_SQL,
                (
                    chat.chat_id,
                    chat.device_id,
                    chat.name,
                    self._ts(chat.last_message_time),
                    chat.ephemeral_expiration,
                    self._ts(now),
                    self._ts(now),
                ),
            )
        logger.debug("chat_upserted", chat_id=chat.chat_id, device_id=chat.device_id)

    def get_chat(self, chat_id: str) -> Chat | None:
        """Get a chat by id on any device, or None."""
        row = self._query_one(
            f"SELECT {CHAT_COLUMNS} FROM chats WHERE chat_id = ? "
            "ORDER BY device_id LIMIT 1",
            (chat_id,),
        )
        return self._row_to_chat(row) if row else None

    def get_chat_by_device(self, device_id: str, chat_id: str) -> Chat | None:
        """Get a chat for one device, or None."""
        row = self._query_one(
            f"SELECT {CHAT_COLUMNS} FROM chats WHERE chat_id = ? AND device_id = ?",
            (chat_id, device_id),
        )
        return self._row_to_chat(row) if row else None

    def get_chats(self, chat_filter: ChatFilter) -> list[Chat]:
        """List chats, most recent activity first.

        Args:
            chat_filter: Optional name substring (case-insensitive), device and cap

        Returns:
            Matching chats ordered by last_message_time descending
        """
        conditions: list[str] = []
        params: list[Any] = []

        if chat_filter.search_name:
            conditions.append(f"LOWER(name) LIKE ? ESCAPE '{LIKE_ESCAPE_CHAR}'")
            params.append(_contains_pattern(chat_filter.search_name))
        if chat_filter.device_id:
            conditions.append("device_id = ?")
            params.append(chat_filter.device_id)

        query = f"SELECT {CHAT_COLUMNS} FROM chats"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        # NULL times sort last on both engines
        query += " ORDER BY last_message_time IS NULL, last_message_time DESC, chat_id"
        if chat_filter.limit and chat_filter.limit > 0:
            query += " LIMIT ?"
            params.append(chat_filter.limit)

        return [self._row_to_chat(row) for row in self._query(query, tuple(params))]

    def delete_chat(self, chat_id: str) -> None:
        """Delete a chat and its messages on every device in one transaction."""
        with self._pool.transaction() as conn:
            messages = execute(
                conn,
                self._dialect,
                "DELETE FROM messages WHERE chat_id = ?",
                (chat_id,),
            )
            chats = execute(
                conn, self._dialect, "DELETE FROM chats WHERE chat_id = ?", (chat_id,)
            )
        logger.info(
            "chat_deleted",
            chat_id=chat_id,
            messages_deleted=messages,
            chats_deleted=chats,
        )

    def delete_chat_by_device(self, device_id: str, chat_id: str) -> None:
        """Delete a chat and its messages for one device in one transaction."""
        with self._pool.transaction() as conn:
            messages = execute(
                conn,
                self._dialect,
                "DELETE FROM messages WHERE chat_id = ? AND device_id = ?",
                (chat_id, device_id),
            )
            execute(
                conn,
                self._dialect,
                "DELETE FROM chats WHERE chat_id = ? AND device_id = ?",
                (chat_id, device_id),
            )
        logger.info(
            "chat_deleted",
            chat_id=chat_id,
            device_id=device_id,
            messages_deleted=messages,
        )

    # ----------------------------------------------------------------- messages

    def store_message(self, message: Message) -> bool:
        """Insert or update a message.

        Messages with neither text nor media are dropped silently.

        Returns:
            True if stored, False if dropped

        Raises:
            RepositoryError: On storage errors
        """
        if not message.is_storable:
            logger.debug(
                "message_dropped_empty",
                message_id=message.message_id,
                chat_id=message.chat_id,
            )
            return False

        with self._pool.transaction() as conn:
            execute(
                conn,
                self._dialect,
                UPSERT_MESSAGE_SQL,
                self._message_values(message, utc_now()),
            )
        return True

    def store_messages_batch(self, messages: list[Message]) -> int:
        """Upsert messages in a single transaction.

        Returns:
            Number of messages stored (empty ones are skipped)
        """
        now = utc_now()
        rows = [self._message_values(m, now) for m in messages if m.is_storable]
        if not rows:
            return 0

        with self._pool.transaction() as conn:
            execute_many(conn, self._dialect, UPSERT_MESSAGE_SQL, rows)

        logger.info(
            "messages_batch_stored", stored=len(rows), skipped=len(messages) - len(rows)
        )
        return len(rows)

    def get_message_by_id(self, message_id: str) -> Message | None:
        """Get a message by id, or None."""
        row = self._query_one(
            f"SELECT {MESSAGE_COLUMNS} FROM messages WHERE message_id = ? LIMIT 1",
            (message_id,),
        )
        return self._row_to_message(row) if row else None

    def get_messages(self, message_filter: MessageFilter) -> list[Message]:
        """List messages of one chat on one device, newest first."""
        query = (
            f"SELECT {MESSAGE_COLUMNS} FROM messages "
            "WHERE chat_id = ? AND device_id = ? ORDER BY timestamp DESC"
        )
        params: list[Any] = [message_filter.chat_id, message_filter.device_id]
        if message_filter.limit and message_filter.limit > 0:
            query += " LIMIT ?"
            params.append(message_filter.limit)
        return [self._row_to_message(row) for row in self._query(query, tuple(params))]

    def search_messages(
        self, device_id: str, chat_id: str, search_text: str, limit: int = 0
    ) -> list[Message]:
        """Case-insensitive substring search over a chat's message content."""
        query = (
            f"SELECT {MESSAGE_COLUMNS} FROM messages "
            "WHERE chat_id = ? AND device_id = ? "
            f"AND LOWER(content) LIKE ? ESCAPE '{LIKE_ESCAPE_CHAR}' "
            "ORDER BY timestamp DESC"
        )
        params: list[Any] = [chat_id, device_id, _contains_pattern(search_text)]
        if limit > 0:
            query += " LIMIT ?"
            params.append(limit)
        return [self._row_to_message(row) for row in self._query(query, tuple(params))]

    def delete_message(
        self, message_id: str, chat_id: str, device_id: str | None = None
    ) -> None:
        """Delete one message; scoped to a device when device_id is given."""
        query = "DELETE FROM messages WHERE message_id = ? AND chat_id = ?"
        params: tuple[Any, ...] = (message_id, chat_id)
        if device_id is not None:
            query += " AND device_id = ?"
            params += (device_id,)

        with self._pool.transaction() as conn:
            deleted = execute(conn, self._dialect, query, params)
        logger.debug(
            "message_deleted", message_id=message_id, chat_id=chat_id, deleted=deleted
        )

    # ------------------------------------------------------------------ devices

    def save_device_record(self, record: DeviceRecord) -> None:
        """Insert or update a device record."""
        now = utc_now()
        with self._pool.transaction() as conn:
            execute(
                conn,
                self._dialect,
                UPSERT_DEVICE_SQL,
                (
                    record.device_id,
                    record.display_name,
                    record.chat_namespace_id,
                    self._ts(now),
                    self._ts(now),
                ),
            )
        logger.info("device_record_saved", device_id=record.device_id)

    def get_device_record(self, device_id: str) -> DeviceRecord | None:
        """Get a device record, or None."""
        row = self._query_one(
            f"SELECT {DEVICE_COLUMNS} FROM devices WHERE device_id = ? LIMIT 1",
            (device_id,),
        )
        return self._row_to_device(row) if row else None

    def list_device_records(self) -> list[DeviceRecord]:
        """All device records, oldest first."""
        rows = self._query(
            f"SELECT {DEVICE_COLUMNS} FROM devices ORDER BY created_at ASC, device_id"
        )
        return [self._row_to_device(row) for row in rows]

    def delete_device_record(self, device_id: str) -> None:
        """Delete a device record (its chats and messages are left untouched)."""
        with self._pool.transaction() as conn:
            execute(
                conn,
                self._dialect,
                "DELETE FROM devices WHERE device_id = ?",
                (device_id,),
            )
        logger.info("device_record_deleted", device_id=device_id)

    def delete_device_data(self, device_id: str) -> None:
        """Delete every message and chat of a device in one transaction.

        Raises:
            ValidationError: If device_id is empty
            RepositoryError: On storage errors
        """
        if not device_id:
            raise ValidationError("device_id is required")

        with self._pool.transaction() as conn:
            messages = execute(
                conn,
                self._dialect,
                "DELETE FROM messages WHERE device_id = ?",
                (device_id,),
            )
            chats = execute(
                conn,
                self._dialect,
                "DELETE FROM chats WHERE device_id = ?",
                (device_id,),
            )
        logger.info(
            "device_data_deleted",
            device_id=device_id,
            messages_deleted=messages,
            chats_deleted=chats,
        )

    # --------------------------------------------------------------- statistics

    def get_chat_message_count(self, chat_id: str, device_id: str | None = None) -> int:
        """Number of messages in a chat (on one device when given)."""
        query = "SELECT COUNT(*) AS total FROM messages WHERE chat_id = ?"
        params: tuple[Any, ...] = (chat_id,)
        if device_id is not None:
            query += " AND device_id = ?"
            params += (device_id,)
        return self._count(query, params)

    def get_total_message_count(self) -> int:
        return self._count("SELECT COUNT(*) AS total FROM messages")

    def get_total_chat_count(self) -> int:
        return self._count("SELECT COUNT(*) AS total FROM chats")

    def get_storage_statistics(self) -> StorageStatistics:
        """Chat and message counts taken by one statement, so from one snapshot."""
        row = self._query_one(STORAGE_STATISTICS_SQL) or {}
        return StorageStatistics(
            chat_count=int(row.get("chat_count") or 0),
            message_count=int(row.get("message_count") or 0),
        )

    def truncate_all_chats(self) -> None:
        """Delete every message and chat in one transaction."""
        with self._pool.transaction() as conn:
            execute(conn, self._dialect, "DELETE FROM messages")
            execute(conn, self._dialect, "DELETE FROM chats")

    def truncate_all_data(self, reason: str) -> StorageStatistics:
        """Truncate chats and messages with before/after statistics in the log.

        Returns:
            Statistics as they were before truncation
        """
        before = self.get_storage_statistics()
        logger.warning(
            "chat_storage_truncate_started",
            reason=reason,
            chats=before.chat_count,
            messages=before.message_count,
        )
        self.truncate_all_chats()
        after = self.get_storage_statistics()
        logger.warning(
            "chat_storage_truncate_completed",
            reason=reason,
            chats=after.chat_count,
            messages=after.message_count,
        )
        return before

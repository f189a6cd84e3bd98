"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
from collections.abc import Generator
from datetime import datetime
from pathlib import Path

import pytest
import pytz

from chat_storage.adapters.repository_factory import create_connection_pool
from chat_storage.adapters.sql_execution import execute
from chat_storage.adapters.sql_repository import SQLChatStorageRepository
from chat_storage.config.settings import Settings
from chat_storage.domain.models import Chat, MediaDescriptor, Message

POSTGRES_TEST_TABLES = ("messages", "chats", "devices", "schema_version")


@pytest.fixture
def settings(
    tmp_path_factory: pytest.TempPathFactory, request: pytest.FixtureRequest
) -> Settings:
    """Create settings configured for the requested database backend."""

    base_settings = Settings()

    if request.node.get_closest_marker("postgres"):
        if os.environ.get("TEST_POSTGRES", "0") != "1":
            pytest.skip("PostgreSQL tests disabled (TEST_POSTGRES!=1)")
        if not os.environ.get("POSTGRES_PASSWORD"):
            pytest.skip("POSTGRES_PASSWORD not set for PostgreSQL tests")
        return base_settings.model_copy(
            update={
                "database_type": "postgres",
                "chat_storage_uri": None,
                "postgres_host": os.environ.get("POSTGRES_HOST", "localhost"),
                "postgres_port": int(os.environ.get("POSTGRES_PORT", "5432")),
                "postgres_database": os.environ.get(
                    "POSTGRES_DATABASE", "chat_storage_test"
                ),
                "postgres_user": os.environ.get("POSTGRES_USER", "postgres"),
            }
        )

    temp_dir = tmp_path_factory.mktemp("db")
    db_path = temp_dir / "chatstorage.db"
    return base_settings.model_copy(
        update={
            "database_type": "sqlite",
            "db_path": str(db_path),
            "chat_storage_uri": None,
        }
    )


@pytest.fixture
def pool(settings: Settings):
    """Connection pool for the configured backend, starting from an empty schema."""

    connection_pool = create_connection_pool(settings)
    if settings.database_type == "postgres":
        with connection_pool.transaction() as conn:
            for table in POSTGRES_TEST_TABLES:
                execute(conn, connection_pool.dialect, f"DROP TABLE IF EXISTS {table}")

    try:
        yield connection_pool
    finally:
        connection_pool.close()


@pytest.fixture
def repo(pool) -> Generator[SQLChatStorageRepository, None, None]:
    """Provide a migrated repository for the configured backend."""

    repository = SQLChatStorageRepository(pool)
    repository.initialize_schema()
    yield repository


@pytest.fixture
def sqlite_db_path(settings: Settings) -> Path:
    """Database file behind the SQLite settings."""
    return Path(settings.db_path)


@pytest.fixture
def base_time() -> datetime:
    return datetime(2025, 10, 10, 10, 0, tzinfo=pytz.UTC)


@pytest.fixture
def sample_chat(base_time: datetime) -> Chat:
    """Sample chat on device dev1."""
    return Chat(
        chat_id="628123456789@s.whatsapp.net",
        device_id="dev1",
        name="Alice",
        last_message_time=base_time,
    )


@pytest.fixture
def sample_message(base_time: datetime) -> Message:
    """Sample text message in the sample chat."""
    return Message(
        message_id="3EB0C767D26A1D5C2C41",
        chat_id="628123456789@s.whatsapp.net",
        device_id="dev1",
        sender="628123456789@s.whatsapp.net",
        content="Hello World",
        timestamp=base_time,
    )


@pytest.fixture
def sample_media() -> MediaDescriptor:
    """Sample image descriptor."""
    return MediaDescriptor(
        kind="image",
        filename="photo.jpg",
        url="https://mmg.whatsapp.net/v/t62.7118-24/photo.enc",
        media_key=b"\x01\x02\x03\x04" * 8,
        content_hash=b"\xaa" * 32,
        encrypted_content_hash=b"\xbb" * 32,
        byte_length=48213,
    )


def make_message(
    message_id: str,
    timestamp: datetime,
    content: str = "hi",
    chat_id: str = "628123456789@s.whatsapp.net",
    device_id: str = "dev1",
    media: MediaDescriptor | None = None,
) -> Message:
    """Helper to create a message with sensible defaults."""
    return Message(
        message_id=message_id,
        chat_id=chat_id,
        device_id=device_id,
        sender=chat_id,
        content=content,
        timestamp=timestamp,
        media=media,
    )

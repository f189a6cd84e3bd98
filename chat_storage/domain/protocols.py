"""Protocol definitions for dependency inversion.

These abstract interfaces define contracts between the storage engine and its
collaborators (protocol client, device manager, upper service layers).
"""

from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol

from chat_storage.domain.models import (
    Chat,
    ChatFilter,
    DeviceRecord,
    Message,
    MessageFilter,
    StorageStatistics,
)

if TYPE_CHECKING:
    from chat_storage.adapters.dialect import SQLDialect


class ProtocolSession(Protocol):
    """Active protocol session able to resolve alias identifiers."""

    def normalize_chat_id(self, chat_id: str) -> str:
        """Return the canonical form of an alias-form chat identifier."""
        ...


class DeviceResolver(Protocol):
    """Resolves the device the current call is acting for."""

    def active_device_id(self) -> str:
        """Return the active device identifier ('' when unknown)."""
        ...


class ConnectionPool(Protocol):
    """Source of DB-API connections for one configured dialect."""

    dialect: "SQLDialect"

    def connection(self) -> AbstractContextManager[Any]:
        """Borrow a connection; driver errors leave the scope as RepositoryError."""
        ...

    def transaction(self) -> AbstractContextManager[Any]:
        """Borrow a connection whose statements commit together or not at all."""
        ...

    def close(self) -> None:
        """Release every pooled connection."""
        ...


class ChatStorageRepositoryProtocol(Protocol):
    """Protocol for chat storage operations exposed to upper layers."""

    def initialize_schema(self) -> int:
        """Apply pending migrations; returns the number applied.

        Raises:
            MigrationError: If a migration step fails
        """
        ...

    def store_chat(self, chat: Chat) -> None:
        """Insert or update a chat keyed by (chat_id, device_id)."""
        ...

    def get_chat(self, chat_id: str) -> Chat | None:
        """Get a chat by id on any device."""
        ...

    def get_chat_by_device(self, device_id: str, chat_id: str) -> Chat | None:
        """Get a chat by id for one device."""
        ...

    def get_chats(self, chat_filter: ChatFilter) -> list[Chat]:
        """List chats, most recent activity first."""
        ...

    def delete_chat(self, chat_id: str) -> None:
        """Delete a chat and its messages on every device atomically."""
        ...

    def delete_chat_by_device(self, device_id: str, chat_id: str) -> None:
        """Delete a chat and its messages for one device atomically."""
        ...

    def store_message(self, message: Message) -> bool:
        """Insert or update a message; returns False when dropped as empty."""
        ...

    def store_messages_batch(self, messages: list[Message]) -> int:
        """Upsert many messages in one transaction; returns the number stored."""
        ...

    def get_message_by_id(self, message_id: str) -> Message | None:
        """Get a message by id."""
        ...

    def get_messages(self, message_filter: MessageFilter) -> list[Message]:
        """List a chat's messages, newest first."""
        ...

    def search_messages(
        self, device_id: str, chat_id: str, search_text: str, limit: int = 0
    ) -> list[Message]:
        """Case-insensitive substring search over message content."""
        ...

    def delete_message(
        self, message_id: str, chat_id: str, device_id: str | None = None
    ) -> None:
        """Delete a single message."""
        ...

    def save_device_record(self, record: DeviceRecord) -> None:
        """Insert or update a device record."""
        ...

    def get_device_record(self, device_id: str) -> DeviceRecord | None:
        """Get a device record."""
        ...

    def list_device_records(self) -> list[DeviceRecord]:
        """List device records, oldest first."""
        ...

    def delete_device_record(self, device_id: str) -> None:
        """Delete a device record."""
        ...

    def delete_device_data(self, device_id: str) -> None:
        """Delete every chat and message of a device atomically.

        Raises:
            ValidationError: If device_id is empty
        """
        ...

    def get_chat_message_count(self, chat_id: str, device_id: str | None = None) -> int:
        """Count messages of a chat."""
        ...

    def get_total_message_count(self) -> int:
        """Count all messages."""
        ...

    def get_total_chat_count(self) -> int:
        """Count all chats."""
        ...

    def get_storage_statistics(self) -> StorageStatistics:
        """Chat and message counts."""
        ...

    def truncate_all_chats(self) -> None:
        """Delete all chats and messages atomically."""
        ...

    def truncate_all_data(self, reason: str) -> StorageStatistics:
        """Truncate chats and messages, logging statistics before and after."""
        ...

    def close(self) -> None:
        """Release pooled connections."""
        ...

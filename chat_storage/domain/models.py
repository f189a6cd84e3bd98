"""Domain models for the chat storage engine.

All models use Pydantic v2 for validation and serialization.
"""

from datetime import datetime
from typing import Any

import pytz
from pydantic import BaseModel, Field, field_validator


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return a timezone-aware UTC datetime (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=pytz.UTC)
    return value.astimezone(pytz.UTC)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(tz=pytz.UTC)


class MediaDescriptor(BaseModel):
    """Metadata describing an out-of-band media payload (no payload bytes)."""

    kind: str = Field(
        ..., description="Media kind (image, video, audio, document, sticker)"
    )
    filename: str = Field(default="", description="Original or derived file name")
    url: str = Field(default="", description="Retrieval URL of the encrypted payload")
    media_key: bytes | None = Field(default=None, description="Decryption key bytes")
    content_hash: bytes | None = Field(
        default=None, description="Hash of the decrypted content"
    )
    encrypted_content_hash: bytes | None = Field(
        default=None, description="Hash of the encrypted content"
    )
    byte_length: int = Field(default=0, ge=0, description="Payload length in bytes")


class Chat(BaseModel):
    """Conversation row, unique per (chat_id, device_id)."""

    chat_id: str = Field(..., description="Canonical chat identifier")
    device_id: str = Field(default="", description="Owning device identifier")
    name: str = Field(default="", description="Display name")
    last_message_time: datetime | None = Field(
        default=None, description="Timestamp of the latest message"
    )
    ephemeral_expiration: int = Field(
        default=0, ge=0, description="Disappearing-message timer in seconds (0 = off)"
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("last_message_time", "created_at", "updated_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class Message(BaseModel):
    """Message row, unique per (message_id, chat_id, device_id)."""

    message_id: str = Field(..., description="Protocol message identifier")
    chat_id: str = Field(..., description="Canonical chat identifier")
    device_id: str = Field(default="", description="Owning device identifier")
    sender: str = Field(default="", description="Sender identifier")
    content: str = Field(default="", description="Plain-text content")
    timestamp: datetime = Field(..., description="Send timestamp (UTC)")
    is_from_me: bool = Field(default=False, description="Sent by the local device")
    media: MediaDescriptor | None = Field(default=None, description="Attached media")
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("timestamp", "created_at", "updated_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def media_kind(self) -> str:
        """Media kind or empty string when the message carries no media."""
        return self.media.kind if self.media else ""

    @property
    def is_storable(self) -> bool:
        """Messages without text and without media are never persisted."""
        return bool(self.content) or bool(self.media_kind)


class DeviceRecord(BaseModel):
    """Linked device, one row per device_id."""

    device_id: str = Field(..., description="Device identifier")
    display_name: str = Field(default="", description="Human readable device name")
    chat_namespace_id: str = Field(
        default="", description="Chat namespace (account identifier) of the device"
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class ChatFilter(BaseModel):
    """Filter for chat listings."""

    search_name: str = Field(
        default="", description="Case-insensitive substring match on chat name"
    )
    device_id: str = Field(default="", description="Restrict to one device")
    limit: int | None = Field(default=None, description="Result cap (None/<=0 = all)")


class MessageFilter(BaseModel):
    """Filter for message listings within one chat."""

    chat_id: str
    device_id: str = ""
    limit: int | None = Field(default=None, description="Result cap (None/<=0 = all)")


class MessageEvent(BaseModel):
    """Inbound message notification produced by the protocol client."""

    message_id: str
    chat_id: str = Field(..., description="Chat identifier, possibly alias-form")
    sender: str = Field(default="", description="Sender identifier")
    timestamp: datetime
    is_from_me: bool = False
    push_name: str = Field(default="", description="Sender-provided display name")
    payload: dict[str, Any] = Field(
        default_factory=dict, description="Raw protocol message payload"
    )

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)  # type: ignore[return-value]


class StorageStatistics(BaseModel):
    """Row counts across the chat storage."""

    chat_count: int
    message_count: int

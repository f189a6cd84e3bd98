"""Extract displayable text and media metadata from raw protocol payloads.

Payloads are the protocol client's message structures rendered as plain
dictionaries (camelCase keys). Binary fields may arrive as bytes or as
base64 strings.
"""

import base64
import binascii
from typing import Any, Final

from chat_storage.config.logging_config import get_logger
from chat_storage.domain.models import MediaDescriptor

logger = get_logger(__name__)

# Payload key -> stored media kind, checked in this order
MEDIA_MESSAGE_KINDS: Final[tuple[tuple[str, str], ...]] = (
    ("imageMessage", "image"),
    ("videoMessage", "video"),
    ("audioMessage", "audio"),
    ("documentMessage", "document"),
    ("stickerMessage", "sticker"),
)

# Wrappers whose inner "message" carries the real content
WRAPPER_KEYS: Final[tuple[str, ...]] = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "documentWithCaptionMessage",
)

DEFAULT_EXTENSIONS: Final[dict[str, str]] = {
    "image": "jpg",
    "video": "mp4",
    "audio": "ogg",
    "document": "bin",
    "sticker": "webp",
}


def _unwrap(payload: dict[str, Any]) -> dict[str, Any]:
    """Strip ephemeral/view-once wrappers."""
    current = payload
    while True:
        for key in WRAPPER_KEYS:
            wrapper = current.get(key)
            if isinstance(wrapper, dict) and isinstance(wrapper.get("message"), dict):
                current = wrapper["message"]
                break
        else:
            return current


def _decode_bytes(value: Any) -> bytes | None:
    if value is None or value == "":
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("media_field_not_base64", length=len(value))
            return None
    return None


def _as_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def extract_message_text(payload: dict[str, Any] | None) -> str:
    """Return the plain-text content of a payload ('' when none).

    Checks plain conversation text, extended text, then media captions.
    """
    if not payload:
        return ""
    message = _unwrap(payload)

    conversation = message.get("conversation")
    if isinstance(conversation, str) and conversation:
        return conversation

    extended = message.get("extendedTextMessage")
    if isinstance(extended, dict):
        text = extended.get("text")
        if isinstance(text, str) and text:
            return text

    for key, _kind in MEDIA_MESSAGE_KINDS:
        media = message.get(key)
        if isinstance(media, dict):
            caption = media.get("caption")
            if isinstance(caption, str) and caption:
                return caption

    return ""


def extract_media_info(payload: dict[str, Any] | None) -> MediaDescriptor | None:
    """Return a media descriptor for the first media block, or None."""
    if not payload:
        return None
    message = _unwrap(payload)

    for key, kind in MEDIA_MESSAGE_KINDS:
        media = message.get(key)
        if not isinstance(media, dict):
            continue

        content_hash = _decode_bytes(media.get("fileSha256"))
        filename = media.get("fileName") or media.get("title") or ""
        if not filename and content_hash:
            filename = f"{content_hash.hex()[:16]}.{DEFAULT_EXTENSIONS[kind]}"

        return MediaDescriptor(
            kind=kind,
            filename=str(filename),
            url=str(media.get("url") or ""),
            media_key=_decode_bytes(media.get("mediaKey")),
            content_hash=content_hash,
            encrypted_content_hash=_decode_bytes(media.get("fileEncSha256")),
            byte_length=_as_int(media.get("fileLength")),
        )

    return None

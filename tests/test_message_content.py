"""Tests for payload text and media extraction."""

import base64

import pytest

from chat_storage.services.message_content import (
    extract_media_info,
    extract_message_text,
)

SHA = b"\x11" * 32
ENC_SHA = b"\x22" * 32
MEDIA_KEY = b"\x33" * 32


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ({"conversation": "Hi"}, "Hi"),
        (
            {"extendedTextMessage": {"text": "See https://example.com"}},
            "See https://example.com",
        ),
        ({"imageMessage": {"caption": "Holiday"}}, "Holiday"),
        ({"ephemeralMessage": {"message": {"conversation": "Gone soon"}}}, "Gone soon"),
        ({"protocolMessage": {"type": 0}}, ""),
        ({}, ""),
        (None, ""),
    ],
)
def test_extract_message_text(payload, expected) -> None:
    assert extract_message_text(payload) == expected


def test_extract_media_info_image_with_base64_fields() -> None:
    payload = {
        "imageMessage": {
            "url": "https://mmg.whatsapp.net/photo.enc",
            "mediaKey": base64.b64encode(MEDIA_KEY).decode(),
            "fileSha256": base64.b64encode(SHA).decode(),
            "fileEncSha256": base64.b64encode(ENC_SHA).decode(),
            "fileLength": "48213",
        }
    }

    media = extract_media_info(payload)

    assert media is not None
    assert media.kind == "image"
    assert media.url == "https://mmg.whatsapp.net/photo.enc"
    assert media.media_key == MEDIA_KEY
    assert media.content_hash == SHA
    assert media.encrypted_content_hash == ENC_SHA
    assert media.byte_length == 48213
    assert media.filename == f"{SHA.hex()[:16]}.jpg"


def test_extract_media_info_document_keeps_file_name_and_raw_bytes() -> None:
    payload = {
        "documentWithCaptionMessage": {
            "message": {
                "documentMessage": {
                    "fileName": "report.pdf",
                    "mediaKey": MEDIA_KEY,
                    "fileLength": 1024,
                    "caption": "Q3",
                }
            }
        }
    }

    media = extract_media_info(payload)

    assert media.kind == "document"
    assert media.filename == "report.pdf"
    assert media.media_key == MEDIA_KEY
    assert media.content_hash is None
    assert extract_message_text(payload) == "Q3"


def test_extract_media_info_ignores_invalid_values() -> None:
    media = extract_media_info(
        {"audioMessage": {"mediaKey": "not base64!!", "fileLength": "n/a"}}
    )

    assert media.kind == "audio"
    assert media.media_key is None
    assert media.byte_length == 0


def test_text_only_payload_has_no_media() -> None:
    assert extract_media_info({"conversation": "Hi"}) is None
    assert extract_media_info(None) is None

"""Tests for chat identifier helpers."""

from unittest.mock import Mock

import pytest

from chat_storage.services.identifiers import (
    canonical_chat_id,
    is_alias_identifier,
    local_part,
)


@pytest.mark.parametrize(
    ("chat_id", "expected"),
    [
        ("alias:42", True),
        ("123456@lid", True),
        ("628123@s.whatsapp.net", False),
        ("120363@g.us", False),
        ("lid", False),
    ],
)
def test_is_alias_identifier(chat_id: str, expected: bool) -> None:
    assert is_alias_identifier(chat_id) is expected


@pytest.mark.parametrize(
    ("chat_id", "expected"),
    [
        ("628123@s.whatsapp.net", "628123"),
        ("628123:5@s.whatsapp.net", "628123"),
        ("120363@g.us", "120363"),
        ("alias:42", "42"),
        ("plain", "plain"),
    ],
)
def test_local_part(chat_id: str, expected: str) -> None:
    assert local_part(chat_id) == expected


def test_canonical_chat_id_resolves_aliases_only() -> None:
    session = Mock()
    session.normalize_chat_id.return_value = "628123@s.whatsapp.net"

    assert canonical_chat_id("alias:42", session) == "628123@s.whatsapp.net"
    assert canonical_chat_id("999@s.whatsapp.net", session) == "999@s.whatsapp.net"
    session.normalize_chat_id.assert_called_once_with("alias:42")


def test_canonical_chat_id_without_session_keeps_id() -> None:
    assert canonical_chat_id("123@lid", None) == "123@lid"

"""Tests for the message event ingestion use case."""

from datetime import datetime
from unittest.mock import Mock

import pytest
import pytz

from chat_storage.domain.exceptions import RepositoryError
from chat_storage.domain.models import MessageEvent
from chat_storage.use_cases.ingest_message_event import MessageEventIngestor

EVENT_TIME = datetime(2025, 10, 10, 12, 30, tzinfo=pytz.UTC)
CANONICAL_ID = "628123456789@s.whatsapp.net"


@pytest.fixture
def device_resolver() -> Mock:
    resolver = Mock()
    resolver.active_device_id.return_value = "dev1"
    return resolver


@pytest.fixture
def session() -> Mock:
    protocol_session = Mock()
    protocol_session.normalize_chat_id.return_value = CANONICAL_ID
    return protocol_session


def _event(**overrides) -> MessageEvent:
    data = {
        "message_id": "3EB0ABC",
        "chat_id": "alias:42",
        "sender": "alias:42",
        "timestamp": EVENT_TIME,
        "push_name": "Alice",
        "payload": {"conversation": "Hi"},
    }
    data.update(overrides)
    return MessageEvent(**data)


def test_ingest_alias_event_end_to_end(repo, device_resolver, session) -> None:
    ingestor = MessageEventIngestor(repo, device_resolver)

    stored = ingestor.ingest(_event(), session)

    assert stored is not None
    chat = repo.get_chat_by_device("dev1", CANONICAL_ID)
    assert chat.name == "Alice"
    assert chat.last_message_time == EVENT_TIME
    message = repo.get_message_by_id("3EB0ABC")
    assert (message.chat_id, message.device_id, message.content) == (
        CANONICAL_ID,
        "dev1",
        "Hi",
    )
    assert repo.get_chat("alias:42") is None


def test_ingest_falls_back_to_local_part_for_name(repo, device_resolver) -> None:
    ingestor = MessageEventIngestor(repo, device_resolver)

    ingestor.ingest(_event(chat_id=CANONICAL_ID, push_name=""))

    assert repo.get_chat(CANONICAL_ID).name == "628123456789"


def test_ingest_control_message_stores_chat_only(
    repo, device_resolver, session
) -> None:
    ingestor = MessageEventIngestor(repo, device_resolver)

    result = ingestor.ingest(
        _event(payload={"protocolMessage": {"type": "REVOKE"}}), session
    )

    assert result is None
    assert repo.get_chat(CANONICAL_ID) is not None
    assert repo.get_total_message_count() == 0


def test_ingest_media_message(repo, device_resolver, session) -> None:
    ingestor = MessageEventIngestor(repo, device_resolver)
    payload = {
        "imageMessage": {"url": "https://mmg.whatsapp.net/x.enc", "fileLength": 10}
    }

    stored = ingestor.ingest(_event(payload=payload), session)

    assert stored.content == ""
    assert repo.get_message_by_id("3EB0ABC").media_kind == "image"


def test_ingest_propagates_repository_errors(device_resolver, session) -> None:
    repository = Mock()
    repository.store_chat.side_effect = RepositoryError("database is locked")
    ingestor = MessageEventIngestor(repository, device_resolver)

    with pytest.raises(RepositoryError):
        ingestor.ingest(_event(), session)

    repository.store_message.assert_not_called()


def test_record_sent_message(repo, device_resolver) -> None:
    ingestor = MessageEventIngestor(repo, device_resolver)

    stored = ingestor.record_sent_message(
        "3EB0SENT", "me@s.whatsapp.net", CANONICAL_ID, "On my way", EVENT_TIME
    )

    assert stored.is_from_me is True
    assert repo.get_chat_by_device("dev1", CANONICAL_ID).name == "628123456789"
    assert repo.get_message_by_id("3EB0SENT").is_from_me is True


def test_record_sent_message_with_empty_content(repo, device_resolver) -> None:
    ingestor = MessageEventIngestor(repo, device_resolver)

    assert (
        ingestor.record_sent_message("x", "me", CANONICAL_ID, "", EVENT_TIME) is None
    )
    assert repo.get_total_message_count() == 0

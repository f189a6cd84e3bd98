"""Ingest message events use case.

Turns inbound protocol message notifications into chat and message rows.
"""

from datetime import datetime

from chat_storage.config.logging_config import get_logger
from chat_storage.domain.models import Chat, Message, MessageEvent
from chat_storage.domain.protocols import (
    ChatStorageRepositoryProtocol,
    DeviceResolver,
    ProtocolSession,
)
from chat_storage.services.identifiers import canonical_chat_id, local_part
from chat_storage.services.message_content import (
    extract_media_info,
    extract_message_text,
)

logger = get_logger(__name__)


class MessageEventIngestor:
    """Writes received and sent messages through the chat storage repository."""

    def __init__(
        self,
        repository: ChatStorageRepositoryProtocol,
        device_resolver: DeviceResolver,
    ) -> None:
        """Initialize ingestor.

        Args:
            repository: Chat storage repository
            device_resolver: Source of the device the current call acts for
        """
        self.repository = repository
        self.device_resolver = device_resolver

    def ingest(
        self, event: MessageEvent, session: ProtocolSession | None = None
    ) -> Message | None:
        """Store the chat and message carried by an inbound event.

        Args:
            event: Message notification from the protocol client
            session: Active protocol session, used to resolve alias chat ids

        Returns:
            Stored message, or None when the event had nothing displayable

        Raises:
            RepositoryError: On storage errors (no retries here)
        """
        device_id = self.device_resolver.active_device_id()
        chat_id = canonical_chat_id(event.chat_id, session)

        self.repository.store_chat(
            Chat(
                chat_id=chat_id,
                device_id=device_id,
                name=event.push_name or local_part(chat_id),
                last_message_time=event.timestamp,
            )
        )

        message = Message(
            message_id=event.message_id,
            chat_id=chat_id,
            device_id=device_id,
            sender=event.sender,
            content=extract_message_text(event.payload),
            timestamp=event.timestamp,
            is_from_me=event.is_from_me,
            media=extract_media_info(event.payload),
        )
        if not message.is_storable:
            logger.debug(
                "message_event_skipped_empty",
                message_id=event.message_id,
                chat_id=chat_id,
                device_id=device_id,
            )
            return None

        self.repository.store_message(message)
        logger.debug(
            "message_event_ingested",
            message_id=message.message_id,
            chat_id=chat_id,
            device_id=device_id,
            media_kind=message.media_kind or None,
        )
        return message

    def record_sent_message(
        self,
        message_id: str,
        sender: str,
        recipient: str,
        content: str,
        timestamp: datetime,
    ) -> Message | None:
        """Store a message sent from the active device.

        The recipient chat is upserted first, named after its local part.

        Returns:
            Stored message, or None when content is empty
        """
        device_id = self.device_resolver.active_device_id()

        self.repository.store_chat(
            Chat(
                chat_id=recipient,
                device_id=device_id,
                name=local_part(recipient),
                last_message_time=timestamp,
            )
        )

        message = Message(
            message_id=message_id,
            chat_id=recipient,
            device_id=device_id,
            sender=sender,
            content=content,
            timestamp=timestamp,
            is_from_me=True,
        )
        if not self.repository.store_message(message):
            return None

        logger.info(
            "sent_message_recorded",
            message_id=message_id,
            chat_id=recipient,
            device_id=device_id,
        )
        return message

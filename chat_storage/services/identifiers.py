"""Chat identifier helpers."""

from typing import Final

from chat_storage.domain.protocols import ProtocolSession

ALIAS_PREFIX: Final[str] = "alias:"
ALIAS_SERVER: Final[str] = "lid"


def is_alias_identifier(chat_id: str) -> bool:
    """True for ids that must be resolved against the protocol session.

    Example:
        >>> is_alias_identifier("alias:42")
        True
        >>> is_alias_identifier("123@lid")
        True
        >>> is_alias_identifier("123@s.whatsapp.net")
        False
    """
    if chat_id.startswith(ALIAS_PREFIX):
        return True
    _, sep, server = chat_id.partition("@")
    return bool(sep) and server == ALIAS_SERVER


def local_part(chat_id: str) -> str:
    """User portion of an identifier: before '@', then before any device suffix ':'.

    Example:
        >>> local_part("628123:5@s.whatsapp.net")
        '628123'
    """
    if chat_id.startswith(ALIAS_PREFIX):
        chat_id = chat_id[len(ALIAS_PREFIX) :]
    return chat_id.split("@", 1)[0].split(":", 1)[0]


def canonical_chat_id(chat_id: str, session: ProtocolSession | None) -> str:
    """Resolve alias-form ids through the session; other ids are returned as is."""
    if session is None or not is_alias_identifier(chat_id):
        return chat_id
    return session.normalize_chat_id(chat_id) or chat_id

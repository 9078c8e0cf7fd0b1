"""Conversation keys: sorted participant pair for direct chats, prefixed id for groups."""
from __future__ import annotations

from chatcore.core.settings import settings
from chatcore.errors import InvalidParticipant, Unauthenticated

GROUP_PREFIX = "group:"


def _check_participant(user_id: str | None, separator: str) -> str:
    if user_id is None or not str(user_id).strip():
        raise InvalidParticipant("participant id is empty")
    user_id = str(user_id)
    if separator in user_id:
        raise InvalidParticipant(f"participant id may not contain {separator!r}")
    if user_id.startswith(GROUP_PREFIX):
        raise InvalidParticipant("participant id may not look like a group key")
    return user_id


def resolve_direct_key(current_user_id: str | None, peer_id: str | None, separator: str | None = None) -> str:
    sep = separator or settings.conversation_separator
    if not current_user_id:
        raise Unauthenticated("sign in to open a conversation")
    a = _check_participant(current_user_id, sep)
    b = _check_participant(peer_id, sep)
    if a == b:
        raise InvalidParticipant("cannot open a conversation with yourself")
    return sep.join(sorted((a, b)))


def resolve_group_key(group_id: str | None) -> str:
    if group_id is None or not str(group_id).strip():
        raise InvalidParticipant("group id is empty")
    return f"{GROUP_PREFIX}{group_id}"


def is_group_key(key: str) -> bool:
    return key.startswith(GROUP_PREFIX)


def group_id_of(key: str) -> str:
    if not is_group_key(key):
        raise InvalidParticipant(f"{key!r} is not a group conversation")
    return key[len(GROUP_PREFIX):]


def participants_of(key: str, separator: str | None = None) -> tuple[str, str]:
    """Split a direct key back into its two participant ids."""
    sep = separator or settings.conversation_separator
    if is_group_key(key):
        raise InvalidParticipant(f"{key!r} is a group conversation")
    parts = key.split(sep)
    if len(parts) != 2 or not all(parts):
        raise InvalidParticipant(f"malformed conversation key {key!r}")
    return parts[0], parts[1]

"""Import of group messages stored as an embedded array on the group record."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from chatcore.core.clock import as_utc
from chatcore.models import Message
from chatcore.services.identity import resolve_group_key
from chatcore.services.messages import MessageStore

logger = logging.getLogger(__name__)

# epoch values above this are milliseconds, below are seconds
_MILLIS_THRESHOLD = 10_000_000_000


@dataclass(frozen=True)
class EmbeddedMessage:
    id: str
    sender_id: str
    text: str
    created_at: datetime
    reply_to_message_id: str | None = None
    attachment: str | None = None


def parse_timestamp(value: Any) -> datetime | None:
    """Read a legacy timestamp; None when it is missing or unreadable."""
    try:
        return _parse_timestamp(value)
    except (ValueError, OverflowError, OSError, TypeError):
        return None


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, dict):
        if "seconds" in value:
            seconds = float(value["seconds"]) + float(value.get("nanoseconds", 0)) / 1e9
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > _MILLIS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    return None


def _millis(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


def _optional_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def normalize_embedded_messages(raw: Iterable[dict[str, Any]] | None) -> list[EmbeddedMessage]:
    """Sanitize and order a legacy embedded message array.

    Entries without a sender or a readable timestamp are dropped. Duplicate
    ids keep the first occurrence. Output is ordered by time, stable for
    equal timestamps.
    """
    out: list[EmbeddedMessage] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw or ()):
        if not isinstance(entry, dict):
            logger.warning("dropping embedded message %d: not a record", index)
            continue
        sender = entry.get("sender") or entry.get("senderId") or entry.get("sender_id")
        ts = parse_timestamp(entry.get("createdAt", entry.get("timestamp", entry.get("created_at"))))
        if not sender or ts is None:
            logger.warning("dropping embedded message %d: missing sender or timestamp", index)
            continue
        msg_id = str(entry.get("id") or _millis(ts))
        if msg_id in seen:
            continue
        seen.add(msg_id)
        out.append(EmbeddedMessage(
            id=msg_id,
            sender_id=str(sender),
            text=str(entry.get("text") or ""),
            created_at=ts,
            reply_to_message_id=_optional_id(entry.get("replyTo") or entry.get("reply_to_message_id")),
            attachment=entry.get("imageBase64") or entry.get("attachment"),
        ))
    return sorted(out, key=lambda m: m.created_at)


async def import_embedded(store: MessageStore, group_id: str, raw: Iterable[dict[str, Any]] | None) -> list[Message]:
    """Append a legacy embedded array to the group's per-message conversation.

    Legacy ids are replaced by fresh ones; replies are remapped when their
    target was imported in the same batch and dropped otherwise.
    """
    records = [m for m in normalize_embedded_messages(raw) if m.text.strip() or m.attachment]
    new_ids = {m.id: str(uuid.uuid4()) for m in records}
    rows = [
        Message(
            id=new_ids[m.id],
            sender_id=m.sender_id,
            text=m.text,
            created_at=m.created_at,
            is_read=None,
            reply_to_message_id=new_ids.get(m.reply_to_message_id) if m.reply_to_message_id else None,
            attachment=m.attachment,
        )
        for m in records
    ]
    return await store.insert_many(resolve_group_key(group_id), rows)

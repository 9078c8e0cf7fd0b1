"""Per-message store shared by direct and group conversations."""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Protocol, TypeVar

from sqlalchemy import delete, desc, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from chatcore.core.clock import utcnow
from chatcore.core.settings import settings
from chatcore.errors import EmptyMessage, MessageNotFound, NotRecipient, WriteConflict
from chatcore.models import Message
from chatcore.services.identity import is_group_key, participants_of

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Publisher(Protocol):
    async def publish(self, conversation_key: str) -> None: ...


@dataclass
class RetryPolicy:
    attempts: int = settings.write_retry_attempts
    backoff_seconds: float = settings.write_retry_backoff_seconds


class MessageStore:
    def __init__(
        self,
        session: AsyncSession,
        publisher: Publisher | None = None,
        clock: Callable[[], datetime] = utcnow,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.session = session
        self.publisher = publisher
        self.clock = clock
        self.retry = retry or RetryPolicy()

    async def _write(self, op: Callable[[], Awaitable[T]]) -> T:
        attempts = max(1, self.retry.attempts)
        for attempt in range(1, attempts + 1):
            try:
                return await op()
            except OperationalError as exc:
                await self.session.rollback()
                if attempt == attempts:
                    logger.error("write failed after %d attempts: %s", attempts, exc)
                    raise WriteConflict("the store rejected the write, try again") from exc
                delay = self.retry.backoff_seconds * attempt
                logger.warning("write attempt %d failed (%s), retrying in %.2fs", attempt, exc, delay)
                await asyncio.sleep(delay)
        raise AssertionError("unreachable")

    async def _publish(self, *keys: str) -> None:
        if self.publisher is None:
            return
        for key in dict.fromkeys(keys):
            try:
                await self.publisher.publish(key)
            except Exception:
                # the write is committed; subscribers catch up on the next change
                logger.exception("feed publish failed for %s", key)

    async def append(
        self,
        conversation_key: str,
        sender_id: str,
        text: str | None,
        reply_to_id: str | None = None,
        attachment: str | None = None,
        track_reads: bool = True,
    ) -> Message:
        text = text or ""
        if not text.strip() and not attachment:
            raise EmptyMessage("message has no text and no attachment")
        if reply_to_id is not None:
            target = await self.get(reply_to_id)
            if target.conversation_key != conversation_key:
                raise MessageNotFound(f"reply target {reply_to_id} is not in this conversation")

        async def op() -> Message:
            msg = Message(
                id=str(uuid.uuid4()),
                conversation_key=conversation_key,
                sender_id=sender_id,
                text=text,
                created_at=self.clock(),
                is_read=False if track_reads else None,
                reply_to_message_id=reply_to_id,
                attachment=attachment,
            )
            self.session.add(msg)
            await self.session.commit()
            return msg

        msg = await self._write(op)
        logger.info("message %s appended to %s by %s", msg.id, conversation_key, sender_id)
        await self._publish(conversation_key)
        return msg

    async def insert_many(self, conversation_key: str, messages: list[Message]) -> list[Message]:
        """Insert pre-built rows in one transaction, keeping their timestamps."""
        if not messages:
            return []

        async def op() -> list[Message]:
            for msg in messages:
                msg.conversation_key = conversation_key
                self.session.add(msg)
            await self.session.commit()
            return messages

        inserted = await self._write(op)
        logger.info("inserted %d message(s) into %s", len(inserted), conversation_key)
        await self._publish(conversation_key)
        return inserted

    async def get(self, message_id: str) -> Message:
        msg = (await self.session.execute(
            select(Message).where(Message.id == message_id).execution_options(populate_existing=True)
        )).scalar_one_or_none()
        if msg is None:
            raise MessageNotFound(f"message {message_id} not found")
        return msg

    async def list_ordered(self, conversation_key: str) -> list[Message]:
        res = await self.session.execute(
            select(Message)
            .where(Message.conversation_key == conversation_key)
            .order_by(Message.created_at.asc(), Message.seq.asc())
            .execution_options(populate_existing=True)
        )
        return list(res.scalars().all())

    async def list_all(self, limit: int = 500) -> list[Message]:
        res = await self.session.execute(
            select(Message)
            .order_by(desc(Message.created_at), desc(Message.seq))
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(res.scalars().all())

    def _check_reader(self, msg: Message, reader_id: str) -> None:
        if msg.sender_id == reader_id:
            raise NotRecipient("senders cannot mark their own messages read")
        if not is_group_key(msg.conversation_key) and reader_id not in participants_of(msg.conversation_key):
            raise NotRecipient("only the recipient can mark this message read")

    async def mark_read(self, message_id: str, reader_id: str) -> bool:
        """Flip ``is_read``. Returns False when nothing changed (already read, or a group message)."""
        msg = await self.get(message_id)
        self._check_reader(msg, reader_id)
        if msg.is_read is not False:
            return False

        async def op() -> int:
            res = await self.session.execute(
                update(Message)
                .where(Message.id == message_id, Message.is_read.is_(False))
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            return res.rowcount

        flipped = await self._write(op)
        await self.session.refresh(msg)
        if flipped:
            await self._publish(msg.conversation_key)
        return bool(flipped)

    async def mark_conversation_read(self, conversation_key: str, reader_id: str, only_ids: Iterable[str] | None = None) -> list[str]:
        """Mark every unread message from the other side read; returns the ids flipped."""
        if is_group_key(conversation_key):
            return []
        if reader_id not in participants_of(conversation_key):
            raise NotRecipient("only a participant can mark this conversation read")
        stmt = select(Message.id).where(
            Message.conversation_key == conversation_key,
            Message.sender_id != reader_id,
            Message.is_read.is_(False),
        )
        if only_ids is not None:
            wanted = list(only_ids)
            if not wanted:
                return []
            stmt = stmt.where(Message.id.in_(wanted))
        ids = list((await self.session.execute(stmt)).scalars().all())
        if not ids:
            return []

        async def op() -> None:
            await self.session.execute(
                update(Message)
                .where(Message.id.in_(ids), Message.is_read.is_(False))
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()

        await self._write(op)
        logger.info("%s marked %d message(s) read in %s", reader_id, len(ids), conversation_key)
        await self._publish(conversation_key)
        return ids

    async def delete(self, message_id: str) -> None:
        msg = await self.get(message_id)
        key = msg.conversation_key

        async def op() -> None:
            await self.session.execute(delete(Message).where(Message.id == message_id))
            await self.session.commit()

        await self._write(op)
        logger.info("message %s deleted from %s", message_id, key)
        await self._publish(key)

    async def delete_messages_by_sender(self, sender_id: str) -> int:
        """Delete everything ``sender_id`` ever sent, across all conversations."""
        keys = list((await self.session.execute(
            select(Message.conversation_key).where(Message.sender_id == sender_id).distinct()
        )).scalars().all())

        async def op() -> int:
            res = await self.session.execute(delete(Message).where(Message.sender_id == sender_id))
            await self.session.commit()
            return res.rowcount

        count = await self._write(op)
        logger.info("deleted %d message(s) sent by %s", count, sender_id)
        await self._publish(*keys)
        return count

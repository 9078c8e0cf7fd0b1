"""Live conversation feed: change notifications turned into full ordered snapshots."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncContextManager, AsyncIterator, Protocol

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatcore.models import Message
from chatcore.services.identity import is_group_key
from chatcore.services.messages import MessageStore

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "feed:"


class Listener(Protocol):
    async def wait(self) -> None: ...


class FeedBroker(Protocol):
    async def publish(self, conversation_key: str) -> None: ...

    def listen(self, conversation_key: str) -> AsyncContextManager[Listener]: ...


class _EventListener:
    def __init__(self) -> None:
        self.event = asyncio.Event()

    async def wait(self) -> None:
        await self.event.wait()
        self.event.clear()


class InMemoryBroker:
    """Single-process broker; one event per subscription."""

    def __init__(self) -> None:
        self._listeners: dict[str, set[_EventListener]] = {}

    async def publish(self, conversation_key: str) -> None:
        for listener in list(self._listeners.get(conversation_key, ())):
            listener.event.set()

    @asynccontextmanager
    async def listen(self, conversation_key: str) -> AsyncIterator[_EventListener]:
        listener = _EventListener()
        self._listeners.setdefault(conversation_key, set()).add(listener)
        try:
            yield listener
        finally:
            subs = self._listeners.get(conversation_key)
            if subs is not None:
                subs.discard(listener)
                if not subs:
                    self._listeners.pop(conversation_key, None)

    def subscriber_count(self, conversation_key: str) -> int:
        return len(self._listeners.get(conversation_key, ()))


class _PubSubListener:
    def __init__(self, pubsub) -> None:
        self.pubsub = pubsub

    async def wait(self) -> None:
        while await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=None) is None:
            pass
        # drain whatever else queued up; one snapshot covers it all
        while await self.pubsub.get_message(ignore_subscribe_messages=True, timeout=0) is not None:
            pass


class RedisBroker:
    """Cross-process broker over redis pub/sub, one channel per conversation."""

    def __init__(self, client: redis.Redis) -> None:
        self.redis = client

    async def publish(self, conversation_key: str) -> None:
        await self.redis.publish(CHANNEL_PREFIX + conversation_key, "changed")

    @asynccontextmanager
    async def listen(self, conversation_key: str) -> AsyncIterator[_PubSubListener]:
        channel = CHANNEL_PREFIX + conversation_key
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            yield _PubSubListener(pubsub)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()


@dataclass
class FeedSnapshot:
    conversation_key: str
    messages: list[Message] = field(default_factory=list)

    def digest(self) -> tuple:
        # only is_read is ever mutated in place
        return tuple((m.id, m.is_read) for m in self.messages)


class LiveFeed:
    def __init__(self, broker: FeedBroker, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self.broker = broker
        self.sessionmaker = sessionmaker

    async def snapshot(self, conversation_key: str) -> FeedSnapshot:
        async with self.sessionmaker() as session:
            messages = await MessageStore(session).list_ordered(conversation_key)
        return FeedSnapshot(conversation_key, messages)

    async def acknowledge(self, snap: FeedSnapshot, viewer_id: str, processed: set[str]) -> list[str]:
        """Mark the peer's unread messages in ``snap`` read, each id at most once per subscription."""
        if is_group_key(snap.conversation_key):
            return []
        pending = [m.id for m in snap.messages if m.sender_id != viewer_id and m.is_read is False and m.id not in processed]
        if not pending:
            return []
        processed.update(pending)
        async with self.sessionmaker() as session:
            store = MessageStore(session, publisher=self.broker)
            return await store.mark_conversation_read(snap.conversation_key, viewer_id, only_ids=pending)

    async def watch(self, conversation_key: str, viewer_id: str, mark_read: bool = True) -> AsyncIterator[FeedSnapshot]:
        processed: set[str] = set()
        last = None
        # subscribe before the first read so no change slips between them
        async with self.broker.listen(conversation_key) as listener:
            logger.info("%s subscribed to %s", viewer_id, conversation_key)
            try:
                while True:
                    snap = await self.snapshot(conversation_key)
                    digest = snap.digest()
                    if digest != last:
                        last = digest
                        yield snap
                        if mark_read:
                            await self.acknowledge(snap, viewer_id, processed)
                    await listener.wait()
            finally:
                logger.info("%s unsubscribed from %s", viewer_id, conversation_key)

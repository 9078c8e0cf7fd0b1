from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from chatcore.errors import InvalidParticipant, Unauthenticated
from chatcore.models import Group, GroupMember, Message, User
from chatcore.services.identity import resolve_direct_key

logger = logging.getLogger(__name__)

SortKey = Literal["name", "unread"]


@dataclass
class RosterEntry:
    user: User
    conversation_key: str
    unread_count: int = 0


@dataclass
class Roster:
    users: list[RosterEntry] = field(default_factory=list)
    groups: list[Group] = field(default_factory=list)


def sort_entries(entries: list[RosterEntry], sort: SortKey = "name", descending: bool = False) -> list[RosterEntry]:
    # sorted() is stable in both directions, so ties keep fetch order
    if sort == "name":
        return sorted(entries, key=lambda e: e.user.display_name, reverse=descending)
    if sort == "unread":
        return sorted(entries, key=lambda e: e.unread_count, reverse=descending)
    raise ValueError(f"unknown sort key {sort!r}")


async def unread_count(session: AsyncSession, current_user_id: str, peer_id: str) -> int:
    key = resolve_direct_key(current_user_id, peer_id)
    res = await session.execute(
        select(func.count(Message.seq)).where(
            Message.conversation_key == key,
            Message.sender_id != current_user_id,
            Message.is_read.is_(False),
        )
    )
    return int(res.scalar_one())


async def unread_counts(session: AsyncSession, current_user_id: str, keys: list[str]) -> dict[str, int]:
    if not keys:
        return {}
    res = await session.execute(
        select(Message.conversation_key, func.count(Message.seq))
        .where(
            Message.conversation_key.in_(keys),
            Message.sender_id != current_user_id,
            Message.is_read.is_(False),
        )
        .group_by(Message.conversation_key)
    )
    return {key: int(n) for key, n in res.all()}


async def visible_groups(session: AsyncSession, current_user_id: str) -> list[Group]:
    member_of = select(GroupMember.group_id).where(GroupMember.user_id == current_user_id)
    res = await session.execute(
        select(Group)
        .where((Group.creator_id == current_user_id) | Group.id.in_(member_of))
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    return list(res.scalars().all())


async def build_roster(session: AsyncSession, current_user_id: str | None, sort: SortKey = "name", descending: bool = False) -> Roster:
    if not current_user_id:
        raise Unauthenticated("sign in to see your conversations")
    users = (await session.execute(select(User).where(User.id != current_user_id).order_by(User.created_at.asc(), User.id.asc()))).scalars().all()
    entries: list[RosterEntry] = []
    for user in users:
        try:
            key = resolve_direct_key(current_user_id, user.id)
        except InvalidParticipant:
            logger.warning("skipping user with unusable id %r", user.id)
            continue
        entries.append(RosterEntry(user=user, conversation_key=key))
    counts = await unread_counts(session, current_user_id, [e.conversation_key for e in entries])
    for entry in entries:
        entry.unread_count = counts.get(entry.conversation_key, 0)
    return Roster(users=sort_entries(entries, sort, descending), groups=await visible_groups(session, current_user_id))

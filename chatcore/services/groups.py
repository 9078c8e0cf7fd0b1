from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from chatcore.core.clock import utcnow
from chatcore.errors import GroupNotFound, InvalidParticipant, NotAMember
from chatcore.models import Group, GroupMember, User
from chatcore.models.group import DEFAULT_GROUP_NAME
from chatcore.models.user import DEFAULT_DISPLAY_NAME

logger = logging.getLogger(__name__)


async def create_group(session: AsyncSession, creator_id: str, member_ids: list[str], name: str | None = None) -> Group:
    selected = [m for m in dict.fromkeys(member_ids) if m and m != creator_id]
    if not selected:
        raise InvalidParticipant("select at least one other member")
    group = Group(id=str(uuid.uuid4()), name=(name or "").strip() or DEFAULT_GROUP_NAME, creator_id=creator_id, created_at=utcnow())
    group.members = [GroupMember(user_id=uid, position=i) for i, uid in enumerate([creator_id, *selected])]
    session.add(group)
    await session.commit()
    logger.info("group %s created by %s with %d member(s)", group.id, creator_id, len(group.members))
    return group


async def get_group(session: AsyncSession, group_id: str) -> Group:
    group = (await session.execute(select(Group).where(Group.id == group_id))).scalar_one_or_none()
    if group is None:
        raise GroupNotFound(f"group {group_id} not found")
    return group


async def get_visible_group(session: AsyncSession, group_id: str, user_id: str) -> Group:
    group = await get_group(session, group_id)
    if not group.can_view(user_id):
        raise NotAMember("you are not in this group")
    return group


def require_member(group: Group, user_id: str) -> None:
    # the creator can see the group but only members can post
    if user_id not in group.member_ids:
        raise NotAMember("only members can send to this group")


async def member_names(session: AsyncSession, group: Group) -> list[tuple[str, str]]:
    ids = group.member_ids
    if not ids:
        return []
    res = await session.execute(select(User.id, User.display_name).where(User.id.in_(ids)))
    names = dict(res.all())
    return [(uid, names.get(uid) or DEFAULT_DISPLAY_NAME) for uid in ids]

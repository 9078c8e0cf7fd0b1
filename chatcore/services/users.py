from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from chatcore.core.clock import utcnow
from chatcore.errors import InvalidParticipant, UserNotFound
from chatcore.models import GroupMember, User
from chatcore.models.user import DEFAULT_DISPLAY_NAME, DEFAULT_PHOTO_URL, THEMES
from chatcore.services.auth import Identity
from chatcore.services.messages import MessageStore

logger = logging.getLogger(__name__)


async def upsert_user(session: AsyncSession, identity: Identity) -> User:
    """Mirror the signed-in identity; claims the provider left out keep their stored value."""
    now = utcnow()
    user = await session.get(User, identity.id)
    if user is None:
        user = User(
            id=identity.id,
            display_name=identity.display_name or DEFAULT_DISPLAY_NAME,
            photo_url=identity.photo_url or DEFAULT_PHOTO_URL,
            email=identity.email,
            theme_preference=THEMES[0],
            created_at=now,
            updated_at=now,
        )
        session.add(user)
        logger.info("user %s created on first sign-in", identity.id)
    else:
        if identity.display_name:
            user.display_name = identity.display_name
        if identity.photo_url:
            user.photo_url = identity.photo_url
        if identity.email:
            user.email = identity.email
        user.updated_at = now
    await session.commit()
    return user


async def get_user(session: AsyncSession, user_id: str) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise UserNotFound(f"user {user_id} not found")
    return user


async def list_users(session: AsyncSession) -> list[User]:
    res = await session.execute(select(User).order_by(User.created_at.asc(), User.id.asc()))
    return list(res.scalars().all())


async def set_theme(session: AsyncSession, user_id: str, theme: str) -> User:
    if theme not in THEMES:
        raise InvalidParticipant(f"unknown theme {theme!r}")
    user = await get_user(session, user_id)
    user.theme_preference = theme
    user.updated_at = utcnow()
    await session.commit()
    return user


async def delete_user(store: MessageStore, user_id: str) -> int:
    """Admin cascade: every message the user sent anywhere, their memberships, then the user."""
    session = store.session
    user = await get_user(session, user_id)
    removed = await store.delete_messages_by_sender(user_id)
    await session.execute(delete(GroupMember).where(GroupMember.user_id == user_id))
    await session.delete(user)
    await session.commit()
    logger.info("user %s deleted with %d message(s)", user_id, removed)
    return removed

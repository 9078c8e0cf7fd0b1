from __future__ import annotations

import uuid
from datetime import datetime
from sqlalchemy import DateTime, String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from chatcore.db.base import Base

DEFAULT_GROUP_NAME = "New Group"

class Group(Base):
    __tablename__ = "groups"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(200), nullable=False, default=DEFAULT_GROUP_NAME)
    # not a FK: a group survives its creator being deleted
    creator_id: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    members: Mapped[list["GroupMember"]] = relationship(
        back_populates="group", cascade="all, delete-orphan", lazy="selectin", order_by="GroupMember.position"
    )

    @property
    def member_ids(self) -> list[str]:
        return [m.user_id for m in self.members]

    def can_view(self, user_id: str) -> bool:
        return user_id == self.creator_id or user_id in self.member_ids

class GroupMember(Base):
    __tablename__ = "group_members"
    group_id: Mapped[str] = mapped_column(String(36), ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True, index=True)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    group: Mapped[Group] = relationship(back_populates="members")

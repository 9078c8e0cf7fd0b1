from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Any, Optional, Literal
from datetime import datetime

from chatcore.core.clock import as_utc

class UserOut(BaseModel):
    id: str
    display_name: str
    photo_url: str
    theme_preference: str

class MeOut(UserOut):
    email: Optional[str] = None

class ThemeIn(BaseModel):
    theme: Literal["love", "dark", "ocean", "forest", "sunset"]

class MessageIn(BaseModel):
    text: str = Field(default="", max_length=4000)
    reply_to_id: Optional[str] = None
    # raw image bytes, base64 (a data: URL is accepted too)
    attachment_b64: Optional[str] = None

class MessageOut(BaseModel):
    id: str
    conversation_key: str
    sender_id: str
    text: str
    created_at: datetime
    is_read: Optional[bool] = None
    reply_to_message_id: Optional[str] = None
    attachment: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("created_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)

class SendOut(BaseModel):
    message: MessageOut
    # set when an attachment could not be read and the text went alone
    attachment_dropped: bool = False

class ReadOut(BaseModel):
    ok: bool = True
    changed: bool

class GroupCreateIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    member_ids: list[str] = Field(min_length=1)

class GroupMemberOut(BaseModel):
    id: str
    display_name: str

class GroupOut(BaseModel):
    id: str
    name: str
    creator_id: str
    member_ids: list[str]
    created_at: datetime

    model_config = {"from_attributes": True}

class GroupDetailOut(GroupOut):
    members: list[GroupMemberOut]
    can_send: bool

class RosterUserOut(BaseModel):
    user: UserOut
    conversation_key: str
    unread_count: int

class RosterOut(BaseModel):
    users: list[RosterUserOut]
    groups: list[GroupOut]

class FeedInbound(BaseModel):
    """Client → server frame on the conversation socket."""
    type: str  # ping
    data: dict[str, Any] = {}

class LegacyImportIn(BaseModel):
    messages: list[dict[str, Any]]

def user_out(user) -> UserOut:
    return UserOut(id=user.id, display_name=user.display_name, photo_url=user.photo_url, theme_preference=user.theme_preference)

def group_out(group) -> GroupOut:
    return GroupOut(id=group.id, name=group.name, creator_id=group.creator_id, member_ids=group.member_ids, created_at=as_utc(group.created_at))

from __future__ import annotations

import uuid
from datetime import datetime
from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from chatcore.db.base import Base

class Message(Base):
    __tablename__ = "messages"
    # insertion order; breaks created_at ties
    seq: Mapped[int] = mapped_column(Integer(), primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, default=lambda: str(uuid.uuid4()))
    conversation_key: Mapped[str] = mapped_column(String(300), nullable=False)
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    text: Mapped[str] = mapped_column(Text(), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_read: Mapped[bool | None] = mapped_column(Boolean(), nullable=True)  # NULL for group messages
    reply_to_message_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    attachment: Mapped[str | None] = mapped_column(Text(), nullable=True)  # data URL

    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_key", "created_at", "seq"),
        Index("ix_messages_sender_id", "sender_id"),
    )

from __future__ import annotations
from datetime import datetime
from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from chatcore.db.base import Base

DEFAULT_DISPLAY_NAME = "Unknown User"
DEFAULT_PHOTO_URL = "/default-avatar.png"
THEMES = ("love", "dark", "ocean", "forest", "sunset")

class User(Base):
    __tablename__ = "users"
    # identity-provider subject
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False, default=DEFAULT_DISPLAY_NAME)
    photo_url: Mapped[str] = mapped_column(String(2048), nullable=False, default=DEFAULT_PHOTO_URL)
    email: Mapped[str | None] = mapped_column(String(254), nullable=True)
    theme_preference: Mapped[str] = mapped_column(String(16), nullable=False, default="love")  # see THEMES

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

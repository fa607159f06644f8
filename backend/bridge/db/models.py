from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from bridge.db.base import Base


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BackendSession(Base):
    """Backend chat id assigned to a messaging user."""

    __tablename__ = "backend_sessions"

    user_key: Mapped[str] = mapped_column(String, primary_key=True)
    session_handle: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )


class KnownConversation(Base):
    """Conversation that was greeted or existed when the bridge started."""

    __tablename__ = "known_conversations"

    conversation_id: Mapped[str] = mapped_column(String, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bridge.repos.conversation_repo import ConversationRepo
from bridge.repos.session_repo import SessionRepo


class StateStore(Protocol):
    """Persistence for the session cache and the known-conversation set."""

    async def load_sessions(self) -> dict[str, str]:
        """Return every stored user key to chat id mapping."""

    async def save_session(self, user_key: str, session_handle: str) -> None:
        """Store a chat id for a user key."""

    async def delete_sessions(self, user_key: Optional[str] = None) -> None:
        """Delete one stored mapping, or all when no key is given."""

    async def load_conversations(self) -> set[str]:
        """Return every stored conversation id."""

    async def add_conversation(self, conversation_id: str) -> None:
        """Store a conversation id."""


class SqlStateStore:
    """State store backed by SQLAlchemy."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def load_sessions(self) -> dict[str, str]:
        async with self._sessionmaker() as db:
            rows = await SessionRepo(db).list_sessions()
            return {row.user_key: row.session_handle for row in rows}

    async def save_session(self, user_key: str, session_handle: str) -> None:
        async with self._sessionmaker() as db:
            async with db.begin():
                await SessionRepo(db).upsert_session(user_key, session_handle)

    async def delete_sessions(self, user_key: Optional[str] = None) -> None:
        async with self._sessionmaker() as db:
            async with db.begin():
                await SessionRepo(db).delete_sessions(user_key)

    async def load_conversations(self) -> set[str]:
        async with self._sessionmaker() as db:
            return set(await ConversationRepo(db).list_ids())

    async def add_conversation(self, conversation_id: str) -> None:
        async with self._sessionmaker() as db:
            async with db.begin():
                await ConversationRepo(db).add(conversation_id)

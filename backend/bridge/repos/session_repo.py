from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from bridge.db.models import BackendSession, utc_now


class SessionRepo:
    """Repository for persisted backend chat ids."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def list_sessions(self) -> Sequence[BackendSession]:
        result = await self._db.execute(select(BackendSession))
        return result.scalars().all()

    async def get_session(self, user_key: str) -> Optional[BackendSession]:
        return await self._db.get(BackendSession, user_key)

    async def upsert_session(self, user_key: str, session_handle: str) -> BackendSession:
        """Insert or update the chat id for a user."""

        existing = await self.get_session(user_key)
        if existing:
            existing.session_handle = session_handle
            existing.updated_at = utc_now()
            await self._db.flush()
            return existing
        created = BackendSession(user_key=user_key, session_handle=session_handle)
        self._db.add(created)
        await self._db.flush()
        return created

    async def delete_sessions(self, user_key: Optional[str] = None) -> int:
        """Delete one stored chat id, or all of them."""

        statement = delete(BackendSession)
        if user_key is not None:
            statement = statement.where(BackendSession.user_key == user_key)
        result = await self._db.execute(statement)
        return result.rowcount or 0

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bridge.db.models import KnownConversation


class ConversationRepo:
    """Repository for known conversation ids."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def list_ids(self) -> list[str]:
        result = await self._db.execute(select(KnownConversation.conversation_id))
        return list(result.scalars().all())

    async def add(self, conversation_id: str) -> bool:
        """Insert a conversation id; False when it was already stored."""

        if await self._db.get(KnownConversation, conversation_id):
            return False
        self._db.add(KnownConversation(conversation_id=conversation_id))
        await self._db.flush()
        return True

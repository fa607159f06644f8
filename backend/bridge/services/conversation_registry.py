from __future__ import annotations

import logging
from typing import Iterable, Optional

from bridge.services.state_store import StateStore

logger = logging.getLogger(__name__)


class ConversationRegistry:
    """Set of conversation ids that were greeted or existed at startup."""

    def __init__(self, store: Optional[StateStore] = None) -> None:
        self._store = store
        self._known: set[str] = set()

    async def load(self) -> int:
        """Warm the registry from the state store."""

        if not self._store:
            return 0
        stored = await self._store.load_conversations()
        self._known.update(stored)
        logger.info("Loaded %d persisted conversation id(s)", len(stored))
        return len(stored)

    async def seed(self, conversation_ids: Iterable[str]) -> int:
        """Mark conversations as known without greeting them."""

        added = 0
        for conversation_id in conversation_ids:
            if await self.claim(conversation_id):
                added += 1
        return added

    async def claim(self, conversation_id: str) -> bool:
        """Mark a conversation as known; True only for the first caller."""

        # No suspension point between the membership check and the insert.
        if conversation_id in self._known:
            return False
        self._known.add(conversation_id)
        if self._store:
            try:
                await self._store.add_conversation(conversation_id)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to persist conversation %s: %s", conversation_id, exc)
        return True

    def snapshot(self) -> list[str]:
        return sorted(self._known)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._known

    def __len__(self) -> int:
        return len(self._known)

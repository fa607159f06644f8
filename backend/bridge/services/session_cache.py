from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from bridge.services.state_store import StateStore

logger = logging.getLogger(__name__)

SessionCreator = Callable[[str], Awaitable[str]]


class SessionCache:
    """Map user keys to backend chat ids, creating each chat at most once.

    Concurrent first messages from the same user share one in-flight creation
    call. Failed creations are not cached, so the next message retries.
    """

    def __init__(self, create_session: SessionCreator, store: Optional[StateStore] = None) -> None:
        self._create_session = create_session
        self._store = store
        self._handles: dict[str, str] = {}
        self._pending: dict[str, asyncio.Future[str]] = {}

    async def load(self) -> int:
        """Warm the cache from the state store."""

        if not self._store:
            return 0
        stored = await self._store.load_sessions()
        for user_key, handle in stored.items():
            self._handles.setdefault(user_key, handle)
        logger.info("Loaded %d persisted session(s)", len(stored))
        return len(stored)

    async def resolve(self, user_key: str) -> str:
        """Return the chat id for a user, creating the chat on first use."""

        cached = self._handles.get(user_key)
        if cached is not None:
            return cached
        pending = self._pending.get(user_key)
        if pending is None:
            pending = asyncio.ensure_future(self._create(user_key))
            self._pending[user_key] = pending
            pending.add_done_callback(lambda _: self._pending.pop(user_key, None))
        return await asyncio.shield(pending)

    async def invalidate(self, user_key: Optional[str] = None) -> int:
        """Drop one cached entry, or all of them when no key is given."""

        if user_key is None:
            removed = len(self._handles)
            self._handles.clear()
        else:
            removed = 1 if self._handles.pop(user_key, None) is not None else 0
        if self._store:
            try:
                await self._store.delete_sessions(user_key)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to delete persisted session(s): %s", exc)
        logger.info("Cleared %d cached session(s)", removed)
        return removed

    def status(self) -> dict:
        """Return cache size and entries."""

        return {"size": len(self._handles), "entries": sorted(self._handles.items())}

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, user_key: object) -> bool:
        return user_key in self._handles

    async def _create(self, user_key: str) -> str:
        handle = await self._create_session(user_key)
        self._handles[user_key] = handle
        if self._store:
            try:
                await self._store.save_session(user_key, handle)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to persist session for %s: %s", user_key, exc)
        return handle

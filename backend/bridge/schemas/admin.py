from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from bridge.schemas.common import APIModel


class SubscriptionStatusOut(APIModel):
    """Supervision state of one engine subscription."""

    name: str
    state: str
    attempt: int
    last_error: Optional[str] = None
    updated_at: datetime


class HealthResponse(APIModel):
    """Bridge health summary."""

    status: str
    inbox_id: Optional[str] = None
    agent_address: Optional[str] = None
    backend_url: Optional[str] = None
    subscriptions: List[SubscriptionStatusOut]


class SessionEntry(APIModel):
    user_key: str
    session_handle: str


class SessionCacheStatus(APIModel):
    """Contents of the session cache."""

    size: int
    entries: List[SessionEntry]


class InvalidateResponse(APIModel):
    removed: int


class KnownConversationsResponse(APIModel):
    count: int
    conversation_ids: List[str]

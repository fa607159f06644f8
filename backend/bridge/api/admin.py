from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from bridge.schemas.admin import (
    HealthResponse,
    InvalidateResponse,
    KnownConversationsResponse,
    SessionCacheStatus,
    SessionEntry,
    SubscriptionStatusOut,
)
from bridge.services.conversation_registry import ConversationRegistry
from bridge.services.engine import IngestionEngine, SubscriptionState
from bridge.services.session_cache import SessionCache

router = APIRouter(prefix="/api", tags=["admin"])


@dataclass
class BridgeRuntime:
    """Objects the operator API inspects."""

    engine: IngestionEngine
    sessions: SessionCache
    registry: ConversationRegistry
    inbox_id: Optional[str] = None
    agent_address: Optional[str] = None
    backend_url: Optional[str] = None


def get_runtime(request: Request) -> BridgeRuntime:
    """Dependency to access the bridge runtime from app state."""

    return request.app.state.runtime


@router.get("/health", response_model=HealthResponse)
async def health(runtime: BridgeRuntime = Depends(get_runtime)) -> HealthResponse:
    """Report the state of both engine subscriptions."""

    subscriptions = [
        SubscriptionStatusOut(
            name=item.name,
            state=item.state.value,
            attempt=item.attempt,
            last_error=item.last_error,
            updated_at=item.updated_at,
        )
        for item in runtime.engine.subscriptions.values()
    ]
    degraded = {SubscriptionState.FAULTED, SubscriptionState.BACKOFF, SubscriptionState.ABORTED}
    states = {item.state for item in runtime.engine.subscriptions.values()}
    overall = "degraded" if states & degraded else "ok"
    return HealthResponse(
        status=overall,
        inbox_id=runtime.inbox_id,
        agent_address=runtime.agent_address,
        backend_url=runtime.backend_url,
        subscriptions=subscriptions,
    )


@router.get("/sessions", response_model=SessionCacheStatus)
async def list_sessions(runtime: BridgeRuntime = Depends(get_runtime)) -> SessionCacheStatus:
    """Return the cached user to chat mappings."""

    cache_status = runtime.sessions.status()
    return SessionCacheStatus(
        size=cache_status["size"],
        entries=[
            SessionEntry(user_key=user_key, session_handle=handle)
            for user_key, handle in cache_status["entries"]
        ],
    )


@router.delete("/sessions", response_model=InvalidateResponse)
async def clear_sessions(runtime: BridgeRuntime = Depends(get_runtime)) -> InvalidateResponse:
    """Drop every cached session; the next message creates a new chat."""

    return InvalidateResponse(removed=await runtime.sessions.invalidate())


@router.delete("/sessions/{user_key}", response_model=InvalidateResponse)
async def clear_session(
    user_key: str, runtime: BridgeRuntime = Depends(get_runtime)
) -> InvalidateResponse:
    """Drop the cached session of one user."""

    if user_key not in runtime.sessions:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found.")
    return InvalidateResponse(removed=await runtime.sessions.invalidate(user_key))


@router.get("/conversations/known", response_model=KnownConversationsResponse)
async def known_conversations(
    runtime: BridgeRuntime = Depends(get_runtime),
) -> KnownConversationsResponse:
    """List conversation ids the discovery loop will not greet."""

    conversation_ids = runtime.registry.snapshot()
    return KnownConversationsResponse(count=len(conversation_ids), conversation_ids=conversation_ids)

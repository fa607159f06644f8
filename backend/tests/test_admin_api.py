import httpx
import pytest

from bridge.api.admin import BridgeRuntime
from bridge.main import create_app
from bridge.services.engine import MESSAGE_STREAM, SubscriptionState
from conftest import AGENT_ADDRESS, AGENT_INBOX, BASE_URL, make_engine


@pytest.fixture
async def runtime(messaging, gateway) -> BridgeRuntime:
    engine = make_engine(messaging, gateway)
    await engine.seed_known_conversations()
    return BridgeRuntime(
        engine=engine,
        sessions=gateway.sessions,
        registry=engine.registry,
        inbox_id=AGENT_INBOX,
        agent_address=AGENT_ADDRESS,
        backend_url=BASE_URL,
    )


@pytest.fixture
async def admin(runtime):
    transport = httpx.ASGITransport(app=create_app(runtime))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.anyio
async def test_health_reports_subscriptions(admin, runtime):
    response = await admin.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["inbox_id"] == AGENT_INBOX
    assert data["agent_address"] == AGENT_ADDRESS
    assert {item["name"] for item in data["subscriptions"]} == {"message_stream", "discovery"}

    runtime.engine.subscriptions[MESSAGE_STREAM].move(SubscriptionState.BACKOFF, error="drop")
    data = (await admin.get("/api/health")).json()
    assert data["status"] == "degraded"
    stream = next(item for item in data["subscriptions"] if item["name"] == "message_stream")
    assert stream["state"] == "backoff"
    assert stream["last_error"] == "drop"


@pytest.mark.anyio
async def test_sessions_listing_and_invalidation(admin, runtime, backend):
    await runtime.sessions.resolve("alice")
    await runtime.sessions.resolve("bob")

    data = (await admin.get("/api/sessions")).json()
    assert data["size"] == 2
    assert data["entries"] == [
        {"user_key": "alice", "session_handle": "chat-1"},
        {"user_key": "bob", "session_handle": "chat-2"},
    ]

    response = await admin.delete("/api/sessions/alice")
    assert response.status_code == 200
    assert response.json() == {"removed": 1}

    response = await admin.delete("/api/sessions/alice")
    assert response.status_code == 404

    response = await admin.delete("/api/sessions")
    assert response.json() == {"removed": 1}
    assert (await admin.get("/api/sessions")).json() == {"size": 0, "entries": []}

    await runtime.sessions.resolve("alice")
    assert backend.created_for == ["alice", "bob", "alice"]


@pytest.mark.anyio
async def test_known_conversations(admin, runtime):
    await runtime.registry.claim("conv-9")

    data = (await admin.get("/api/conversations/known")).json()
    assert data == {"count": 2, "conversation_ids": ["conv-1", "conv-9"]}

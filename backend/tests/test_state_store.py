import pytest

from bridge.db.base import create_engine, create_sessionmaker, init_db
from bridge.services.conversation_registry import ConversationRegistry
from bridge.services.session_cache import SessionCache
from bridge.services.state_store import SqlStateStore
from conftest import ReadOnlyStore


@pytest.fixture
async def store(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'state' / 'bridge.db'}")
    await init_db(engine)
    yield SqlStateStore(create_sessionmaker(engine))
    await engine.dispose()


@pytest.mark.anyio
async def test_sessions_survive_restart(store):
    created: list[str] = []

    async def create_session(user_key: str) -> str:
        created.append(user_key)
        return f"chat-{user_key}"

    cache = SessionCache(create_session, store=store)
    await cache.resolve("alice")
    await cache.resolve("bob")
    await cache.invalidate("bob")

    restarted = SessionCache(create_session, store=store)
    assert await restarted.load() == 1
    assert await restarted.resolve("alice") == "chat-alice"
    assert created == ["alice", "bob"]

    await restarted.invalidate()
    assert await store.load_sessions() == {}


@pytest.mark.anyio
async def test_session_upsert_replaces_handle(store):
    await store.save_session("alice", "chat-1")
    await store.save_session("alice", "chat-2")
    assert await store.load_sessions() == {"alice": "chat-2"}


@pytest.mark.anyio
async def test_known_conversations_survive_restart(store):
    registry = ConversationRegistry(store)
    assert await registry.seed(["conv-1", "conv-2", "conv-1"]) == 2

    restarted = ConversationRegistry(store)
    assert await restarted.load() == 2
    assert not await restarted.claim("conv-2")
    assert await restarted.claim("conv-3")
    assert await store.load_conversations() == {"conv-1", "conv-2", "conv-3"}


@pytest.mark.anyio
async def test_session_write_failure_keeps_created_chat():
    created: list[str] = []

    async def create_session(user_key: str) -> str:
        created.append(user_key)
        return f"chat-{user_key}"

    cache = SessionCache(create_session, store=ReadOnlyStore())

    assert await cache.resolve("alice") == "chat-alice"
    assert await cache.resolve("alice") == "chat-alice"
    assert created == ["alice"]
    assert await cache.invalidate("alice") == 1


@pytest.mark.anyio
async def test_conversation_write_failure_still_claims():
    registry = ConversationRegistry(ReadOnlyStore())

    assert await registry.seed(["conv-1", "conv-2"]) == 2
    assert await registry.claim("conv-3")
    assert not await registry.claim("conv-3")
    assert registry.snapshot() == ["conv-1", "conv-2", "conv-3"]

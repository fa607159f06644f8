import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import httpx
import pytest

from bridge.core.config import get_settings
from bridge.gateway.intentkit import IntentKitGateway
from bridge.services.conversation_registry import ConversationRegistry
from bridge.services.dispatcher import ReplyDispatcher
from bridge.services.engine import IngestionEngine
from bridge.transport.memory import InMemoryConversation, InMemoryMessagingClient

AGENT_ADDRESS = "0xAbC0000000000000000000000000000000000001"
AGENT_INBOX = "agent-inbox"
USER_INBOX = "user-inbox"
BASE_URL = "https://intentkit.test"
WALLET_KEY = "0x" + "11" * 32
ENCRYPTION_KEY = "22" * 32


class ReadOnlyStore:
    """State store whose reads work and whose writes fail, like a locked database."""

    async def load_sessions(self) -> dict[str, str]:
        return {}

    async def save_session(self, user_key: str, session_handle: str) -> None:
        raise OSError("database is locked")

    async def delete_sessions(self, user_key=None) -> None:
        raise OSError("database is locked")

    async def load_conversations(self) -> set[str]:
        return set()

    async def add_conversation(self, conversation_id: str) -> None:
        raise OSError("database is locked")


def make_engine(client, gateway, **kwargs) -> IngestionEngine:
    """Engine with zero retry delay and a fast discovery interval."""

    kwargs.setdefault("retry_delay_sec", 0)
    kwargs.setdefault("discovery_interval_sec", 0.01)
    return IngestionEngine(client, gateway, ReplyDispatcher(), ConversationRegistry(), **kwargs)


def sse(*payloads, done: bool = True) -> bytes:
    """Encode payloads as an SSE body."""

    lines = [f"data: {json.dumps(payload)}\n\n" for payload in payloads]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


class FakeBackend:
    """Scriptable IntentKit API served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.chat_ids = iter(f"chat-{index}" for index in range(1, 1000))
        self.created_for: list[str] = []
        self.messages: list[dict] = []
        self.headers: list[httpx.Headers] = []
        self.timeouts: list[dict] = []
        self.openapi_status = 200
        self.agent_status = 200
        self.chat_status = 200
        self.stream_status = 200
        self.stream_body: object = sse({"data": {"author_type": "agent", "message": "Hello"}})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.headers.append(request.headers)
        self.timeouts.append(request.extensions.get("timeout", {}))
        path = request.url.path
        if path == "/v1/openapi.json":
            return httpx.Response(self.openapi_status, json={"openapi": "3.1.0"})
        if path == "/v1/agent":
            return httpx.Response(
                self.agent_status, json={"id": "agent-1", "evm_wallet_address": AGENT_ADDRESS}
            )
        if path == "/v1/chats" and request.method == "POST":
            if self.chat_status >= 400:
                return httpx.Response(self.chat_status, json={"detail": "chat creation refused"})
            user_id = request.url.params["user_id"]
            self.created_for.append(user_id)
            return httpx.Response(200, json={"id": next(self.chat_ids), "user_id": user_id})
        if path.startswith("/v1/chats/") and path.endswith("/messages"):
            self.messages.append({"path": path, **json.loads(request.content)})
            if self.stream_status >= 400:
                return httpx.Response(self.stream_status, text="upstream exploded")
            return httpx.Response(
                200,
                content=self.stream_body,
                headers={"content-type": "text/event-stream"},
            )
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
async def http_client(backend):
    transport = httpx.MockTransport(backend.handler)
    async with httpx.AsyncClient(transport=transport) as client:
        yield client


@pytest.fixture
async def gateway(http_client) -> IntentKitGateway:
    return IntentKitGateway(BASE_URL, "sk-test-key", http_client=http_client, stream_timeout_sec=5)


@pytest.fixture
def messaging() -> InMemoryMessagingClient:
    client = InMemoryMessagingClient(inbox_id=AGENT_INBOX, installation_id="install-1")
    client.conversations.add(InMemoryConversation("conv-1", [AGENT_INBOX, USER_INBOX]))
    return client

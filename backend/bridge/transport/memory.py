"""In-process loopback transport.

Used when no network transport is configured and as the test double for the
messaging network. Messages are pushed in with :meth:`InMemoryConversations.push`.
"""

from __future__ import annotations

import asyncio
import hashlib
import uuid
from typing import Any, AsyncIterator, Optional, Sequence, Union

from bridge.transport.base import TEXT_CONTENT_TYPE, InboundMessage
from bridge.transport.connect import ConnectionStrategy
from bridge.transport.signer import Signer

_END = object()


class InMemoryConversation:
    """Conversation that records every payload sent into it."""

    def __init__(self, conversation_id: str, member_ids: Sequence[str] = ()) -> None:
        self.id = conversation_id
        self.member_ids = list(member_ids)
        self.sent: list[tuple[Any, Optional[str]]] = []
        self.send_failures: list[BaseException] = []

    async def send(self, content: Any, content_type: Optional[str] = None) -> str:
        if self.send_failures:
            raise self.send_failures.pop(0)
        self.sent.append((content, content_type))
        return uuid.uuid4().hex

    async def members(self) -> Sequence[str]:
        return list(self.member_ids)

    @property
    def sent_texts(self) -> list[str]:
        return [content for content, content_type in self.sent if content_type is None]


class InMemoryConversations:
    """Conversation directory backed by a dict and an asyncio queue."""

    def __init__(self) -> None:
        self._conversations: dict[str, InMemoryConversation] = {}
        self._queue: asyncio.Queue[Union[InboundMessage, BaseException, object]] = asyncio.Queue()
        self.stream_failures: list[BaseException] = []
        self.list_failures: list[BaseException] = []
        self.stream_opens = 0
        self.sync_calls = 0

    def add(self, conversation: InMemoryConversation) -> InMemoryConversation:
        self._conversations[conversation.id] = conversation
        return conversation

    def push(self, message: InboundMessage) -> None:
        self._queue.put_nowait(message)

    def fail_stream(self, exc: BaseException) -> None:
        """Make the currently open stream raise exc."""

        self._queue.put_nowait(exc)

    def end_stream(self) -> None:
        self._queue.put_nowait(_END)

    async def sync(self) -> None:
        self.sync_calls += 1

    async def list(self) -> Sequence[InMemoryConversation]:
        if self.list_failures:
            raise self.list_failures.pop(0)
        return list(self._conversations.values())

    async def get_conversation_by_id(self, conversation_id: str) -> Optional[InMemoryConversation]:
        return self._conversations.get(conversation_id)

    async def stream_all_messages(self) -> AsyncIterator[InboundMessage]:
        if self.stream_failures:
            raise self.stream_failures.pop(0)
        self.stream_opens += 1
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[InboundMessage]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class InMemoryMessagingClient:
    """Messaging client living entirely in the current process."""

    def __init__(self, inbox_id: str, installation_id: Optional[str] = None) -> None:
        self.inbox_id = inbox_id
        self.installation_id = installation_id or uuid.uuid4().hex
        self.conversations = InMemoryConversations()

    def text_message(self, sender_inbox_id: str, conversation_id: str, text: str) -> InboundMessage:
        return InboundMessage(
            id=uuid.uuid4().hex,
            sender_inbox_id=sender_inbox_id,
            conversation_id=conversation_id,
            content_type=TEXT_CONTENT_TYPE,
            content=text,
        )


def inbox_id_for(identifier: str) -> str:
    """Derive a stable inbox id from a signer identifier."""

    return hashlib.sha256(identifier.lower().encode("utf-8")).hexdigest()


def loopback_strategies(
    settings: Any, signer: Signer, encryption_key: bytes
) -> list[ConnectionStrategy]:
    """Transport factory returning the in-process loopback client."""

    async def connect() -> InMemoryMessagingClient:
        return InMemoryMessagingClient(inbox_id=inbox_id_for(signer.identifier))

    return [ConnectionStrategy(name="loopback", connect=connect)]

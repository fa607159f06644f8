"""Messaging transport contract consumed by the bridge.

The decentralized messaging network is an external collaborator: the bridge
only needs an ordered stream of inbound messages, a conversation listing and
a send primitive on each conversation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Protocol, Sequence, runtime_checkable

TEXT_CONTENT_TYPE = "text"


@dataclass(frozen=True)
class InboundMessage:
    """A message received from the messaging network."""

    id: str
    sender_inbox_id: str
    conversation_id: str
    content_type: str
    content: Any


@runtime_checkable
class Conversation(Protocol):
    """A conversation the bridge can reply into."""

    id: str

    async def send(self, content: Any, content_type: Optional[str] = None) -> Any:
        """Send a payload; text when no content type is given."""

    async def members(self) -> Sequence[str]:
        """Return the inbox ids of the conversation members."""


@runtime_checkable
class Conversations(Protocol):
    """Conversation directory and message stream of a messaging client."""

    async def sync(self) -> None:
        """Synchronize the local conversation listing with the network."""

    async def list(self) -> Sequence[Conversation]:
        """Return every conversation known locally."""

    async def get_conversation_by_id(self, conversation_id: str) -> Optional[Conversation]:
        """Return one conversation, or None when unknown."""

    async def stream_all_messages(self) -> AsyncIterator[InboundMessage]:
        """Open the inbound message stream across all conversations."""


@runtime_checkable
class MessagingClient(Protocol):
    """Connected messaging client."""

    inbox_id: str
    installation_id: str
    conversations: Conversations

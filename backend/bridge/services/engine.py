from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Optional, Protocol

from bridge.core.errors import MessageStreamAborted
from bridge.core.security import preview_text
from bridge.schemas.reply import ReplyRecord
from bridge.services.conversation_registry import ConversationRegistry
from bridge.services.dispatcher import ReplyDispatcher
from bridge.services.formatting import ALERT_MARKER
from bridge.transport.base import (
    TEXT_CONTENT_TYPE,
    Conversation,
    InboundMessage,
    MessagingClient,
)

logger = logging.getLogger(__name__)

NO_RESPONSE_TEXT = "🤖 I didn't receive a response from the AI. Please try again."
MESSAGE_STREAM = "message_stream"
DISCOVERY = "discovery"


class ReplySource(Protocol):
    """Backend side of the bridge."""

    def stream_reply(
        self, user_key: str, text: str, session_handle: Optional[str] = None
    ) -> AsyncIterator[ReplyRecord]:
        """Yield reply records for one inbound message."""


class SubscriptionState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    FAULTED = "faulted"
    BACKOFF = "backoff"
    ABORTED = "aborted"
    STOPPED = "stopped"


@dataclass
class SubscriptionStatus:
    """Supervision state of one long-lived subscription."""

    name: str
    state: SubscriptionState = SubscriptionState.CONNECTING
    attempt: int = 0
    last_error: Optional[str] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def move(
        self,
        state: SubscriptionState,
        *,
        attempt: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        self.state = state
        if attempt is not None:
            self.attempt = attempt
        if error is not None:
            self.last_error = error
        self.updated_at = datetime.now(timezone.utc)


class IngestionEngine:
    """Supervise the inbound message stream and the conversation discovery poll."""

    def __init__(
        self,
        client: MessagingClient,
        gateway: ReplySource,
        dispatcher: ReplyDispatcher,
        registry: ConversationRegistry,
        *,
        max_retries: int = 6,
        retry_delay_sec: float = 10,
        discovery_enabled: bool = True,
        discovery_interval_sec: float = 15,
        greeting_text: str = "hello",
    ) -> None:
        self._client = client
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._registry = registry
        self._max_retries = max_retries
        self._retry_delay = retry_delay_sec
        self._discovery_enabled = discovery_enabled
        self._discovery_interval = discovery_interval_sec
        self._greeting_text = greeting_text
        self.subscriptions = {
            MESSAGE_STREAM: SubscriptionStatus(MESSAGE_STREAM),
            DISCOVERY: SubscriptionStatus(
                DISCOVERY,
                state=SubscriptionState.CONNECTING
                if discovery_enabled
                else SubscriptionState.STOPPED,
            ),
        }

    @property
    def registry(self) -> ConversationRegistry:
        return self._registry

    async def run(self) -> None:
        """Run both subscriptions until the message stream aborts or is cancelled."""

        stream_task = asyncio.create_task(self.run_message_stream(), name="bridge-message-stream")
        tasks = [stream_task]
        if self._discovery_enabled:
            tasks.append(asyncio.create_task(self.run_discovery(), name="bridge-discovery"))
        try:
            await stream_task
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            for status in self.subscriptions.values():
                if status.state != SubscriptionState.ABORTED:
                    status.move(SubscriptionState.STOPPED)

    async def seed_known_conversations(self) -> int:
        """Mark every conversation that already exists as known."""

        await self._client.conversations.sync()
        conversations = await self._client.conversations.list()
        added = await self._registry.seed(conversation.id for conversation in conversations)
        logger.info("Seeded %d existing conversation(s)", added)
        return added

    async def run_message_stream(self) -> None:
        """Consume the inbound message stream, reconnecting on failure."""

        status = self.subscriptions[MESSAGE_STREAM]
        retries = 0
        last_error: Optional[BaseException] = None
        while retries < self._max_retries:
            status.move(SubscriptionState.CONNECTING, attempt=retries + 1)
            logger.info(
                "Starting message stream (attempt %d/%d)", retries + 1, self._max_retries
            )
            try:
                stream = await self._client.conversations.stream_all_messages()
                status.move(SubscriptionState.STREAMING)
                logger.info("Waiting for messages...")
                async for message in stream:
                    if self.should_skip(message):
                        continue
                    await self.handle_message(message)
                    retries = 0
                    status.move(SubscriptionState.STREAMING, attempt=1)
                raise ConnectionError("Message stream closed by transport.")
            except Exception as exc:  # noqa: BLE001
                retries += 1
                last_error = exc
                status.move(SubscriptionState.FAULTED, error=str(exc))
                logger.error("Stream error: %s", exc)
                if retries < self._max_retries:
                    status.move(SubscriptionState.BACKOFF)
                    logger.info("Waiting %ss before retry", self._retry_delay)
                    await asyncio.sleep(self._retry_delay)

        status.move(SubscriptionState.ABORTED)
        logger.error("Maximum retry attempts reached (%d). Giving up.", self._max_retries)
        raise MessageStreamAborted(retries, last_error)

    async def run_discovery(self) -> None:
        """Poll for new conversations forever; failures wait for the next interval."""

        status = self.subscriptions[DISCOVERY]
        failures = 0
        while True:
            try:
                greeted = await self.discover_once()
                failures = 0
                status.move(SubscriptionState.STREAMING, attempt=0)
                if greeted:
                    logger.info("Greeted %d new conversation(s)", greeted)
            except Exception as exc:  # noqa: BLE001
                failures += 1
                status.move(SubscriptionState.FAULTED, attempt=failures, error=str(exc))
                logger.warning("Conversation discovery failed: %s", exc)
                status.move(SubscriptionState.BACKOFF)
            await asyncio.sleep(self._discovery_interval)

    async def discover_once(self) -> int:
        """Greet conversations not seen before; return how many were greeted."""

        await self._client.conversations.sync()
        conversations = await self._client.conversations.list()
        greeted = 0
        for conversation in conversations:
            # Claimed before greeting so a failed greeting is never repeated.
            if not await self._registry.claim(conversation.id):
                continue
            logger.info("Discovered new conversation %s", conversation.id)
            try:
                if await self._greet(conversation):
                    greeted += 1
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to greet conversation %s: %s", conversation.id, exc)
        return greeted

    def should_skip(self, message: InboundMessage) -> bool:
        """Skip the agent's own messages and anything that is not text."""

        if not message:
            return True
        if message.sender_inbox_id.lower() == self._client.inbox_id.lower():
            return True
        return message.content_type != TEXT_CONTENT_TYPE or not isinstance(message.content, str)

    async def handle_message(self, message: InboundMessage) -> int:
        """Forward one inbound message and relay the replies; never raises."""

        logger.info(
            "Received message from %s: %s",
            message.sender_inbox_id,
            preview_text(str(message.content)),
        )
        try:
            conversation = await self._client.conversations.get_conversation_by_id(
                message.conversation_id
            )
            if conversation is None:
                logger.warning("Could not find conversation %s", message.conversation_id)
                return 0
            return await self._relay(conversation, message.sender_inbox_id, str(message.content))
        except Exception as exc:  # noqa: BLE001
            logger.error("Error processing message: %s", exc)
            await self._send_error_notice(message.conversation_id, exc)
            return 0

    async def _relay(self, conversation: Conversation, user_key: str, text: str) -> int:
        count = 0
        async for record in self._gateway.stream_reply(user_key, text):
            count += 1
            logger.info("Processing response %d from %s", count, record.author_type)
            await self._dispatcher.dispatch(conversation, record)
        if count == 0:
            logger.warning("No responses received for conversation %s", conversation.id)
            await conversation.send(NO_RESPONSE_TEXT)
        else:
            logger.info("Processed %d response(s) for conversation %s", count, conversation.id)
        return count

    async def _greet(self, conversation: Conversation) -> bool:
        own_inbox = self._client.inbox_id.lower()
        members = await conversation.members()
        counterpart = next((member for member in members if member.lower() != own_inbox), None)
        if counterpart is None:
            logger.info("No counterpart found in conversation %s", conversation.id)
            return False
        await self.handle_message(
            InboundMessage(
                id=f"greeting-{conversation.id}",
                sender_inbox_id=counterpart,
                conversation_id=conversation.id,
                content_type=TEXT_CONTENT_TYPE,
                content=self._greeting_text,
            )
        )
        return True

    async def _send_error_notice(self, conversation_id: str, exc: BaseException) -> None:
        try:
            conversation = await self._client.conversations.get_conversation_by_id(
                conversation_id
            )
            if conversation is not None:
                await conversation.send(f"{ALERT_MARKER} Sorry, I encountered an error: {exc}")
        except Exception as reply_error:  # noqa: BLE001
            logger.error("Failed to send error reply: %s", reply_error)

from __future__ import annotations

import logging

from bridge.schemas.reply import ReplyRecord, TransactionRequest
from bridge.services.formatting import (
    ALERT_MARKER,
    OutboundPayload,
    build_outbound_payloads,
    format_transaction_request,
)
from bridge.transport.base import Conversation

logger = logging.getLogger(__name__)

SEND_FALLBACK_TEXT = f"{ALERT_MARKER} Failed to process the AI response. Please try again."


class ReplyDispatcher:
    """Relay backend reply records into a messaging conversation."""

    async def dispatch(self, conversation: Conversation, record: ReplyRecord) -> int:
        """Send every payload of a record; return how many were delivered."""

        payloads = build_outbound_payloads(record)
        if not payloads:
            logger.debug("Skipping empty %s record", record.author_type)
            return 0
        sent = 0
        for payload in payloads:
            if await self._send(conversation, payload):
                sent += 1
        logger.info(
            "Sent %d/%d payload(s) for %s record to %s",
            sent,
            len(payloads),
            record.author_type,
            conversation.id,
        )
        return sent

    async def _send(self, conversation: Conversation, payload: OutboundPayload) -> bool:
        try:
            if payload.is_text:
                await conversation.send(payload.content)
            else:
                if logger.isEnabledFor(logging.DEBUG):
                    request = TransactionRequest.model_validate(payload.content)
                    logger.debug("Relaying %s", format_transaction_request(request))
                await conversation.send(payload.content, payload.content_type)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to send response to %s: %s", conversation.id, exc)
        try:
            await conversation.send(SEND_FALLBACK_TEXT)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to send fallback error message to %s: %s", conversation.id, exc)
        return False

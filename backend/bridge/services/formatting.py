"""Rendering of backend reply records into outbound chat payloads."""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Sequence

from bridge.schemas.reply import (
    WALLET_SEND_CALLS_CONTENT_TYPE,
    Attachment,
    AuthorType,
    ReplyRecord,
    ToolCall,
    TransactionRequest,
)

ALERT_MARKER = "🚨"
NO_TOOL_DETAILS = "🔧 **Skills activated** (no details available)"
WEI_PER_ETH = Decimal(10) ** 18
CALLDATA_PREVIEW_CHARS = 42


@dataclass(frozen=True)
class OutboundPayload:
    """One send on a conversation. ``content_type`` None means plain text."""

    content: Any
    content_type: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.content_type is None


def format_parameter(key: str, value: Any) -> str:
    if isinstance(value, str):
        return f'{key}: "{value}"'
    if isinstance(value, (dict, list)):
        return f"{key}: {json.dumps(value, ensure_ascii=False)}"
    if isinstance(value, bool) or value is None:
        return f"{key}: {json.dumps(value)}"
    return f"{key}: {value}"


def format_tool_calls(tool_calls: Sequence[ToolCall]) -> str:
    """Describe skill calls; successful responses are intentionally omitted."""

    if not tool_calls:
        return NO_TOOL_DETAILS
    blocks = []
    for call in tool_calls:
        parameters = ""
        if call.parameters:
            parameters = " with " + ", ".join(
                format_parameter(key, value) for key, value in call.parameters.items()
            )
        block = f"🔧 Calling skill **{call.name}**{parameters}"
        if call.failed and call.error_message:
            block += f"\n   ❌ Error: {call.error_message}"
        blocks.append(block)
    return "\n\n".join(blocks)


def format_wei(value: str) -> str:
    try:
        wei = Decimal(int(value, 0))
    except (ValueError, InvalidOperation):
        return f"{value} wei"
    return f"{value} wei (≈ {wei / WEI_PER_ETH:.6f} ETH)"


def format_transaction_request(request: TransactionRequest) -> str:
    """Full multi-line description of a transaction batch."""

    lines = ["💳 **Transaction Request**"]
    if request.description:
        lines.append(f"📝 Description: {request.description}")
    if request.chain_id:
        lines.append(f"⛓️ Chain ID: {request.chain_id}")
    lines.append(f"📋 Calls ({len(request.calls)}):")
    for index, call in enumerate(request.calls, start=1):
        lines.append("")
        lines.append(f"{index}. **Transaction**")
        lines.append(f"   📍 To: `{call.to}`")
        if call.value and call.value != "0":
            lines.append(f"   💰 Value: {format_wei(call.value)}")
        if call.data and call.data != "0x":
            suffix = "..." if len(call.data) > CALLDATA_PREVIEW_CHARS else ""
            lines.append(f"   📄 Data: `{call.data[:CALLDATA_PREVIEW_CHARS]}{suffix}`")
    return "\n".join(lines)


def format_transaction_summary(request: TransactionRequest) -> str:
    summary = f"💳 Transaction Request ({len(request.calls)} calls)"
    if request.description:
        summary += f"\n📝 {request.description}"
    return summary


def format_attachments(attachments: Sequence[Attachment]) -> str:
    lines = [f"📎 Attachments ({len(attachments)}):"]
    for index, attachment in enumerate(attachments, start=1):
        lines.append(f"{index}. {attachment.kind}: {attachment.url or 'embedded content'}")
    return "\n".join(lines)


def build_outbound_payloads(record: ReplyRecord) -> List[OutboundPayload]:
    """Expand one reply record into the ordered payloads to send.

    A transaction request goes first as a structured payload. Text, skill
    calls, the transaction summary and the remaining attachments are joined
    into one text payload.
    """

    if not record.is_meaningful():
        return []

    payloads: List[OutboundPayload] = []
    sections: List[str] = []

    text = record.text.strip()
    if text:
        if record.author_type == AuthorType.SYSTEM.value:
            text = f"{ALERT_MARKER} {text}"
        sections.append(text)

    emitted: Optional[Attachment] = None
    for attachment in record.attachments:
        request = attachment.transaction_request()
        if request is None:
            continue
        emitted = attachment
        payloads.append(
            OutboundPayload(
                content=attachment.json_payload,
                content_type=WALLET_SEND_CALLS_CONTENT_TYPE,
            )
        )
        sections.append(format_transaction_summary(request))
        break

    if record.tool_calls:
        sections.append(format_tool_calls(record.tool_calls))

    others = [attachment for attachment in record.attachments if attachment is not emitted]
    if others:
        sections.append(format_attachments(others))

    if sections:
        payloads.append(OutboundPayload(content="\n\n".join(sections)))
    return payloads

import pytest

from bridge.schemas.reply import WALLET_SEND_CALLS_CONTENT_TYPE, ReplyRecord
from bridge.services.dispatcher import SEND_FALLBACK_TEXT, ReplyDispatcher
from bridge.transport.memory import InMemoryConversation

WALLET_CALLS = {"chainId": 8453, "calls": [{"to": "0x" + "ab" * 20, "value": 5}]}


@pytest.mark.anyio
async def test_empty_record_sends_nothing():
    conversation = InMemoryConversation("conv-1")
    sent = await ReplyDispatcher().dispatch(conversation, ReplyRecord(author_type="agent", text=""))
    assert sent == 0
    assert conversation.sent == []


@pytest.mark.anyio
async def test_structured_payload_goes_out_with_content_type():
    conversation = InMemoryConversation("conv-1")
    record = ReplyRecord.model_validate(
        {"author_type": "agent", "attachments": [{"type": "xmtp", "json": WALLET_CALLS}]}
    )

    assert await ReplyDispatcher().dispatch(conversation, record) == 2
    assert conversation.sent[0] == (WALLET_CALLS, WALLET_SEND_CALLS_CONTENT_TYPE)
    assert conversation.sent_texts == ["💳 Transaction Request (1 calls)"]


@pytest.mark.anyio
async def test_failed_send_falls_back_and_continues():
    conversation = InMemoryConversation("conv-1")
    conversation.send_failures.append(RuntimeError("network hiccup"))
    record = ReplyRecord.model_validate(
        {
            "author_type": "agent",
            "message": "Done",
            "attachments": [{"type": "xmtp", "json": WALLET_CALLS}],
        }
    )

    assert await ReplyDispatcher().dispatch(conversation, record) == 1
    assert conversation.sent_texts == [
        SEND_FALLBACK_TEXT,
        "Done\n\n💳 Transaction Request (1 calls)",
    ]


@pytest.mark.anyio
async def test_failed_fallback_does_not_raise():
    conversation = InMemoryConversation("conv-1")
    conversation.send_failures.extend([RuntimeError("first"), RuntimeError("second")])

    sent = await ReplyDispatcher().dispatch(conversation, ReplyRecord(author_type="agent", text="hi"))

    assert sent == 0
    assert conversation.sent == []

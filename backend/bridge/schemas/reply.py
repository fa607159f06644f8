from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, Field, field_validator

from bridge.schemas.common import WireModel

WALLET_SEND_CALLS_CONTENT_TYPE = "xmtp/content-type-wallet-send-calls"


class AuthorType(str, Enum):
    """Known authors of backend reply records."""

    AGENT = "agent"
    SYSTEM = "system"
    SKILL = "skill"
    API = "API"


class AttachmentKind(str, Enum):
    """Known attachment kinds. Transaction requests travel as ``xmtp``."""

    LINK = "link"
    IMAGE = "image"
    FILE = "file"
    TRANSACTION_REQUEST = "xmtp"


class ToolCall(WireModel):
    """One skill invocation reported by the backend."""

    id: Optional[str] = None
    name: str
    parameters: Optional[dict[str, Any]] = None
    succeeded: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("success", "succeeded")
    )
    error_message: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("error_message", "errorMessage")
    )
    # Raw skill output; never rendered to the end user.
    response: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("response", "responseSummary")
    )

    @property
    def failed(self) -> bool:
        return self.succeeded is False


class TransactionCall(WireModel):
    """A single call inside a wallet transaction batch."""

    to: str
    data: Optional[str] = None
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class TransactionRequest(WireModel):
    """A ready-to-send wallet transaction batch."""

    calls: List[TransactionCall] = Field(default_factory=list)
    chain_id: Optional[Union[int, str]] = Field(
        default=None, validation_alias=AliasChoices("chainId", "chain_id")
    )
    description: Optional[str] = None


class Attachment(WireModel):
    """A structured attachment carried by a reply record."""

    kind: str = Field(validation_alias=AliasChoices("type", "kind"))
    url: Optional[str] = None
    json_payload: Optional[dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("json", "payload")
    )

    @property
    def is_transaction_request(self) -> bool:
        return self.kind == AttachmentKind.TRANSACTION_REQUEST.value

    def transaction_request(self) -> Optional[TransactionRequest]:
        """Return the transaction batch for transaction-request attachments."""

        if not self.is_transaction_request or not self.json_payload:
            return None
        try:
            return TransactionRequest.model_validate(self.json_payload)
        except ValueError:
            return None


class ReplyRecord(WireModel):
    """One unit of backend output attributable to one author."""

    id: Optional[str] = None
    chat_id: Optional[str] = None
    author_type: str = Field(validation_alias=AliasChoices("author_type", "authorType"))
    text: str = Field(default="", validation_alias=AliasChoices("message", "text"))
    tool_calls: List[ToolCall] = Field(
        default_factory=list,
        validation_alias=AliasChoices("skill_calls", "toolCalls", "tool_calls"),
    )
    attachments: List[Attachment] = Field(default_factory=list)

    @field_validator("text", mode="before")
    @classmethod
    def _none_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("tool_calls", "attachments", mode="before")
    @classmethod
    def _none_list(cls, value: Any) -> Any:
        return [] if value is None else value

    def is_meaningful(self) -> bool:
        """Return True when the record carries text, tool calls or attachments."""

        return bool(self.text.strip() or self.tool_calls or self.attachments)

    @classmethod
    def system_notice(cls, text: str) -> "ReplyRecord":
        return cls(author_type=AuthorType.SYSTEM.value, text=text)


@dataclass(frozen=True)
class StreamEvent:
    """A decoded stream frame: exactly one of data, error or terminal."""

    data: Optional[ReplyRecord] = None
    error: Optional[str] = None
    terminal: bool = False

    def __post_init__(self) -> None:
        populated = sum((self.data is not None, self.error is not None, self.terminal))
        if populated != 1:
            raise ValueError("StreamEvent must carry exactly one of data, error, terminal.")

    @classmethod
    def of_data(cls, record: ReplyRecord) -> "StreamEvent":
        return cls(data=record)

    @classmethod
    def of_error(cls, message: str) -> "StreamEvent":
        return cls(error=message)

    @classmethod
    def done(cls) -> "StreamEvent":
        return cls(terminal=True)

"""Classification of extracted frames into typed stream events."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, List, Optional, Sequence

from pydantic import ValidationError

from bridge.core.security import preview_text
from bridge.schemas.reply import ReplyRecord, StreamEvent

logger = logging.getLogger(__name__)

ENVELOPE_KEYS = ("data", "error", "done")
AUTHOR_KEYS = ("author_type", "authorType")

# A strategy returns None when the payload is not its shape, otherwise the
# (possibly empty) list of events the payload stands for.
DecodeStrategy = Callable[[Any], Optional[List[StreamEvent]]]


def decode_envelope(payload: Any) -> Optional[List[StreamEvent]]:
    """Decode ``{"data": ..., "error": ..., "done": ...}`` envelopes."""

    if not isinstance(payload, dict) or not any(key in payload for key in ENVELOPE_KEYS):
        return None
    events: List[StreamEvent] = []
    error = payload.get("error")
    if error:
        events.append(StreamEvent.of_error(str(error)))
    data = payload.get("data")
    if isinstance(data, dict):
        record = _parse_record(data)
        if record is not None:
            events.append(StreamEvent.of_data(record))
    if payload.get("done"):
        events.append(StreamEvent.done())
    return events


def decode_bare_record(payload: Any) -> Optional[List[StreamEvent]]:
    """Decode a reply record sent without an envelope."""

    record = _meaningful_record(payload)
    if record is None:
        return None
    return [StreamEvent.of_data(record)]


def decode_record_array(payload: Any) -> Optional[List[StreamEvent]]:
    """Decode a JSON array whose first element is a reply record."""

    if not isinstance(payload, list) or not payload:
        return None
    record = _meaningful_record(payload[0])
    if record is None:
        return None
    return [StreamEvent.of_data(record)]


DEFAULT_STRATEGIES: tuple[DecodeStrategy, ...] = (
    decode_envelope,
    decode_bare_record,
    decode_record_array,
)


class ReplyEventDecoder:
    """Try each decode strategy in order; the first that recognizes a frame wins."""

    def __init__(self, strategies: Optional[Sequence[DecodeStrategy]] = None) -> None:
        self._strategies = tuple(strategies or DEFAULT_STRATEGIES)

    def decode_events(self, frame: str) -> List[StreamEvent]:
        """Return the events carried by one frame, or an empty list."""

        try:
            payload = json.loads(frame)
        except ValueError:
            logger.debug("Dropping non-JSON frame: %s", preview_text(frame))
            return []
        for strategy in self._strategies:
            events = strategy(payload)
            if events is not None:
                return events
        logger.warning("Unknown response format: %s", preview_text(frame, 200))
        return []


def _meaningful_record(payload: Any) -> Optional[ReplyRecord]:
    if not isinstance(payload, dict) or not any(payload.get(key) for key in AUTHOR_KEYS):
        return None
    record = _parse_record(payload)
    if record is None or not record.is_meaningful():
        return None
    return record


def _parse_record(payload: dict[str, Any]) -> Optional[ReplyRecord]:
    try:
        return ReplyRecord.model_validate(payload)
    except ValidationError as exc:
        logger.debug("Invalid reply record: %s", exc.errors()[:1])
        return None

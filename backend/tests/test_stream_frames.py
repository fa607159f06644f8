from __future__ import annotations

import itertools
import json

from bridge.streaming.decoder import ReplyEventDecoder
from bridge.streaming.frames import StreamFrameExtractor

MIXED_STREAM = (
    'data: {"data": {"author_type": "skill", "message": "", '
    '"skill_calls": [{"name": "get_price", "parameters": {"symbol": "ETH"}, "success": true}]}}\n'
    "\n"
    ": keep-alive comment\n"
    '{"author_type": "agent", "message": "Le prix est 3 000 € ✓"}\n'
    'event: message data-ish {"error": "temporary glitch"} trailing\n'
    "data: null\n"
    '[{"author_type": "agent", "message": "from an array"}]\n'
    'data: {"done": true}\n'
).encode("utf-8")


def extract(chunks: list[bytes]) -> list[str]:
    extractor = StreamFrameExtractor()
    frames: list[str] = []
    for chunk in chunks:
        frames.extend(extractor.feed(chunk))
    frames.extend(extractor.flush())
    return frames


def decoded(chunks: list[bytes]) -> list[tuple]:
    decoder = ReplyEventDecoder()
    events = []
    for frame in extract(chunks):
        for event in decoder.decode_events(frame):
            events.append(
                (
                    event.data.model_dump() if event.data else None,
                    event.error,
                    event.terminal,
                )
            )
    return events


def test_sse_lines_are_unwrapped_and_sentinels_dropped() -> None:
    body = b'data: {"a": 1}\n\ndata: [DONE]\ndata: null\ndata: {"b": 2}\n'
    assert extract([body]) == ['{"a": 1}', '{"b": 2}']


def test_bare_json_lines_pass_through() -> None:
    assert extract([b'{"a": 1}\n  {"b": 2}  \n']) == ['{"a": 1}', '{"b": 2}']


def test_embedded_object_is_recovered_and_noise_discarded() -> None:
    frames = extract([b'id: 7 payload {"a": 1} end\nretry: 1000\nnot json at all\n'])
    assert frames == ['{"a": 1}']


def test_complete_object_without_newline_is_emitted_immediately() -> None:
    extractor = StreamFrameExtractor()
    assert extractor.feed(b'{"author_type": "agent", "message": "hi"}') == [
        '{"author_type": "agent", "message": "hi"}'
    ]
    assert extractor.flush() == []


def test_partial_object_waits_for_more_data() -> None:
    extractor = StreamFrameExtractor()
    assert extractor.feed(b'{"author_type": "ag') == []
    assert extractor.feed(b'ent", "message": "hi"}\n') == [
        '{"author_type": "agent", "message": "hi"}'
    ]


def test_flush_returns_unterminated_sse_frame() -> None:
    extractor = StreamFrameExtractor()
    assert extractor.feed(b'data: {"done": true}') == []
    assert extractor.flush() == ['{"done": true}']


def test_truncated_tail_is_dropped_without_raising() -> None:
    extractor = StreamFrameExtractor()
    extractor.feed(b'data: {"data": {"author_type": "agent", "mess')
    assert extractor.flush() == []
    assert extractor.flush() == []


def test_multibyte_character_split_across_chunks() -> None:
    payload = json.dumps({"author_type": "agent", "message": "héllo"}, ensure_ascii=False)
    raw = f"data: {payload}\n".encode("utf-8")
    split_at = raw.index("é".encode("utf-8")) + 1
    assert extract([raw[:split_at], raw[split_at:]]) == [payload]


def test_events_do_not_depend_on_chunk_boundaries() -> None:
    expected = decoded([MIXED_STREAM])
    assert [event[2] for event in expected] == [False, False, False, False, True]

    for index in range(1, len(MIXED_STREAM)):
        assert decoded([MIXED_STREAM[:index], MIXED_STREAM[index:]]) == expected

    byte_chunks = [MIXED_STREAM[i : i + 1] for i in range(len(MIXED_STREAM))]
    assert decoded(byte_chunks) == expected

    for first, second in itertools.combinations(range(1, len(MIXED_STREAM), 17), 2):
        chunks = [MIXED_STREAM[:first], MIXED_STREAM[first:second], MIXED_STREAM[second:]]
        assert decoded(chunks) == expected


BACK_TO_BACK = (
    b'{"data": {"author_type": "agent", "message": "a"}}{"done": true}\n'
)


def test_back_to_back_objects_on_one_line_are_split() -> None:
    assert extract([BACK_TO_BACK]) == [
        '{"data": {"author_type": "agent", "message": "a"}}',
        '{"done": true}',
    ]
    assert extract([b'data: {"a": 1} {"b": 2}\n']) == ['{"a": 1}', '{"b": 2}']


def test_back_to_back_objects_give_same_events_at_every_split() -> None:
    expected = decoded([BACK_TO_BACK])
    assert [(event[0]["text"] if event[0] else None, event[2]) for event in expected] == [
        ("a", False),
        (None, True),
    ]
    for index in range(1, len(BACK_TO_BACK)):
        assert decoded([BACK_TO_BACK[:index], BACK_TO_BACK[index:]]) == expected


def test_early_objects_then_trailing_text_match_whole_line() -> None:
    line = b'{"a": 1}{broken} data: [{"b": 2}] tail {"c": 3}\n'
    expected = extract([line])
    assert expected == ['{"a": 1}', '{"b": 2}', '{"c": 3}']
    for index in range(1, len(line)):
        assert extract([line[:index], line[index:]]) == expected
    assert extract([line[i : i + 1] for i in range(len(line))]) == expected

"""Incremental extraction of JSON frames from a chunked reply stream.

The backend may answer with Server-Sent Events (``data: {...}``), bare JSON
objects one per line (sometimes several back to back), or a mixture of both.
Chunk boundaries carry no meaning: a frame can be split anywhere, including
inside a multi-byte character.
"""

from __future__ import annotations

import codecs
import json
import logging
import re
from typing import List

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
TERMINAL_SENTINELS = frozenset({"[DONE]", "null"})

_JSON = json.JSONDecoder()
_WHITESPACE = re.compile(r"\s*")


class StreamFrameExtractor:
    """Turn raw byte chunks into candidate JSON frame strings.

    Feed chunks in arrival order with :meth:`feed` and call :meth:`flush` once
    the stream ends. Neither method raises on malformed input; text that does
    not hold a frame is dropped.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        # True when the buffer starts in the middle of a line whose leading
        # objects were already emitted.
        self._mid_line = False

    def feed(self, chunk: bytes | str) -> List[str]:
        """Append a chunk and return every frame completed by it."""

        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        if not text:
            return []
        self._buffer += text
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        frames: List[str] = []
        for line in lines:
            frames.extend(_frames_from_line(line, self._mid_line))
            self._mid_line = False
        frames.extend(self._take_leading_objects())
        return frames

    def flush(self) -> List[str]:
        """Return the candidate frames still held in the buffer."""

        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        mid_line, self._mid_line = self._mid_line, False
        frames: List[str] = []
        for line in remainder.split("\n"):
            found = _frames_from_line(line, mid_line)
            mid_line = False
            if found:
                frames.extend(found)
            elif line.strip():
                logger.warning("Discarding unterminated stream tail: %s", line.strip()[:200])
        return frames

    def _take_leading_objects(self) -> List[str]:
        """Emit complete objects at the start of the unterminated line.

        Only objects that a full-line scan would also find first are taken, so
        the result does not depend on where the chunk ended.
        """

        buffer = self._buffer
        frames: List[str] = []
        position = 0
        while True:
            start = _WHITESPACE.match(buffer, position).end()
            if start >= len(buffer) or buffer[start] != "{":
                break
            try:
                _, end = _JSON.raw_decode(buffer, start)
            except ValueError:
                break
            frames.append(buffer[start:end])
            position = end
        if frames:
            self._buffer = buffer[position:]
            self._mid_line = True
        return frames


def _frames_from_line(line: str, mid_line: bool = False) -> List[str]:
    stripped = line.strip()
    if not stripped:
        return []
    if not mid_line:
        if stripped.startswith(SSE_DATA_PREFIX):
            stripped = stripped[len(SSE_DATA_PREFIX):].strip()
            if not stripped or stripped in TERMINAL_SENTINELS:
                return []
        if stripped.startswith("[") and _is_json_array(stripped):
            return [stripped]
    return _scan_objects(stripped)


def _scan_objects(text: str) -> List[str]:
    """Return every top-level JSON object found in text, left to right."""

    frames: List[str] = []
    position = text.find("{")
    while position != -1:
        try:
            _, end = _JSON.raw_decode(text, position)
        except ValueError:
            position = text.find("{", position + 1)
            continue
        frames.append(text[position:end])
        position = text.find("{", end)
    return frames


def _is_json_array(text: str) -> bool:
    try:
        return isinstance(json.loads(text), list)
    except ValueError:
        return False

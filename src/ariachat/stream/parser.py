"""Incremental parser for the text/event-stream wire format."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

DEFAULT_EVENT_TYPE = "message"
EVENT_PREFIX = "event:"
DATA_PREFIX = "data:"
RECORD_TERMINATOR_RE = re.compile(rb"\r?\n\r?\n")


@dataclass(frozen=True)
class StreamFrame:
    """One parsed SSE record reduced to its event type and data payload."""

    data: str
    event_type: str = DEFAULT_EVENT_TYPE


def parse_record(text: str) -> StreamFrame | None:
    """Parse one SSE record into a frame.

    Returns ``None`` when the record carries no data, including records that
    only name an event type.
    """

    event_type = DEFAULT_EVENT_TYPE
    data_lines: list[str] = []
    for raw_line in text.split("\n"):
        line = raw_line.rstrip("\r")
        if line.startswith(EVENT_PREFIX):
            event_type = line[len(EVENT_PREFIX) :].strip() or DEFAULT_EVENT_TYPE
        elif line.startswith(DATA_PREFIX):
            data_lines.append(line[len(DATA_PREFIX) :].strip())

    data = "\n".join(data_lines).strip()
    if not data:
        return None
    return StreamFrame(data=data, event_type=event_type)


class SSEFrameParser:
    """Turn successive byte chunks into complete frames.

    Only the unconsumed remainder is retained between calls. With
    ``lenient=True`` a buffer holding exactly one newline-terminated line at
    the end of a chunk is also treated as a complete record, for servers
    that do not send the blank-line terminator.
    """

    def __init__(self, *, lenient: bool = False) -> None:
        self._buffer = bytearray()
        self._lenient = lenient

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[StreamFrame]:
        self._buffer.extend(chunk)
        frames: list[StreamFrame] = []
        while match := RECORD_TERMINATOR_RE.search(self._buffer):
            record = bytes(self._buffer[: match.start()])
            del self._buffer[: match.end()]
            self._emit(record, frames)

        if self._lenient and self._buffer and self._buffer.find(b"\n") == len(self._buffer) - 1:
            record = bytes(self._buffer[:-1])
            if record.strip():
                self._buffer.clear()
                self._emit(record, frames)
        return frames

    def flush(self) -> list[StreamFrame]:
        """Parse whatever is left as one final record and reset the buffer."""
        record = bytes(self._buffer)
        self._buffer.clear()
        frames: list[StreamFrame] = []
        self._emit(record, frames)
        return frames

    @staticmethod
    def _emit(record: bytes, frames: list[StreamFrame]) -> None:
        if not record:
            return
        frame = parse_record(record.decode("utf-8", errors="replace"))
        if frame is not None:
            frames.append(frame)


def iter_frames(chunks: Iterable[bytes], *, lenient: bool = False) -> Iterator[StreamFrame]:
    """Parse a finite sequence of chunks, flushing at the end."""

    parser = SSEFrameParser(lenient=lenient)
    for chunk in chunks:
        yield from parser.feed(chunk)
    yield from parser.flush()

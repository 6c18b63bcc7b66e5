"""SSE parsing and transport."""

from ariachat.stream.parser import SSEFrameParser, StreamFrame, iter_frames, parse_record
from ariachat.stream.transport import StreamHandle, StreamingTransport, StreamOutcome, StreamRequest

__all__ = [
    "SSEFrameParser",
    "StreamFrame",
    "StreamHandle",
    "StreamOutcome",
    "StreamRequest",
    "StreamingTransport",
    "iter_frames",
    "parse_record",
]

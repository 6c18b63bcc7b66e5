from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import httpx
import pytest

from ariachat.errors import StreamInterruptedError, TransportError
from ariachat.providers import StaticCredentialProvider
from ariachat.stream.parser import StreamFrame
from ariachat.stream.transport import StreamingTransport, StreamOutcome, StreamRequest

URL = "http://aria.test/api/v1/sessions/s-1/turns"


def sse_response(*chunks: bytes, hold: asyncio.Event | None = None, error: Exception | None = None) -> httpx.Response:
    async def body():
        for chunk in chunks:
            yield chunk
        if hold is not None:
            await hold.wait()
        if error is not None:
            raise error

    return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())


def make_transport(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> StreamingTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StreamingTransport(client, **kwargs)


class Recorder:
    def __init__(self) -> None:
        self.frames: list[StreamFrame] = []
        self.errors: list[TransportError] = []
        self.first_frame = asyncio.Event()

    async def on_frame(self, frame: StreamFrame) -> None:
        self.frames.append(frame)
        self.first_frame.set()

    def on_error(self, error: TransportError) -> None:
        self.errors.append(error)


class SlowCredentials:
    async def get_authorization_header(self) -> str | None:
        await asyncio.sleep(5)
        return "Bearer late"


class BrokenCredentials:
    async def get_authorization_header(self) -> str | None:
        raise RuntimeError("keychain locked")


@pytest.mark.asyncio
async def test_frames_are_delivered_in_order_then_completed() -> None:
    transport = make_transport(
        lambda request: sse_response(
            b"event: message\ndata: one\n\nevent: tool_call\nda",
            b"ta: two\n\n",
            b"data: three",
        )
    )
    recorder = Recorder()

    handle = await transport.open(StreamRequest(url=URL, body={"input": "hi"}), recorder.on_frame, recorder.on_error)
    outcome = await handle.wait()

    assert outcome is StreamOutcome.COMPLETED
    assert recorder.frames == [
        StreamFrame(data="one"),
        StreamFrame(data="two", event_type="tool_call"),
        StreamFrame(data="three"),
    ]
    assert recorder.errors == []
    assert handle.done


@pytest.mark.asyncio
async def test_request_carries_stream_headers_body_and_auth() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return sse_response()

    transport = make_transport(handler, credentials=StaticCredentialProvider("tok"))
    recorder = Recorder()

    handle = await transport.open(StreamRequest(url=URL, body={"input": "hi"}), recorder.on_frame, recorder.on_error)
    await handle.wait()

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == URL
    assert request.headers["accept"] == "text/event-stream"
    assert request.headers["content-type"] == "application/json"
    assert request.headers["authorization"] == "Bearer tok"
    assert json.loads(request.content) == {"input": "hi"}


@pytest.mark.asyncio
async def test_stream_and_connect_timeouts_are_distinct() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return sse_response()

    transport = make_transport(handler, connect_timeout=12.0, stream_timeout=3600.0)
    recorder = Recorder()

    handle = await transport.open(StreamRequest(url=URL, method="GET"), recorder.on_frame, recorder.on_error)
    await handle.wait()

    timeout = seen[0].extensions["timeout"]
    assert timeout["connect"] == 12.0
    assert timeout["read"] == 3600.0
    assert "content-type" not in seen[0].headers


@pytest.mark.asyncio
@pytest.mark.parametrize("credentials", [SlowCredentials(), BrokenCredentials(), StaticCredentialProvider(None)])
async def test_missing_credentials_do_not_stall_the_request(credentials) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return sse_response(b"data: ok\n\n")

    transport = make_transport(handler, credentials=credentials, credential_timeout=0.05)
    recorder = Recorder()

    handle = await asyncio.wait_for(
        transport.open(StreamRequest(url=URL, body={}), recorder.on_frame, recorder.on_error), timeout=1
    )
    await handle.wait()

    assert "authorization" not in seen[0].headers
    assert recorder.frames == [StreamFrame(data="ok")]


@pytest.mark.asyncio
async def test_connection_failure_raises_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    transport = make_transport(handler)
    recorder = Recorder()

    with pytest.raises(TransportError, match="connection refused"):
        await transport.open(StreamRequest(url=URL, body={}), recorder.on_frame, recorder.on_error)
    assert recorder.errors == []


@pytest.mark.asyncio
async def test_error_status_raises_transport_error() -> None:
    transport = make_transport(lambda request: httpx.Response(503, text="down for maintenance"))
    recorder = Recorder()

    with pytest.raises(TransportError) as excinfo:
        await transport.open(StreamRequest(url=URL, body={}), recorder.on_frame, recorder.on_error)
    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_mid_stream_failure_flushes_then_reports_once() -> None:
    transport = make_transport(
        lambda request: sse_response(
            b"data: one\n\ndata: partial",
            error=httpx.ReadError("connection reset"),
        )
    )
    recorder = Recorder()

    handle = await transport.open(StreamRequest(url=URL, body={}), recorder.on_frame, recorder.on_error)
    outcome = await handle.wait()

    assert outcome is StreamOutcome.FAILED
    assert [frame.data for frame in recorder.frames] == ["one", "partial"]
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], StreamInterruptedError)


@pytest.mark.asyncio
async def test_cancel_is_silent_and_idempotent() -> None:
    hold = asyncio.Event()
    transport = make_transport(lambda request: sse_response(b"data: one\n\n", hold=hold))
    recorder = Recorder()
    completions: list[None] = []

    handle = await transport.open(StreamRequest(url=URL, body={}), recorder.on_frame, recorder.on_error)
    handle.add_done_callback(lambda: completions.append(None))
    await asyncio.wait_for(recorder.first_frame.wait(), timeout=1)

    handle.cancel()
    assert handle.cancel_requested
    handle.cancel()
    outcome = await handle.wait()
    handle.cancel()
    await asyncio.sleep(0)

    assert outcome is StreamOutcome.CANCELLED
    assert recorder.errors == []
    assert [frame.data for frame in recorder.frames] == ["one"]
    assert completions == [None]
    assert handle.done


@pytest.mark.asyncio
async def test_cancel_after_completion_is_a_no_op() -> None:
    transport = make_transport(lambda request: sse_response(b"data: one\n\n"))
    recorder = Recorder()

    handle = await transport.open(StreamRequest(url=URL, body={}), recorder.on_frame, recorder.on_error)
    assert await handle.wait() is StreamOutcome.COMPLETED

    handle.cancel()

    assert not handle.cancel_requested
    assert await handle.wait() is StreamOutcome.COMPLETED


@pytest.mark.asyncio
async def test_lenient_transport_accepts_single_newline_records() -> None:
    transport = make_transport(lambda request: sse_response(b"data: one\n", b"data: two\n"), lenient_frames=True)
    recorder = Recorder()

    handle = await transport.open(StreamRequest(url=URL, body={}), recorder.on_frame, recorder.on_error)
    await handle.wait()

    assert [frame.data for frame in recorder.frames] == ["one", "two"]


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open() -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: sse_response()))
    transport = StreamingTransport(client)

    await transport.aclose()

    assert not client.is_closed
    await client.aclose()


class TrackedStream(httpx.AsyncByteStream):
    def __init__(self, *chunks: bytes) -> None:
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


@pytest.mark.asyncio
async def test_cancel_before_reading_starts_still_closes_the_response() -> None:
    stream = TrackedStream(b"data: one\n\n")
    transport = make_transport(lambda request: httpx.Response(200, stream=stream))
    recorder = Recorder()

    handle = await transport.open(StreamRequest(url=URL, body={}), recorder.on_frame, recorder.on_error)
    handle.cancel()
    outcome = await handle.wait()

    assert outcome is StreamOutcome.CANCELLED
    assert stream.closed
    assert recorder.frames == []
    assert recorder.errors == []


@pytest.mark.asyncio
async def test_completed_stream_closes_the_response() -> None:
    stream = TrackedStream(b"data: one\n\n")
    transport = make_transport(lambda request: httpx.Response(200, stream=stream))
    recorder = Recorder()

    handle = await transport.open(StreamRequest(url=URL, body={}), recorder.on_frame, recorder.on_error)

    assert await handle.wait() is StreamOutcome.COMPLETED
    assert stream.closed
    assert [frame.data for frame in recorder.frames] == ["one"]

"""Server-Sent Events transport over httpx.

One ``open()`` call owns one HTTP request/response cycle. The response body
is read by a background task that pushes every chunk through its own
:class:`SSEFrameParser` and hands the resulting frames to ``on_frame`` in
order, before the next chunk is read.

Usage:
    transport = StreamingTransport(credentials=StaticCredentialProvider(token))
    handle = await transport.open(request, on_frame, on_error)
    outcome = await handle.wait()
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeAlias

import httpx
from loguru import logger

from ariachat.config import AriaSettings
from ariachat.errors import StreamInterruptedError, TransportError
from ariachat.providers import CredentialProvider, resolve_authorization
from ariachat.stream.parser import SSEFrameParser, StreamFrame
from ariachat.types import Headers, JsonObject

EVENT_STREAM = "text/event-stream"

FrameCallback: TypeAlias = Callable[[StreamFrame], Awaitable[None] | None]
ErrorCallback: TypeAlias = Callable[[TransportError], Awaitable[None] | None]


@dataclass(frozen=True)
class StreamRequest:
    """A request whose response is expected to be an event stream."""

    url: str
    method: str = "POST"
    headers: Headers = field(default_factory=dict)
    body: JsonObject | None = None

    def build_headers(self) -> Headers:
        headers = {"Accept": EVENT_STREAM, "Cache-Control": "no-cache"}
        if self.body is not None:
            headers["Content-Type"] = "application/json"
        headers.update(self.headers)
        return headers


class StreamOutcome(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StreamHandle:
    """Cancellation token for one in-flight stream.

    The handle owns the response: a read task cancelled before its first step
    never reaches its own cleanup, so the response is closed from here.
    """

    def __init__(self, task: asyncio.Task[StreamOutcome], response: httpx.Response) -> None:
        self.id = str(uuid.uuid4())
        self._task = task
        self._response = response
        self._closing: asyncio.Task[None] | None = None
        task.add_done_callback(self._release)

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancel_requested(self) -> bool:
        return self._task.cancelled() or self._task.cancelling() > 0

    def cancel(self) -> None:
        """Abort the connection; repeated calls and calls after completion do nothing."""
        if self._task.done() or self._task.cancelling():
            return
        logger.debug("stream.cancel handle={}", self.id)
        self._task.cancel()

    def add_done_callback(self, callback: Callable[[], None]) -> None:
        self._task.add_done_callback(lambda _task: callback())

    async def wait(self) -> StreamOutcome:
        await asyncio.wait({self._task})
        if self._closing is not None:
            await self._closing
        if self._task.cancelled():
            return StreamOutcome.CANCELLED
        return self._task.result()

    def _release(self, _task: asyncio.Task[StreamOutcome]) -> None:
        if not self._response.is_closed:
            logger.debug("stream.release handle={}", self.id)
            self._closing = asyncio.ensure_future(self._response.aclose())


async def _call(callback: Callable[[Any], Awaitable[None] | None], value: Any) -> None:
    result = callback(value)
    if inspect.isawaitable(result):
        await result


class StreamingTransport:
    """Open SSE connections and drive a frame parser per connection."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        credentials: CredentialProvider | None = None,
        connect_timeout: float = 30.0,
        stream_timeout: float = 3600.0,
        credential_timeout: float = 0.5,
        lenient_frames: bool = False,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._credentials = credentials
        self._timeout = httpx.Timeout(stream_timeout, connect=connect_timeout)
        self._credential_timeout = credential_timeout
        self._lenient_frames = lenient_frames

    @classmethod
    def from_settings(
        cls,
        settings: AriaSettings,
        client: httpx.AsyncClient | None = None,
        *,
        credentials: CredentialProvider | None = None,
    ) -> StreamingTransport:
        return cls(
            client,
            credentials=credentials,
            connect_timeout=settings.connect_timeout_seconds,
            stream_timeout=settings.stream_timeout_seconds,
            credential_timeout=settings.credential_timeout_seconds,
            lenient_frames=settings.lenient_frames,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def open(
        self,
        request: StreamRequest,
        on_frame: FrameCallback,
        on_error: ErrorCallback,
    ) -> StreamHandle:
        """Connect and start reading the event stream.

        Raises:
            TransportError: If the connection fails or the server answers with an error status
        """
        headers = request.build_headers()
        authorization = await resolve_authorization(self._credentials, self._credential_timeout)
        if authorization:
            headers["Authorization"] = authorization

        http_request = self._client.build_request(
            request.method,
            request.url,
            headers=headers,
            json=request.body,
            timeout=self._timeout,
        )
        logger.info("stream.open method={} url={} auth={}", request.method, request.url, bool(authorization))
        try:
            response = await self._client.send(http_request, stream=True)
        except httpx.TimeoutException as exc:
            raise TransportError(f"connection to {request.url} timed out") from exc
        except httpx.RequestError as exc:
            raise TransportError(f"connection to {request.url} failed: {exc}") from exc

        if response.is_error:
            await response.aread()
            await response.aclose()
            raise TransportError(
                f"stream request failed with HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        task = asyncio.create_task(self._read(response, on_frame, on_error))
        return StreamHandle(task, response)

    async def _read(
        self,
        response: httpx.Response,
        on_frame: FrameCallback,
        on_error: ErrorCallback,
    ) -> StreamOutcome:
        parser = SSEFrameParser(lenient=self._lenient_frames)
        frames_read = 0
        try:
            async for chunk in response.aiter_bytes():
                for frame in parser.feed(chunk):
                    frames_read += 1
                    await _call(on_frame, frame)
        except asyncio.CancelledError:
            logger.info("stream.cancelled frames={}", frames_read)
            raise
        except httpx.HTTPError as exc:
            for frame in parser.flush():
                frames_read += 1
                await _call(on_frame, frame)
            logger.warning("stream.interrupted frames={} error={}", frames_read, exc)
            await _call(on_error, StreamInterruptedError(f"stream interrupted: {exc}"))
            return StreamOutcome.FAILED
        finally:
            await response.aclose()

        for frame in parser.flush():
            frames_read += 1
            await _call(on_frame, frame)
        logger.info("stream.closed frames={}", frames_read)
        return StreamOutcome.COMPLETED

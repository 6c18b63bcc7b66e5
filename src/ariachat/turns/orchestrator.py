"""Turn execution orchestrator.

A turn is one user input and the streamed sequence of events it produces.
The orchestrator resolves the session, opens the event stream, decodes each
frame and forwards the resulting events to the caller's sink in arrival
order. Transport callbacks only enqueue into a per-turn inbox; the coroutine
running ``execute_turn`` is the single consumer and the only writer of
:class:`TurnState`.

Usage:
    orchestrator = TurnOrchestrator(settings, transport, sessions)
    await orchestrator.execute_turn("hello", print)
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TypeAlias
from urllib.parse import quote

from loguru import logger

from ariachat.config import AriaSettings
from ariachat.errors import SessionError, TransportError, TurnError
from ariachat.logging_utils import turn_context
from ariachat.providers import SessionProvider, turns_path
from ariachat.stream.parser import StreamFrame
from ariachat.stream.transport import StreamHandle, StreamingTransport, StreamRequest
from ariachat.turns.decoder import TurnEventDecoder
from ariachat.turns.events import EventSink, TurnOutputEvent
from ariachat.turns.fallback import DEFAULT_DELAYS, play_simulated_turn


class TurnPhase(StrEnum):
    IDLE = "idle"
    RESOLVING_SESSION = "resolving_session"
    STREAMING = "streaming"
    SETTLED = "settled"


_PROCESSING_PHASES = frozenset({TurnPhase.RESOLVING_SESSION, TurnPhase.STREAMING})


@dataclass(frozen=True)
class TurnState:
    """Observable turn lifecycle snapshot."""

    phase: TurnPhase = TurnPhase.IDLE
    last_error: Exception | None = None

    @property
    def is_processing(self) -> bool:
        return self.phase in _PROCESSING_PHASES

    @property
    def is_complete(self) -> bool:
        return self.phase is TurnPhase.SETTLED


StateListener: TypeAlias = Callable[[TurnState], None]

WARNINGS_MAXSIZE = 64

_STREAM_CLOSED = object()
_KEEP = object()


@dataclass
class _TurnRun:
    id: str
    input_text: str
    sink: EventSink
    inbox: asyncio.Queue[object] = field(default_factory=asyncio.Queue)
    stopped: asyncio.Event = field(default_factory=asyncio.Event)
    handle: StreamHandle | None = None
    delivered: int = 0


class TurnOrchestrator:
    """Run one turn at a time against the Aria runtime."""

    def __init__(
        self,
        settings: AriaSettings,
        transport: StreamingTransport,
        sessions: SessionProvider,
        *,
        decoder: TurnEventDecoder | None = None,
        fallback_delays: Sequence[float] = DEFAULT_DELAYS,
        warnings_maxsize: int = WARNINGS_MAXSIZE,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._sessions = sessions
        self._decoder = decoder or TurnEventDecoder()
        self._fallback_delays = tuple(fallback_delays)
        self._state = TurnState()
        self._active: _TurnRun | None = None
        self._listeners: list[StateListener] = []
        # Non-fatal stream errors; the oldest is dropped once the queue is full.
        self.warnings: asyncio.Queue[TransportError] = asyncio.Queue(maxsize=warnings_maxsize)

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._state.is_processing

    @property
    def is_complete(self) -> bool:
        return self._state.is_complete

    @property
    def last_error(self) -> Exception | None:
        return self._state.last_error

    @property
    def active_handle(self) -> StreamHandle | None:
        return self._active.handle if self._active else None

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a state observer and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def execute_turn(self, input_text: str, sink: EventSink) -> None:
        """Run one turn, forwarding decoded events to ``sink``.

        Raises:
            TurnError: If the session cannot be resolved
        """
        run = _TurnRun(id=uuid.uuid4().hex[:12], input_text=input_text, sink=sink)
        previous = self._active
        self._active = run
        self._set_state(TurnPhase.RESOLVING_SESSION, last_error=None)
        if previous is not None:
            logger.info("turn.supersede previous={} next={}", previous.id, run.id)
            self._stop(previous)

        with turn_context(run.id):
            logger.info("turn.start chars={}", len(input_text))
            try:
                await self._run(run)
            finally:
                self._finish(run)

    async def cancel_current_turn(self) -> None:
        run = self._active
        if run is None:
            return
        logger.info("turn.cancel id={} delivered={}", run.id, run.delivered)
        self._stop(run)
        self._active = None
        self._set_state(TurnPhase.SETTLED)

    async def aclose(self) -> None:
        await self.cancel_current_turn()
        await self._transport.aclose()

    async def _run(self, run: _TurnRun) -> None:
        try:
            session_id = await self._sessions.get_current_session_id()
        except SessionError as exc:
            logger.error("turn.session.error error={}", exc)
            self._record_error(run, exc)
            raise TurnError(f"could not resolve a session: {exc}") from exc

        if run.stopped.is_set():
            logger.info("turn.superseded phase={}", TurnPhase.RESOLVING_SESSION)
            return

        request = self.build_request(session_id, run.input_text)
        try:
            run.handle = await self._transport.open(request, run.inbox.put_nowait, run.inbox.put_nowait)
        except TransportError as exc:
            await self._fallback(run, exc)
            return

        run.handle.add_done_callback(lambda: run.inbox.put_nowait(_STREAM_CLOSED))
        if run.stopped.is_set():
            logger.info("turn.superseded phase=opening")
            run.handle.cancel()
            await run.handle.wait()
            return
        self._transition(run, TurnPhase.STREAMING)
        await self._consume(run)
        outcome = await run.handle.wait()
        logger.info("turn.done session={} outcome={} events={}", session_id, outcome, run.delivered)

    def build_request(self, session_id: str, input_text: str) -> StreamRequest:
        url = f"{self._settings.base_url}{turns_path(quote(session_id, safe=''))}"
        return StreamRequest(url=url, body={"input": input_text})

    async def _consume(self, run: _TurnRun) -> None:
        while True:
            item = await run.inbox.get()
            if item is _STREAM_CLOSED or run.stopped.is_set():
                return
            if isinstance(item, TransportError):
                self._record_error(run, item)
                self._publish_warning(item)
                continue
            if isinstance(item, StreamFrame) and (event := self._decoder.decode(item)) is not None:
                await self._deliver(run, event)

    def _publish_warning(self, error: TransportError) -> None:
        if self.warnings.full():
            dropped = self.warnings.get_nowait()
            logger.debug("turn.warning.dropped error={}", dropped)
        self.warnings.put_nowait(error)

    async def _fallback(self, run: _TurnRun, exc: TransportError) -> None:
        if not self._settings.fallback_enabled:
            logger.error("turn.transport.error fallback=disabled error={}", exc)
            self._record_error(run, exc)
            return

        logger.warning("turn.fallback.start reason={}", exc)
        self._transition(run, TurnPhase.STREAMING)

        async def emit(event: TurnOutputEvent) -> None:
            await self._deliver(run, event)

        emitted = await play_simulated_turn(run.input_text, emit, stop=run.stopped, delays=self._fallback_delays)
        logger.warning("turn.fallback.done events={}", emitted)

    async def _deliver(self, run: _TurnRun, event: TurnOutputEvent) -> None:
        if run.stopped.is_set():
            return
        result = run.sink(event)
        if inspect.isawaitable(result):
            await result
        run.delivered += 1

    def _stop(self, run: _TurnRun) -> None:
        run.stopped.set()
        if run.handle is not None:
            run.handle.cancel()

    def _finish(self, run: _TurnRun) -> None:
        self._stop(run)
        if self._active is run:
            self._active = None
            self._set_state(TurnPhase.SETTLED)

    def _record_error(self, run: _TurnRun, exc: Exception) -> None:
        if self._active is run:
            self._set_state(self._state.phase, last_error=exc)

    def _transition(self, run: _TurnRun, phase: TurnPhase) -> None:
        if self._active is run:
            self._set_state(phase)

    def _set_state(self, phase: TurnPhase, *, last_error: Exception | None | object = _KEEP) -> None:
        if last_error is _KEEP:
            self._state = replace(self._state, phase=phase)
        else:
            self._state = replace(self._state, phase=phase, last_error=last_error)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("turn.state.listener.error")

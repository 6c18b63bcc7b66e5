"""Locally simulated turn used when the runtime cannot be reached."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

from loguru import logger

from ariachat.turns.events import (
    FinalResponse,
    Message,
    MessageMetadata,
    MessageRole,
    ToolCall,
    ToolResult,
    TurnOutputEvent,
    new_event_id,
)

SIMULATED_MESSAGE_TYPE = "simulated"
SIMULATED_TOOL = "KnowledgeRetriever"
# Seconds to wait before each simulated event.
DEFAULT_DELAYS: tuple[float, ...] = (0.0, 0.3, 0.5, 0.8, 0.5)


def build_simulated_events(input_text: str) -> list[TurnOutputEvent]:
    call_id = new_event_id()
    return [
        Message(
            id=new_event_id(),
            role=MessageRole.ASSISTANT,
            content="The runtime is unavailable, answering locally.",
            metadata=MessageMetadata(is_status=True, message_type=SIMULATED_MESSAGE_TYPE),
        ),
        Message(
            id=new_event_id(),
            role=MessageRole.THOUGHT,
            content="Analyzing your request...",
            metadata=MessageMetadata(message_type=SIMULATED_MESSAGE_TYPE),
        ),
        ToolCall(id=call_id, tool_name=SIMULATED_TOOL, parameters={"query": input_text}),
        ToolResult(
            tool_call_id=call_id,
            tool_name=SIMULATED_TOOL,
            output="Found relevant information",
            success=True,
        ),
        FinalResponse(content=f"Based on my analysis, here's a response to your query: {input_text}"),
    ]


async def _stopped_within(stop: asyncio.Event, delay: float) -> bool:
    if delay <= 0:
        return stop.is_set()
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
    except TimeoutError:
        return False
    return True


async def play_simulated_turn(
    input_text: str,
    emit: Callable[[TurnOutputEvent], Awaitable[None]],
    *,
    stop: asyncio.Event,
    delays: Sequence[float] = DEFAULT_DELAYS,
) -> int:
    """Emit the simulated sequence, returning how many events went out before ``stop`` was set."""

    emitted = 0
    for index, event in enumerate(build_simulated_events(input_text)):
        delay = delays[index] if index < len(delays) else 0.0
        if await _stopped_within(stop, delay):
            logger.info("turn.fallback.stopped emitted={}", emitted)
            break
        await emit(event)
        emitted += 1
    return emitted

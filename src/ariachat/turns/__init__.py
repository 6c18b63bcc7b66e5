"""Turn events, decoding and orchestration."""

from ariachat.turns.decoder import TurnEventDecoder
from ariachat.turns.events import (
    FinalResponse,
    Message,
    MessageMetadata,
    MessageRole,
    ToolCall,
    ToolResult,
    TurnOutputEvent,
)
from ariachat.turns.orchestrator import TurnOrchestrator, TurnPhase, TurnState

__all__ = [
    "FinalResponse",
    "Message",
    "MessageMetadata",
    "MessageRole",
    "ToolCall",
    "ToolResult",
    "TurnEventDecoder",
    "TurnOrchestrator",
    "TurnOutputEvent",
    "TurnPhase",
    "TurnState",
]

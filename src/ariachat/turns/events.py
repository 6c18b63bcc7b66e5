"""Turn output event models."""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TypeAlias


class MessageRole(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    THOUGHT = "thought"
    TOOL = "tool"

    @classmethod
    def parse(cls, raw: str) -> MessageRole:
        """Map a wire role case-insensitively, defaulting to assistant."""
        try:
            return cls(raw.strip().casefold())
        except ValueError:
            return cls.ASSISTANT


@dataclass(frozen=True)
class MessageMetadata:
    """Presentation hints attached to a message."""

    is_status: bool = False
    is_final: bool = False
    message_type: str = "text"


@dataclass(frozen=True)
class Message:
    """A message produced during a turn."""

    id: str
    role: MessageRole
    content: str
    metadata: MessageMetadata | None = None


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation announced by the runtime."""

    id: str
    tool_name: str
    parameters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    """The outcome of one tool invocation."""

    tool_call_id: str
    tool_name: str
    output: str
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class FinalResponse:
    """The closing answer of a turn."""

    content: str


TurnOutputEvent: TypeAlias = Message | ToolCall | ToolResult | FinalResponse
EventSink: TypeAlias = Callable[[TurnOutputEvent], Awaitable[None] | None]


def new_event_id() -> str:
    return str(uuid.uuid4())

"""Decode SSE frames into turn output events."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from ariachat.stream.parser import StreamFrame
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

ERROR_MESSAGE_TYPE = "error"


class _WirePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class WireMetadata(_WirePayload):
    is_status: bool = False
    is_final: bool = False
    message_type: str = "text"


class WireMessage(_WirePayload):
    id: str
    role: str
    content: str
    metadata: WireMetadata | None = None


class WireToolCall(_WirePayload):
    tool_name: str
    parameters_json: dict[str, Any]


class WireToolResult(_WirePayload):
    tool_name: str
    result_json: dict[str, Any]
    success: bool


class WireFinalResponse(_WirePayload):
    content: str


class WireError(_WirePayload):
    message: str | None = None


def stringify_parameter(value: Any) -> str:
    """Render one tool parameter; strings pass through untouched."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class TurnEventDecoder:
    """Map frames onto turn output events, dropping anything undecodable."""

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[[str], TurnOutputEvent | None]] = {
            "message": self._decode_message,
            "tool_call": self._decode_tool_call,
            "tool_result": self._decode_tool_result,
            "final_response": self._decode_final_response,
            "error": self._decode_error,
        }

    @property
    def event_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def decode(self, frame: StreamFrame) -> TurnOutputEvent | None:
        handler = self._handlers.get(frame.event_type)
        if handler is None:
            logger.debug("decoder.ignore event_type={}", frame.event_type)
            return None
        try:
            return handler(frame.data)
        except ValidationError as exc:
            logger.warning(
                "decoder.drop event_type={} errors={} data={!r}",
                frame.event_type,
                exc.error_count(),
                frame.data[:200],
            )
            return None

    def decode_all(self, frames: Iterable[StreamFrame]) -> list[TurnOutputEvent]:
        events: list[TurnOutputEvent] = []
        for frame in frames:
            event = self.decode(frame)
            if event is not None:
                events.append(event)
        return events

    @staticmethod
    def _decode_message(data: str) -> Message:
        payload = WireMessage.model_validate_json(data)
        metadata = None
        if payload.metadata is not None:
            metadata = MessageMetadata(
                is_status=payload.metadata.is_status,
                is_final=payload.metadata.is_final,
                message_type=payload.metadata.message_type,
            )
        return Message(
            id=payload.id,
            role=MessageRole.parse(payload.role),
            content=payload.content,
            metadata=metadata,
        )

    @staticmethod
    def _decode_tool_call(data: str) -> ToolCall:
        payload = WireToolCall.model_validate_json(data)
        return ToolCall(
            id=new_event_id(),
            tool_name=payload.tool_name,
            parameters={key: stringify_parameter(value) for key, value in payload.parameters_json.items()},
        )

    @staticmethod
    def _decode_tool_result(data: str) -> ToolResult:
        payload = WireToolResult.model_validate_json(data)
        return ToolResult(
            tool_call_id=new_event_id(),
            tool_name=payload.tool_name,
            output=json.dumps(payload.result_json, indent=2, sort_keys=True, ensure_ascii=False),
            success=payload.success,
        )

    @staticmethod
    def _decode_final_response(data: str) -> FinalResponse:
        payload = WireFinalResponse.model_validate_json(data)
        return FinalResponse(content=payload.content)

    @staticmethod
    def _decode_error(data: str) -> Message | None:
        payload = WireError.model_validate_json(data)
        if not payload.message:
            logger.warning("decoder.error_without_message data={!r}", data[:200])
            return None
        logger.warning("decoder.stream_error message={}", payload.message)
        return Message(
            id=new_event_id(),
            role=MessageRole.ASSISTANT,
            content=f"Error: {payload.message}",
            metadata=MessageMetadata(is_final=True, message_type=ERROR_MESSAGE_TYPE),
        )

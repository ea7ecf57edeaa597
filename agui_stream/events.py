"""
AG-UI protocol event types.

Every event travelling between the agent and its consumer is one variant of
a closed, tagged union keyed by ``type``. Variants are pydantic models so
they can be constructed in Python with snake_case names and serialized with
the camelCase keys used on the wire.

Reference: https://docs.ag-ui.com/concepts/events
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Mapping, Union

from pydantic import ConfigDict

from .schemas import Message, Role, RunAgentInput, WireModel


class EventType(str, Enum):
    """AG-UI protocol event types."""

    # Lifecycle events
    RUN_STARTED = "run-started"
    RUN_FINISHED = "run-finished"
    RUN_ERROR = "run-error"

    # Step events
    STEP_STARTED = "step-started"
    STEP_FINISHED = "step-finished"

    # Text message events (streaming pattern: START -> CONTENT* -> END)
    TEXT_MESSAGE_START = "text-message-start"
    TEXT_MESSAGE_CONTENT = "text-message-content"
    TEXT_MESSAGE_END = "text-message-end"
    TEXT_MESSAGE_CHUNK = "text-message-chunk"

    # Tool call events (streaming pattern: START -> ARGS* -> END -> RESULT)
    TOOL_CALL_START = "tool-call-start"
    TOOL_CALL_ARGS = "tool-call-args"
    TOOL_CALL_END = "tool-call-end"
    TOOL_CALL_RESULT = "tool-call-result"
    TOOL_CALL_CHUNK = "tool-call-chunk"

    # State synchronization events
    STATE_SNAPSHOT = "state-snapshot"
    STATE_DELTA = "state-delta"
    MESSAGES_SNAPSHOT = "messages-snapshot"

    # Activity events
    ACTIVITY_SNAPSHOT = "activity-snapshot"
    ACTIVITY_DELTA = "activity-delta"

    # Raw/custom events
    RAW = "raw"
    CUSTOM = "custom"


class BaseEvent(WireModel):
    """Base class for all AG-UI events."""

    type: EventType
    timestamp: int | None = None
    raw_event: Any | None = None


class RunStartedEvent(BaseEvent):
    """Emitted when an agent run begins."""

    type: EventType = EventType.RUN_STARTED
    thread_id: str
    run_id: str
    parent_run_id: str | None = None
    input: RunAgentInput | None = None


class RunFinishedEvent(BaseEvent):
    """Emitted when an agent run completes."""

    type: EventType = EventType.RUN_FINISHED
    thread_id: str
    run_id: str
    result: Any | None = None
    outcome: Literal["success", "interrupt"] | None = None
    interrupt: Any | None = None


class RunErrorEvent(BaseEvent):
    """Emitted when an agent run fails."""

    type: EventType = EventType.RUN_ERROR
    message: str
    code: str | None = None


class StepStartedEvent(BaseEvent):
    """Emitted when a step within a run begins."""

    type: EventType = EventType.STEP_STARTED
    step_name: str


class StepFinishedEvent(BaseEvent):
    """Emitted when a step within a run completes."""

    type: EventType = EventType.STEP_FINISHED
    step_name: str


class TextMessageStartEvent(BaseEvent):
    """Signals the start of a new text message."""

    type: EventType = EventType.TEXT_MESSAGE_START
    message_id: str
    role: Role = "assistant"


class TextMessageContentEvent(BaseEvent):
    """Carries a chunk of text content for streaming."""

    type: EventType = EventType.TEXT_MESSAGE_CONTENT
    message_id: str
    delta: str  # Text chunk to append


class TextMessageEndEvent(BaseEvent):
    """Signals the end of a text message."""

    type: EventType = EventType.TEXT_MESSAGE_END
    message_id: str


class TextMessageChunkEvent(BaseEvent):
    """Self-describing text fragment that opens its message on first sight."""

    type: EventType = EventType.TEXT_MESSAGE_CHUNK
    message_id: str | None = None
    role: Role | None = None
    delta: str | None = None


class ToolCallStartEvent(BaseEvent):
    """Signals the start of a tool call."""

    type: EventType = EventType.TOOL_CALL_START
    tool_call_id: str
    tool_call_name: str
    parent_message_id: str | None = None


class ToolCallArgsEvent(BaseEvent):
    """Carries a chunk of tool call arguments."""

    type: EventType = EventType.TOOL_CALL_ARGS
    tool_call_id: str
    delta: str  # JSON fragment to append


class ToolCallEndEvent(BaseEvent):
    """Signals the end of a tool call."""

    type: EventType = EventType.TOOL_CALL_END
    tool_call_id: str


class ToolCallResultEvent(BaseEvent):
    """Contains the result of a tool call."""

    type: EventType = EventType.TOOL_CALL_RESULT
    message_id: str
    tool_call_id: str
    content: str
    role: Role | None = None


class ToolCallChunkEvent(BaseEvent):
    """Self-describing tool call fragment."""

    type: EventType = EventType.TOOL_CALL_CHUNK
    tool_call_id: str | None = None
    tool_call_name: str | None = None
    parent_message_id: str | None = None
    delta: str | None = None


class StateSnapshotEvent(BaseEvent):
    type: EventType = EventType.STATE_SNAPSHOT
    snapshot: Any


class StateDeltaEvent(BaseEvent):
    type: EventType = EventType.STATE_DELTA
    delta: list[Any]  # JSON Patch operations (RFC 6902)


class MessagesSnapshotEvent(BaseEvent):
    type: EventType = EventType.MESSAGES_SNAPSHOT
    messages: list[Message]


class ActivitySnapshotEvent(BaseEvent):
    type: EventType = EventType.ACTIVITY_SNAPSHOT
    message_id: str
    activity_type: str
    content: Any
    replace: bool | None = None


class ActivityDeltaEvent(BaseEvent):
    type: EventType = EventType.ACTIVITY_DELTA
    message_id: str
    activity_type: str
    patch: list[Any]  # JSON Patch operations


class RawEvent(BaseEvent):
    """Passthrough for payloads produced by a foreign event system."""

    type: EventType = EventType.RAW
    event: Any
    source: str | None = None


class CustomEvent(BaseEvent):
    """Application-defined event."""

    type: EventType = EventType.CUSTOM
    name: str
    value: Any


class UnknownEvent(WireModel):
    """Event whose ``type`` this version does not model; kept verbatim."""

    type: str
    timestamp: int | None = None

    model_config = ConfigDict(extra="allow")


EVENT_MODELS: dict[EventType, type[BaseEvent]] = {
    EventType.RUN_STARTED: RunStartedEvent,
    EventType.RUN_FINISHED: RunFinishedEvent,
    EventType.RUN_ERROR: RunErrorEvent,
    EventType.STEP_STARTED: StepStartedEvent,
    EventType.STEP_FINISHED: StepFinishedEvent,
    EventType.TEXT_MESSAGE_START: TextMessageStartEvent,
    EventType.TEXT_MESSAGE_CONTENT: TextMessageContentEvent,
    EventType.TEXT_MESSAGE_END: TextMessageEndEvent,
    EventType.TEXT_MESSAGE_CHUNK: TextMessageChunkEvent,
    EventType.TOOL_CALL_START: ToolCallStartEvent,
    EventType.TOOL_CALL_ARGS: ToolCallArgsEvent,
    EventType.TOOL_CALL_END: ToolCallEndEvent,
    EventType.TOOL_CALL_RESULT: ToolCallResultEvent,
    EventType.TOOL_CALL_CHUNK: ToolCallChunkEvent,
    EventType.STATE_SNAPSHOT: StateSnapshotEvent,
    EventType.STATE_DELTA: StateDeltaEvent,
    EventType.MESSAGES_SNAPSHOT: MessagesSnapshotEvent,
    EventType.ACTIVITY_SNAPSHOT: ActivitySnapshotEvent,
    EventType.ACTIVITY_DELTA: ActivityDeltaEvent,
    EventType.RAW: RawEvent,
    EventType.CUSTOM: CustomEvent,
}

AnyEvent = Union[BaseEvent, UnknownEvent]


def parse_event(data: Mapping[str, Any]) -> AnyEvent:
    """
    Parse a decoded JSON object into a typed AG-UI event.

    Args:
        data: One event payload as read from the stream

    Returns:
        The matching event model, or ``UnknownEvent`` for a ``type`` this
        version does not know about.

    Raises:
        ValueError: if the payload has no string ``type`` or its fields do
            not match the variant (``pydantic.ValidationError`` is a
            ``ValueError``).
    """
    event_type_str = data.get("type")
    if not isinstance(event_type_str, str) or not event_type_str:
        raise ValueError("Event payload is missing a 'type' discriminant")

    try:
        event_type = EventType(event_type_str)
    except ValueError:
        # Forward compatibility: newer servers may emit kinds we do not model.
        return UnknownEvent.model_validate(dict(data))

    return EVENT_MODELS[event_type].model_validate({**data, "type": event_type})


__all__ = [
    "ActivityDeltaEvent",
    "ActivitySnapshotEvent",
    "AnyEvent",
    "BaseEvent",
    "CustomEvent",
    "EVENT_MODELS",
    "EventType",
    "MessagesSnapshotEvent",
    "RawEvent",
    "RunErrorEvent",
    "RunFinishedEvent",
    "RunStartedEvent",
    "StateDeltaEvent",
    "StateSnapshotEvent",
    "StepFinishedEvent",
    "StepStartedEvent",
    "TextMessageChunkEvent",
    "TextMessageContentEvent",
    "TextMessageEndEvent",
    "TextMessageStartEvent",
    "ToolCallArgsEvent",
    "ToolCallChunkEvent",
    "ToolCallEndEvent",
    "ToolCallResultEvent",
    "ToolCallStartEvent",
    "UnknownEvent",
    "parse_event",
]

"""
Stream reducer: folds an ordered AG-UI event sequence into messages.

The reducer owns two arenas keyed by id, the messages still streaming and
the tool calls not yet resolved, plus the ordered output list. It never
raises on protocol input: events that reference unknown ids, duplicate
starts and unmodelled kinds degrade to logged no-ops.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from pydantic import Field

from .config import ReducerConfig
from .events import (
    AnyEvent,
    EventType,
    MessagesSnapshotEvent,
    RunErrorEvent,
    RunFinishedEvent,
    RunStartedEvent,
    StateSnapshotEvent,
    StepFinishedEvent,
    StepStartedEvent,
    TextMessageChunkEvent,
    TextMessageContentEvent,
    TextMessageEndEvent,
    TextMessageStartEvent,
    ToolCallArgsEvent,
    ToolCallChunkEvent,
    ToolCallEndEvent,
    ToolCallResultEvent,
    ToolCallStartEvent,
)
from .schemas import Message, Role, ToolCall


LOGGER = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class StreamMessage(Message):
    """A message in the output list; ``is_streaming`` is local state only."""

    is_streaming: bool = Field(default=False, exclude=True)

    def to_message(self) -> Message:
        """Plain wire message, e.g. for the next ``RunAgentInput``."""
        return Message.model_validate(self.model_dump())


class StreamReducer:
    """
    Rebuilds messages and tool calls from decoded events.

    Usage:
        reducer = StreamReducer()
        for event in events:
            reducer.handle_event(event)
        reducer.messages  # ordered, finalized output
    """

    def __init__(self, config: ReducerConfig | None = None) -> None:
        self.config = config or ReducerConfig()
        self.messages: list[StreamMessage] = []
        self.current_tool_call: ToolCall | None = None
        self.run_id: str | None = None
        self.thread_id: str | None = None
        self.outcome: str | None = None
        self.last_error: str | None = None
        self.state: Any = None
        self._active_messages: dict[str, StreamMessage] = {}
        self._active_tool_calls: dict[str, ToolCall] = {}
        self._orphan_tool_calls: list[ToolCall] = []
        self._handlers: dict[EventType, Callable[[Any], None]] = {
            EventType.RUN_STARTED: self._on_run_started,
            EventType.RUN_FINISHED: self._on_run_finished,
            EventType.RUN_ERROR: self._on_run_error,
            EventType.STEP_STARTED: self._on_step,
            EventType.STEP_FINISHED: self._on_step,
            EventType.TEXT_MESSAGE_START: self._on_text_message_start,
            EventType.TEXT_MESSAGE_CONTENT: self._on_text_message_content,
            EventType.TEXT_MESSAGE_END: self._on_text_message_end,
            EventType.TEXT_MESSAGE_CHUNK: self._on_text_message_chunk,
            EventType.TOOL_CALL_START: self._on_tool_call_start,
            EventType.TOOL_CALL_ARGS: self._on_tool_call_args,
            EventType.TOOL_CALL_END: self._on_tool_call_end,
            EventType.TOOL_CALL_RESULT: self._on_tool_call_result,
            EventType.TOOL_CALL_CHUNK: self._on_tool_call_chunk,
            EventType.STATE_SNAPSHOT: self._on_state_snapshot,
            EventType.MESSAGES_SNAPSHOT: self._on_messages_snapshot,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def active_message_ids(self) -> list[str]:
        return list(self._active_messages)

    @property
    def active_tool_call_ids(self) -> list[str]:
        return list(self._active_tool_calls)

    @property
    def orphan_tool_calls(self) -> list[ToolCall]:
        return list(self._orphan_tool_calls)

    def handle_event(self, event: AnyEvent) -> None:
        """Apply one event. Unknown or unhandled kinds are ignored."""
        handler = self._handlers.get(event.type)
        if handler is None:
            LOGGER.debug("Unhandled event: %s", event.type)
            return
        handler(event)

    def add_message(self, message: Message) -> StreamMessage:
        """Append a finalized message, e.g. the user's own turn."""
        entry = StreamMessage.model_validate(message.model_dump())
        self.messages.append(entry)
        return entry

    def snapshot(self) -> list[StreamMessage]:
        """Deep copy of the output list for readers outside the event loop."""
        return [message.model_copy(deep=True) for message in self.messages]

    def clear(self) -> None:
        self.messages = []
        self._active_messages.clear()
        self._active_tool_calls.clear()
        self._orphan_tool_calls.clear()
        self.current_tool_call = None
        self.run_id = None
        self.thread_id = None
        self.outcome = None
        self.last_error = None
        self.state = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _on_run_started(self, event: RunStartedEvent) -> None:
        LOGGER.info("Run started: %s", event.run_id)
        self.run_id = event.run_id
        self.thread_id = event.thread_id
        self.outcome = None
        self.last_error = None

    def _on_run_finished(self, event: RunFinishedEvent) -> None:
        LOGGER.info("Run finished: %s", event.outcome)
        self.outcome = event.outcome or "success"

    def _on_run_error(self, event: RunErrorEvent) -> None:
        LOGGER.error("Run error: %s", event.message)
        self.last_error = event.message

    def _on_step(self, event: StepStartedEvent | StepFinishedEvent) -> None:
        LOGGER.debug("%s: %s", event.type.value, event.step_name)

    # ------------------------------------------------------------------
    # Text messages
    # ------------------------------------------------------------------

    def _open_message(self, message_id: str, role: Role, timestamp: int | None) -> None:
        existing = self._active_messages.get(message_id)
        if existing is not None:
            if self.config.duplicate_start == "ignore":
                LOGGER.warning("Duplicate start for open message %s ignored", message_id)
                return
            LOGGER.warning("Duplicate start for open message %s; restarting it", message_id)
            self.messages = [message for message in self.messages if message is not existing]

        message = StreamMessage(
            id=message_id,
            role=role,
            content="",
            is_streaming=True,
            timestamp=timestamp if timestamp is not None else _now_ms(),
        )
        if role == "assistant" and self._orphan_tool_calls:
            message.tool_calls = list(self._orphan_tool_calls)
            self._orphan_tool_calls.clear()
        self._active_messages[message_id] = message
        self.messages.append(message)

    def _append_content(self, message_id: str, delta: str) -> None:
        message = self._active_messages.get(message_id)
        if message is None:
            LOGGER.debug("Dropping delta for unopened message %s", message_id)
            return
        message.content += delta

    def _on_text_message_start(self, event: TextMessageStartEvent) -> None:
        self._open_message(event.message_id, event.role, event.timestamp)

    def _on_text_message_content(self, event: TextMessageContentEvent) -> None:
        self._append_content(event.message_id, event.delta)

    def _on_text_message_end(self, event: TextMessageEndEvent) -> None:
        message = self._active_messages.pop(event.message_id, None)
        if message is None:
            LOGGER.debug("End for unopened message %s ignored", event.message_id)
            return
        message.is_streaming = False

    def _on_text_message_chunk(self, event: TextMessageChunkEvent) -> None:
        if event.message_id is None:
            LOGGER.debug("Text chunk without message id ignored")
            return
        if event.message_id not in self._active_messages:
            self._open_message(event.message_id, event.role or "assistant", event.timestamp)
        if event.delta:
            self._append_content(event.message_id, event.delta)

    # ------------------------------------------------------------------
    # Tool calls
    # ------------------------------------------------------------------

    def _open_tool_call(self, tool_call_id: str, name: str) -> None:
        tool_call = ToolCall(id=tool_call_id, name=name, arguments="")
        self._active_tool_calls[tool_call_id] = tool_call
        self.current_tool_call = tool_call

    def _append_arguments(self, tool_call_id: str, delta: str) -> None:
        tool_call = self._active_tool_calls.get(tool_call_id)
        if tool_call is None:
            LOGGER.debug("Dropping args for unopened tool call %s", tool_call_id)
            return
        tool_call.arguments += delta

    def _on_tool_call_start(self, event: ToolCallStartEvent) -> None:
        self._open_tool_call(event.tool_call_id, event.tool_call_name)

    def _on_tool_call_args(self, event: ToolCallArgsEvent) -> None:
        self._append_arguments(event.tool_call_id, event.delta)

    def _on_tool_call_end(self, event: ToolCallEndEvent) -> None:
        tool_call = self._active_tool_calls.get(event.tool_call_id)
        self.current_tool_call = None
        if tool_call is None:
            LOGGER.debug("End for unopened tool call %s ignored", event.tool_call_id)
            return

        if self._is_attached(tool_call):
            LOGGER.debug("Repeated end for tool call %s ignored", tool_call.id)
            return

        # Attach to the most recent assistant message, streaming or not.
        target = next((m for m in reversed(self.messages) if m.role == "assistant"), None)
        if target is not None:
            if target.tool_calls is None:
                target.tool_calls = []
            target.tool_calls.append(tool_call)
        elif self.config.orphan_tool_calls == "buffer":
            LOGGER.warning("Tool call %s has no assistant message yet; buffering it", tool_call.id)
            self._orphan_tool_calls.append(tool_call)
        else:
            LOGGER.warning("Tool call %s has no assistant message; it stays unattached", tool_call.id)

    def _is_attached(self, tool_call: ToolCall) -> bool:
        if any(call is tool_call for call in self._orphan_tool_calls):
            return True
        return any(call is tool_call for message in self.messages for call in message.tool_calls or ())

    def _on_tool_call_result(self, event: ToolCallResultEvent) -> None:
        self.messages.append(
            StreamMessage(
                id=event.message_id,
                role="tool",
                content=event.content,
                timestamp=event.timestamp if event.timestamp is not None else _now_ms(),
            )
        )
        tool_call = self._active_tool_calls.pop(event.tool_call_id, None)
        if tool_call is not None:
            tool_call.result = event.content

    def _on_tool_call_chunk(self, event: ToolCallChunkEvent) -> None:
        if event.tool_call_id is None:
            LOGGER.debug("Tool call chunk without id ignored")
            return
        if event.tool_call_id not in self._active_tool_calls:
            if not event.tool_call_name:
                LOGGER.debug("Tool call chunk for unopened %s has no name", event.tool_call_id)
                return
            self._open_tool_call(event.tool_call_id, event.tool_call_name)
        if event.delta:
            self._append_arguments(event.tool_call_id, event.delta)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def _on_state_snapshot(self, event: StateSnapshotEvent) -> None:
        self.state = event.snapshot

    def _on_messages_snapshot(self, event: MessagesSnapshotEvent) -> None:
        self._active_messages.clear()
        self.messages = [StreamMessage.model_validate(m.model_dump()) for m in event.messages]


__all__ = ["StreamMessage", "StreamReducer"]

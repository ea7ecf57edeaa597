from __future__ import annotations

from typing import Any

from agui_stream.config import ReducerConfig
from agui_stream.events import parse_event
from agui_stream.reducer import StreamReducer
from agui_stream.schemas import Message


def _feed(reducer: StreamReducer, *payloads: dict[str, Any]) -> StreamReducer:
    for payload in payloads:
        reducer.handle_event(parse_event(payload))
    return reducer


def _start(message_id: str, role: str = "assistant") -> dict[str, Any]:
    return {"type": "text-message-start", "messageId": message_id, "role": role}


def _content(message_id: str, delta: str) -> dict[str, Any]:
    return {"type": "text-message-content", "messageId": message_id, "delta": delta}


def _end(message_id: str) -> dict[str, Any]:
    return {"type": "text-message-end", "messageId": message_id}


def test_content_deltas_concatenate_into_one_message() -> None:
    reducer = _feed(StreamReducer(), _start("m1"), _content("m1", "Hel"), _content("m1", "lo"), _end("m1"))

    assert len(reducer.messages) == 1
    message = reducer.messages[0]
    assert message.id == "m1"
    assert message.content == "Hello"
    assert message.is_streaming is False
    assert reducer.active_message_ids == []


def test_message_is_streaming_until_end() -> None:
    reducer = _feed(StreamReducer(), _start("m1"), _content("m1", "partial"))

    assert reducer.messages[0].is_streaming is True
    assert reducer.active_message_ids == ["m1"]


def test_dangling_delta_is_a_no_op() -> None:
    reducer = _feed(StreamReducer(), _content("unknown", "x"), _end("unknown"))

    assert reducer.messages == []


def test_output_order_follows_arrival_order() -> None:
    reducer = _feed(
        StreamReducer(),
        _start("a1"),
        _start("u1", role="user"),
        _content("u1", "question"),
        _content("a1", "answer"),
        _end("a1"),
        {"type": "tool-call-result", "messageId": "t1", "toolCallId": "none", "content": "r"},
        _end("u1"),
        _start("a2"),
    )

    assert [m.id for m in reducer.messages] == ["a1", "u1", "t1", "a2"]
    assert [m.role for m in reducer.messages] == ["assistant", "user", "tool", "assistant"]


def test_tool_call_attaches_to_latest_assistant_message() -> None:
    reducer = _feed(
        StreamReducer(),
        _start("a1"),
        _content("a1", "Looking it up"),
        _end("a1"),
        _start("u1", role="user"),
        {"type": "tool-call-start", "toolCallId": "tc1", "toolCallName": "search"},
        {"type": "tool-call-args", "toolCallId": "tc1", "delta": '{"q": '},
        {"type": "tool-call-args", "toolCallId": "tc1", "delta": '"weather"}'},
    )
    assert reducer.current_tool_call is not None
    assert reducer.current_tool_call.arguments == '{"q": "weather"}'

    _feed(reducer, {"type": "tool-call-end", "toolCallId": "tc1"})

    assistant = reducer.messages[0]
    assert assistant.tool_calls is not None
    assert [tc.id for tc in assistant.tool_calls] == ["tc1"]
    assert assistant.tool_calls[0].arguments == '{"q": "weather"}'
    assert reducer.messages[1].tool_calls is None
    assert reducer.current_tool_call is None


def test_tool_result_adds_tool_message_and_resolves_call() -> None:
    reducer = _feed(
        StreamReducer(),
        _start("a1"),
        {"type": "tool-call-start", "toolCallId": "tc1", "toolCallName": "search"},
        {"type": "tool-call-end", "toolCallId": "tc1"},
        {"type": "tool-call-result", "messageId": "t1", "toolCallId": "tc1", "content": "sunny"},
    )

    tool_message = reducer.messages[-1]
    assert tool_message.role == "tool"
    assert tool_message.content == "sunny"
    assert reducer.messages[0].tool_calls[0].result == "sunny"
    assert reducer.active_tool_call_ids == []


def test_tool_call_without_assistant_message_stays_unattached() -> None:
    reducer = _feed(
        StreamReducer(),
        _start("u1", role="user"),
        {"type": "tool-call-start", "toolCallId": "tc1", "toolCallName": "search"},
        {"type": "tool-call-end", "toolCallId": "tc1"},
    )

    assert all(m.tool_calls is None for m in reducer.messages)
    assert reducer.orphan_tool_calls == []
    assert reducer.active_tool_call_ids == ["tc1"]


def test_buffered_orphan_attaches_to_next_assistant_message() -> None:
    reducer = _feed(
        StreamReducer(ReducerConfig(orphan_tool_calls="buffer")),
        {"type": "tool-call-start", "toolCallId": "tc1", "toolCallName": "search"},
        {"type": "tool-call-end", "toolCallId": "tc1"},
    )
    assert [tc.id for tc in reducer.orphan_tool_calls] == ["tc1"]

    _feed(reducer, _start("u1", role="user"), _start("a1"))

    assert reducer.messages[0].tool_calls is None
    assert [tc.id for tc in reducer.messages[1].tool_calls] == ["tc1"]
    assert reducer.orphan_tool_calls == []


def test_duplicate_start_restarts_message_by_default() -> None:
    reducer = _feed(StreamReducer(), _start("m1"), _content("m1", "old"), _start("u1", "user"), _start("m1"))
    _feed(reducer, _content("m1", "new"))

    assert [m.id for m in reducer.messages] == ["u1", "m1"]
    assert reducer.messages[-1].content == "new"
    assert reducer.messages[-1].is_streaming is True


def test_duplicate_start_can_be_ignored() -> None:
    reducer = _feed(
        StreamReducer(ReducerConfig(duplicate_start="ignore")),
        _start("m1"),
        _content("m1", "kept"),
        _start("m1"),
        _content("m1", "!"),
    )

    assert [m.id for m in reducer.messages] == ["m1"]
    assert reducer.messages[0].content == "kept!"


def test_lifecycle_events_record_diagnostics_without_touching_messages() -> None:
    reducer = _feed(
        StreamReducer(),
        {"type": "run-started", "threadId": "th", "runId": "r1"},
        {"type": "step-started", "stepName": "plan"},
        _start("a1"),
        {"type": "run-error", "message": "boom", "code": "E1"},
        {"type": "step-finished", "stepName": "plan"},
    )

    assert reducer.run_id == "r1"
    assert reducer.thread_id == "th"
    assert reducer.last_error == "boom"
    assert reducer.active_message_ids == ["a1"]

    _feed(reducer, {"type": "run-finished", "threadId": "th", "runId": "r1", "outcome": "interrupt"})
    assert reducer.outcome == "interrupt"


def test_unknown_and_unmodelled_kinds_are_ignored() -> None:
    reducer = _feed(
        StreamReducer(),
        {"type": "reasoning-start", "messageId": "x"},
        {"type": "custom", "name": "ping", "value": 1},
        {"type": "raw", "event": {"anything": True}},
        {"type": "state-delta", "delta": [{"op": "add", "path": "/a", "value": 1}]},
        {"type": "activity-snapshot", "messageId": "a", "activityType": "plan", "content": {}},
    )

    assert reducer.messages == []
    assert reducer.state is None


def test_chunk_events_open_and_extend_entries() -> None:
    reducer = _feed(
        StreamReducer(),
        {"type": "text-message-chunk", "messageId": "a1", "delta": "Hi"},
        {"type": "text-message-chunk", "messageId": "a1", "delta": " there"},
        {"type": "tool-call-chunk", "toolCallId": "tc1", "toolCallName": "lookup", "delta": "{"},
        {"type": "tool-call-chunk", "toolCallId": "tc1", "delta": "}"},
        {"type": "tool-call-chunk", "toolCallId": "tc2", "delta": "ignored"},
    )

    assert reducer.messages[0].role == "assistant"
    assert reducer.messages[0].content == "Hi there"
    assert reducer.messages[0].is_streaming is True
    assert reducer.current_tool_call is not None
    assert reducer.current_tool_call.arguments == "{}"
    assert reducer.active_tool_call_ids == ["tc1"]


def test_snapshots_replace_messages_and_state() -> None:
    reducer = _feed(
        StreamReducer(),
        _start("a1"),
        {"type": "state-snapshot", "snapshot": {"step": 2}},
        {
            "type": "messages-snapshot",
            "messages": [
                {"id": "u1", "role": "user", "content": "hi"},
                {"id": "a9", "role": "assistant", "content": "hello"},
            ],
        },
        _content("a1", "late"),
    )

    assert reducer.state == {"step": 2}
    assert [(m.id, m.content, m.is_streaming) for m in reducer.messages] == [
        ("u1", "hi", False),
        ("a9", "hello", False),
    ]


def test_snapshot_is_isolated_from_later_mutation() -> None:
    reducer = _feed(StreamReducer(), _start("a1"), _content("a1", "one"))
    copy = reducer.snapshot()

    _feed(reducer, _content("a1", " two"))

    assert copy[0].content == "one"
    assert reducer.messages[0].content == "one two"


def test_clear_resets_everything() -> None:
    reducer = _feed(
        StreamReducer(),
        _start("a1"),
        {"type": "tool-call-start", "toolCallId": "tc1", "toolCallName": "search"},
    )
    reducer.add_message(Message(id="u1", role="user", content="hi"))

    reducer.clear()

    assert reducer.messages == []
    assert reducer.active_message_ids == []
    assert reducer.active_tool_call_ids == []
    assert reducer.current_tool_call is None


def test_repeated_tool_call_end_attaches_once() -> None:
    reducer = _feed(
        StreamReducer(),
        _start("a1"),
        {"type": "tool-call-start", "toolCallId": "tc1", "toolCallName": "search"},
        {"type": "tool-call-end", "toolCallId": "tc1"},
        {"type": "tool-call-end", "toolCallId": "tc1"},
    )

    assert [tc.id for tc in reducer.messages[0].tool_calls] == ["tc1"]


def test_repeated_end_of_buffered_orphan_is_not_buffered_twice() -> None:
    reducer = _feed(
        StreamReducer(ReducerConfig(orphan_tool_calls="buffer")),
        {"type": "tool-call-start", "toolCallId": "tc1", "toolCallName": "search"},
        {"type": "tool-call-end", "toolCallId": "tc1"},
        {"type": "tool-call-end", "toolCallId": "tc1"},
    )

    assert [tc.id for tc in reducer.orphan_tool_calls] == ["tc1"]


def test_zero_timestamp_is_kept() -> None:
    reducer = _feed(
        StreamReducer(),
        {**_start("a1"), "timestamp": 0},
        {"type": "tool-call-result", "messageId": "t1", "toolCallId": "tc1", "content": "r", "timestamp": 0},
    )

    assert [m.timestamp for m in reducer.messages] == [0, 0]

from __future__ import annotations

import asyncio
import random
from typing import Any, Iterator

import pytest

from agui_stream.codec import decode_frames
from agui_stream.config import DelayRange, PacingConfig
from agui_stream.emitter import PacingPolicy, emit_frames
from agui_stream.fixtures import EventSourceError


TEMPLATES = [
    {"type": "run-started", "threadId": "t1", "runId": "r1"},
    {"type": "text-message-start", "messageId": "m1", "role": "assistant"},
    {"type": "text-message-content", "messageId": "m1", "delta": "Hi"},
    {"type": "text-message-end", "messageId": "m1"},
    {"type": "run-finished", "threadId": "t1", "runId": "r1"},
]


class _Recorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.delays.append(seconds)


def _collect(**kwargs: Any) -> list[bytes]:
    async def _run() -> list[bytes]:
        return [frame async for frame in emit_frames(**kwargs)]

    return asyncio.run(_run())


def test_emits_every_event_in_order_then_terminator() -> None:
    recorder = _Recorder()
    clock = iter([1000, 1001, 1001, 1005, 1010])

    frames = _collect(source=lambda: TEMPLATES, clock=lambda: next(clock), sleep=recorder.sleep)
    decoded = decode_frames(frames)

    assert [f.event.to_payload()["type"] for f in decoded[:-1]] == [t["type"] for t in TEMPLATES]
    assert [f.event.timestamp for f in decoded[:-1]] == [1000, 1001, 1001, 1005, 1010]
    assert decoded[-1].done
    assert len(recorder.delays) == len(TEMPLATES)


def test_templates_are_not_mutated() -> None:
    templates = [dict(t) for t in TEMPLATES]

    _collect(source=lambda: templates, sleep=_Recorder().sleep)

    assert templates == TEMPLATES


def test_timestamps_never_decrease_when_clock_steps_back() -> None:
    clock = iter([500, 400, 450, 600, 100])

    frames = _collect(source=lambda: TEMPLATES, clock=lambda: next(clock), sleep=_Recorder().sleep)

    stamps = [f.event.timestamp for f in decode_frames(frames) if f.event is not None]
    assert stamps == [500, 500, 500, 600, 600]


def test_pacing_is_keyed_by_kind_with_default_window() -> None:
    recorder = _Recorder()
    pacing = PacingPolicy(
        PacingConfig(
            delays={"text-message-content": DelayRange(min_ms=30, max_ms=30)},
            default=DelayRange(min_ms=50, max_ms=50),
        )
    )

    _collect(source=lambda: TEMPLATES, pacing=pacing, sleep=recorder.sleep)

    assert recorder.delays == [0.05, 0.05, 0.03, 0.05, 0.05]


def test_delay_is_drawn_from_closed_interval() -> None:
    policy = PacingPolicy(rng=random.Random(7))
    window = policy.config.delays["tool-call-result"]

    samples = [policy.delay_ms("tool-call-result") for _ in range(200)]
    unknown = [policy.delay_ms("custom") for _ in range(200)]

    assert all(window.min_ms <= value <= window.max_ms for value in samples)
    assert all(50 <= value <= 100 for value in unknown)


def test_source_failure_becomes_run_error_frame() -> None:
    def broken_source() -> list[dict[str, Any]]:
        raise EventSourceError("Cannot read events file")

    frames = _collect(source=broken_source, clock=lambda: 42, sleep=_Recorder().sleep)
    decoded = decode_frames(frames)

    assert len(decoded) == 1
    assert not decoded[0].done
    assert decoded[0].event.to_payload() == {
        "type": "run-error",
        "message": "Cannot read events file",
        "timestamp": 42,
    }


def test_failure_mid_iteration_keeps_already_sent_frames() -> None:
    def flaky_source() -> Iterator[dict[str, Any]]:
        yield TEMPLATES[0]
        yield TEMPLATES[1]
        raise RuntimeError("source went away")

    decoded = decode_frames(_collect(source=flaky_source, sleep=_Recorder().sleep))

    assert [f.event.to_payload()["type"] for f in decoded] == ["run-started", "text-message-start", "run-error"]
    assert decoded[-1].event.message == "source went away"
    assert not any(f.done for f in decoded)


def test_delay_range_rejects_inverted_bounds() -> None:
    with pytest.raises(ValueError):
        DelayRange(min_ms=10, max_ms=5)

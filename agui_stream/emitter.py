"""Emission driver: replays an ordered event source as paced SSE frames."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Mapping

from .codec import encode_done, encode_payload
from .config import PacingConfig
from .events import EventType


LOGGER = logging.getLogger(__name__)

EventSource = Callable[[], Iterable[Mapping[str, Any]]]


def _now_ms() -> int:
    return int(time.time() * 1000)


class PacingPolicy:
    """Draws the artificial delay that follows each event kind."""

    def __init__(self, config: PacingConfig | None = None, rng: random.Random | None = None) -> None:
        self.config = config or PacingConfig()
        self._rng = rng or random.Random()

    def delay_ms(self, event_type: str) -> int:
        """Pick a delay from the kind's closed ``[min_ms, max_ms]`` interval."""
        window = self.config.delays.get(event_type, self.config.default)
        return self._rng.randint(window.min_ms, window.max_ms)


async def emit_frames(
    source: EventSource,
    *,
    pacing: PacingPolicy | None = None,
    clock: Callable[[], int] = _now_ms,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> AsyncIterator[bytes]:
    """
    Yield one SSE frame per event template, then the terminator.

    Each template is copied with the current timestamp injected and written
    before the pacing delay for its kind is awaited. If loading or iterating
    the source fails, a single ``run-error`` frame carrying the failure
    message is yielded instead of the terminator.

    Args:
        source: Callable returning the ordered event templates
        pacing: Delay policy; defaults to the standard per-kind table
        clock: Millisecond wall clock used for timestamps
        sleep: Awaitable sleep, injectable for tests

    Yields:
        Encoded frames, in source order
    """
    policy = pacing or PacingPolicy()
    last_timestamp = 0
    emitted = 0

    def stamp() -> int:
        nonlocal last_timestamp
        # Timestamps never go backwards within one stream.
        last_timestamp = max(last_timestamp, clock())
        return last_timestamp

    try:
        for template in source():
            event_type = str(template.get("type", ""))
            yield encode_payload({**template, "timestamp": stamp()})
            emitted += 1
            await sleep(policy.delay_ms(event_type) / 1000)
    except Exception as exc:
        LOGGER.exception("Failed to send event stream after %d events", emitted)
        yield encode_payload(
            {
                "type": EventType.RUN_ERROR.value,
                "message": str(exc),
                "timestamp": stamp(),
            }
        )
        return

    yield encode_done()
    LOGGER.info("Event stream complete (%d events)", emitted)


__all__ = ["EventSource", "PacingPolicy", "emit_frames"]

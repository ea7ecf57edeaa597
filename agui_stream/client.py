"""
AG-UI protocol streaming client using httpx.

Two ways to consume a run:

    agent = HttpAgent(base_url="http://localhost:3001")

    # async iterator
    async for event in agent.stream(RunAgentInput()):
        ...

    # callbacks, cancellable
    subscription = agent.run(RunAgentInput()).subscribe(
        on_next=reducer.handle_event,
        on_error=lambda exc: print(exc),
        on_complete=lambda: print("done"),
    )
    subscription.unsubscribe()
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from contextlib import aclosing
from typing import AsyncIterator, Callable

import httpx

from .codec import DecodedFrame, FrameDecoder
from .config import ClientConfig
from .events import AnyEvent
from .schemas import RunAgentInput


LOGGER = logging.getLogger(__name__)

EventHandler = Callable[[AnyEvent], None]
ErrorHandler = Callable[[Exception], None]
CompleteHandler = Callable[[], None]

STREAM_HEADERS = {
    "Accept": "text/event-stream",
    "Content-Type": "application/json",
}


class TransportError(Exception):
    """Raised when the event stream cannot be opened or read."""


def new_id(prefix: str = "") -> str:
    """Return ``<prefix><millis>_<random>``, unique enough within one process."""
    return f"{prefix}{int(time.time() * 1000)}_{secrets.token_hex(5)}"


class HttpAgent:
    """Connects to an AG-UI server and streams the events of each run."""

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        endpoint: str = "/api/agent/run",
        *,
        timeout: float = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.endpoint = endpoint or "/api/agent/run"
        self.timeout = timeout
        self._transport = transport
        self._active_runs: dict[str, AgentRun] = {}

    @classmethod
    def from_config(cls, config: ClientConfig, **kwargs) -> "HttpAgent":
        return cls(config.base_url, config.endpoint, timeout=config.timeout, **kwargs)

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.endpoint}"

    @property
    def active_run_ids(self) -> list[str]:
        return list(self._active_runs)

    def run(self, run_input: RunAgentInput | None = None) -> "AgentRun":
        """Register a new run; nothing is sent until it is subscribed to."""
        run = AgentRun(self, new_id(), run_input or RunAgentInput())
        self._active_runs[run.run_id] = run
        return run

    def abort_run(self, run_id: str) -> None:
        """Cancel every subscription of a run. Unknown ids are ignored."""
        run = self._active_runs.pop(run_id, None)
        if run is not None:
            run._cancel_all()

    def _forget(self, run: "AgentRun") -> None:
        if self._active_runs.get(run.run_id) is run:
            del self._active_runs[run.run_id]

    async def stream(self, run_input: RunAgentInput | None = None) -> AsyncIterator[AnyEvent]:
        """
        Stream the events of one run until the terminator.

        Raises:
            TransportError: on a non-success response or a connection/read failure
        """
        frames = self._iter_frames(run_input or RunAgentInput())
        async with aclosing(frames):
            async for frame in frames:
                if frame.done:
                    return
                yield frame.event

    async def _iter_frames(self, run_input: RunAgentInput) -> AsyncIterator[DecodedFrame]:
        payload = run_input.to_payload()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                async with client.stream("POST", self.url, json=payload, headers=STREAM_HEADERS) as response:
                    if not response.is_success:
                        raise TransportError(f"HTTP error! status: {response.status_code}")

                    decoder = FrameDecoder()
                    async for chunk in response.aiter_bytes():
                        for frame in decoder.feed(chunk):
                            yield frame
                    for frame in decoder.flush():
                        yield frame
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc


class AgentRun:
    """One agent invocation; each subscription opens its own stream."""

    def __init__(self, agent: HttpAgent, run_id: str, run_input: RunAgentInput) -> None:
        self.agent = agent
        self.run_id = run_id
        self.input = run_input
        self._subscriptions: list[Subscription] = []

    def subscribe(
        self,
        on_next: EventHandler | None = None,
        on_error: ErrorHandler | None = None,
        on_complete: CompleteHandler | None = None,
    ) -> "Subscription":
        """Start streaming. Must be called while an asyncio loop is running."""
        subscription = Subscription(self, on_next=on_next, on_error=on_error, on_complete=on_complete)
        self._subscriptions.append(subscription)
        subscription._start()
        return subscription

    def abort(self) -> None:
        self.agent.abort_run(self.run_id)

    def _cancel_all(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.unsubscribe()

    def _discard(self, subscription: "Subscription") -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        if not self._subscriptions:
            self.agent._forget(self)


class Subscription:
    """
    Pumps one event stream into callbacks.

    ``on_next`` is called for each event in arrival order. Exactly one of
    ``on_complete`` / ``on_error`` fires, unless the subscription is
    cancelled first, in which case neither does.
    """

    def __init__(
        self,
        run: AgentRun,
        *,
        on_next: EventHandler | None = None,
        on_error: ErrorHandler | None = None,
        on_complete: CompleteHandler | None = None,
    ) -> None:
        self.run = run
        self._on_next = on_next
        self._on_error = on_error
        self._on_complete = on_complete
        self._cancelled = False
        self._terminated = False
        self._task: asyncio.Task[None] | None = None
        self.closed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def _start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._pump())
        # Runs even when the task is cancelled before its first step.
        self._task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: "asyncio.Task[None]") -> None:
        self.closed = True
        self.run._discard(self)

    def unsubscribe(self) -> None:
        """Stop delivery and release the connection. Safe to call repeatedly."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    cancel = unsubscribe

    async def wait(self) -> None:
        """Wait until the pump has exited, whatever the reason."""
        if self._task is not None:
            await asyncio.wait({self._task})

    async def _pump(self) -> None:
        frames = self.run.agent._iter_frames(self.run.input)
        try:
            async with aclosing(frames):
                async for frame in frames:
                    if self._cancelled:
                        return
                    if frame.done:
                        self._finish_complete()
                        return
                    if self._on_next is not None:
                        self._on_next(frame.event)
            # Stream ended without a terminator; treated as a normal end.
            self._finish_complete()
        except asyncio.CancelledError:
            if not self._cancelled:
                raise
        except Exception as exc:
            self._finish_error(exc)

    def _finish_complete(self) -> None:
        if self._cancelled or self._terminated:
            return
        self._terminated = True
        if self._on_complete is not None:
            self._on_complete()

    def _finish_error(self, exc: Exception) -> None:
        if self._cancelled:
            return
        if self._terminated:
            LOGGER.exception("Subscription callback failed after the stream completed")
            return
        self._terminated = True
        LOGGER.warning("Event stream for run %s failed: %s", self.run.run_id, exc)
        if self._on_error is not None:
            self._on_error(exc)


__all__ = [
    "AgentRun",
    "CompleteHandler",
    "ErrorHandler",
    "EventHandler",
    "HttpAgent",
    "STREAM_HEADERS",
    "Subscription",
    "TransportError",
    "new_id",
]

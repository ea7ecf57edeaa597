"""Conversation session: sends user turns and folds the replies into a reducer."""

from __future__ import annotations

import logging
import time

from .client import HttpAgent, Subscription, new_id
from .reducer import StreamMessage, StreamReducer
from .schemas import Message, RunAgentInput, ToolCall


LOGGER = logging.getLogger(__name__)


class AgentSession:
    """
    Keeps the transcript of one conversation with an agent.

    Only one run is in flight at a time; ``send_message`` is ignored while
    the previous reply is still streaming.
    """

    def __init__(self, agent: HttpAgent, reducer: StreamReducer | None = None) -> None:
        self.agent = agent
        self.reducer = reducer or StreamReducer()
        self.is_running = False
        self.last_error: Exception | None = None
        self._subscription: Subscription | None = None

    @property
    def messages(self) -> list[StreamMessage]:
        return self.reducer.messages

    @property
    def current_tool_call(self) -> ToolCall | None:
        return self.reducer.current_tool_call

    def send_message(self, content: str) -> Subscription | None:
        """Append a user turn and stream the agent's reply."""
        if self.is_running:
            LOGGER.debug("Run already in progress; message ignored")
            return None

        self.reducer.add_message(
            Message(
                id=new_id("user_"),
                role="user",
                content=content,
                timestamp=int(time.time() * 1000),
            )
        )
        self.is_running = True
        self.last_error = None
        self.reducer.current_tool_call = None

        run_input = RunAgentInput(messages=[message.to_message() for message in self.reducer.messages])
        self._subscription = self.agent.run(run_input).subscribe(
            on_next=self.reducer.handle_event,
            on_error=self._on_error,
            on_complete=self._on_complete,
        )
        return self._subscription

    def cancel(self) -> None:
        """Stop the in-flight reply, keeping whatever already arrived."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._settle()

    async def wait(self) -> None:
        if self._subscription is not None:
            await self._subscription.wait()

    def clear_messages(self) -> None:
        self.reducer.clear()

    def _settle(self) -> None:
        self.is_running = False
        self.reducer.current_tool_call = None

    def _on_complete(self) -> None:
        self._settle()

    def _on_error(self, exc: Exception) -> None:
        LOGGER.error("Agent error: %s", exc)
        self.last_error = exc
        self._settle()


__all__ = ["AgentSession"]

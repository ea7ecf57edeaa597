"""Pydantic models for the AG-UI request payload and reconstructed entities."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Role = Literal["developer", "system", "assistant", "user", "tool"]


class WireModel(BaseModel):
    """Base model that speaks camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-ready dict sent over the wire."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ToolCall(WireModel):
    """A tool invocation assembled from streamed argument deltas."""

    id: str
    name: str
    arguments: str = ""
    result: str | None = None


class Message(WireModel):
    """Conversation message exchanged with the agent."""

    id: str
    role: Role
    content: str = ""
    tool_calls: list[ToolCall] | None = None
    timestamp: int | None = None


class ToolDefinition(WireModel):
    """Tool the agent is allowed to call."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")


class RunAgentInput(WireModel):
    """Body of ``POST /api/agent/run``."""

    messages: list[Message] | None = None
    tools: list[ToolDefinition] | None = None
    context: Any | None = None


__all__ = [
    "Message",
    "Role",
    "RunAgentInput",
    "ToolCall",
    "ToolDefinition",
    "WireModel",
]

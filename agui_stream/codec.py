"""Server-Sent Events framing for AG-UI events.

Each frame on the wire is ``data: <payload>\\n\\n`` where the payload is one
JSON-encoded event or the terminator token ``[DONE]``.
"""

from __future__ import annotations

import codecs
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import orjson

from .events import AnyEvent, parse_event
from .schemas import WireModel


LOGGER = logging.getLogger(__name__)

DONE_TOKEN = "[DONE]"
FRAME_DELIMITER = "\n\n"
DATA_FIELD = "data:"
_PREVIEW_CHARS = 200


def encode_payload(payload: Mapping[str, Any]) -> bytes:
    """Frame an already JSON-ready mapping."""
    body = orjson.dumps(dict(payload)).decode("utf-8")
    return f"{DATA_FIELD} {body}{FRAME_DELIMITER}".encode("utf-8")


def encode_event(event: WireModel | Mapping[str, Any]) -> bytes:
    """Frame a single event, either a model or a plain mapping."""
    if isinstance(event, WireModel):
        return encode_payload(event.to_payload())
    return encode_payload(event)


def encode_done() -> bytes:
    """Frame the end-of-stream terminator."""
    return f"{DATA_FIELD} {DONE_TOKEN}{FRAME_DELIMITER}".encode("utf-8")


@dataclass(slots=True)
class DecodedFrame:
    """One complete frame: an event, or the terminator when ``done`` is set."""

    event: AnyEvent | None = None
    done: bool = False


class FrameDecoder:
    """
    Incremental decoder for a fragmented SSE byte stream.

    ``feed`` accepts bytes or text in arbitrary pieces; a frame (or a UTF-8
    sequence) split across two reads is completed on the next one. Frames
    whose payload is not a valid event are logged, counted in ``dropped``
    and skipped without interrupting the stream.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._carry = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.dropped = 0

    def feed(self, chunk: bytes | str) -> list[DecodedFrame]:
        """Add a chunk and return every frame it completed, in order."""
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        chunk = self._carry + chunk
        self._carry = ""
        # Hold back a trailing CR until we know whether an LF follows.
        if chunk.endswith("\r"):
            self._carry = "\r"
            chunk = chunk[:-1]
        chunk = chunk.replace("\r\n", "\n")
        if not chunk:
            return []

        # Only the new text (plus one char of the old) can complete a frame.
        straddles = bool(self._parts) and self._parts[-1].endswith("\n") and chunk.startswith("\n")
        self._parts.append(chunk)
        if not straddles and FRAME_DELIMITER not in chunk:
            return []

        segments = "".join(self._parts).split(FRAME_DELIMITER)
        # The last segment is either empty or an incomplete frame.
        tail = segments.pop()
        self._parts = [tail] if tail else []
        return self._decode_segments(segments)

    def flush(self) -> list[DecodedFrame]:
        """Decode whatever remains once the stream has ended."""
        tail = "".join(self._parts) + self._carry + self._utf8.decode(b"", final=True)
        self._parts = []
        self._carry = ""
        if not tail.strip():
            return []
        return self._decode_segments([tail])

    def _decode_segments(self, segments: Iterable[str]) -> list[DecodedFrame]:
        frames: list[DecodedFrame] = []
        for segment in segments:
            frame = self._decode_segment(segment)
            if frame is not None:
                frames.append(frame)
        return frames

    def _decode_segment(self, segment: str) -> DecodedFrame | None:
        data_lines: list[str] = []
        for line in segment.split("\n"):
            # Skip comments and non-data fields (event:, id:, retry:)
            if not line.startswith(DATA_FIELD):
                continue
            value = line[len(DATA_FIELD):]
            if value.startswith(" "):
                value = value[1:]
            data_lines.append(value)

        if not data_lines:
            return None

        data = "\n".join(data_lines)
        if data.strip() == DONE_TOKEN:
            return DecodedFrame(done=True)

        try:
            payload = orjson.loads(data)
            if not isinstance(payload, dict):
                raise ValueError("Event payload must be a JSON object")
            event = parse_event(payload)
        except ValueError as exc:
            # orjson.JSONDecodeError and pydantic.ValidationError are ValueErrors.
            self.dropped += 1
            LOGGER.warning("Failed to parse event: %s (%s)", data[:_PREVIEW_CHARS], exc)
            return None

        return DecodedFrame(event=event)


def decode_frames(chunks: Iterable[bytes | str]) -> list[DecodedFrame]:
    """Decode a complete, already-received stream."""
    decoder = FrameDecoder()
    frames: list[DecodedFrame] = []
    for chunk in chunks:
        frames.extend(decoder.feed(chunk))
    frames.extend(decoder.flush())
    return frames


__all__ = [
    "DATA_FIELD",
    "DONE_TOKEN",
    "DecodedFrame",
    "FRAME_DELIMITER",
    "FrameDecoder",
    "decode_frames",
    "encode_done",
    "encode_event",
    "encode_payload",
]

"""
AG-UI event streaming.

Provides the AG-UI event model and SSE codec, a FastAPI server that replays
a scripted event stream (``python -m agui_stream serve``), an httpx-based
subscription client, and the reducer that rebuilds messages and tool calls
from the stream.
"""

from __future__ import annotations

__all__ = [
    "get_version",
]


def get_version() -> str:
    """Return the package version."""
    try:
        from importlib.metadata import version

        return version("agui-stream")
    except Exception:  # pragma: no cover - metadata optional in dev installs
        return "1.0.0"

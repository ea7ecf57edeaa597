"""
FastAPI application that replays a canned AG-UI event script over SSE.

Usage:
    python -m agui_stream serve --port 3001

Endpoints:
    POST /api/agent/run   stream the events (body: RunAgentInput, optional)
    GET  /api/agent/run   same stream, for manual testing
    GET  /api/health      liveness plus number of loaded events
    GET  /api/events      the raw events document
"""

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from . import get_version
from .config import ServerConfig
from .emitter import PacingPolicy, emit_frames
from .fixtures import EventSourceError, load_document, load_events
from .schemas import RunAgentInput


LOGGER = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _error_response(exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": "error", "message": str(exc)},
    )


def create_app(config: ServerConfig | None = None, *, pacing: PacingPolicy | None = None) -> FastAPI:
    server_config = config or ServerConfig()
    logging.basicConfig(level=server_config.log_level.upper())
    policy = pacing or PacingPolicy(server_config.pacing)
    events_path = server_config.events_path

    app = FastAPI(
        title="AG-UI Stream Server",
        description="Replays a scripted AG-UI event stream as Server-Sent Events",
        version=get_version(),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=server_config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    def event_stream() -> StreamingResponse:
        # The script is re-read per request so edits apply without a restart.
        frames = emit_frames(lambda: load_events(events_path), pacing=policy)
        return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)

    @app.post("/api/agent/run")
    async def run_agent(run_input: RunAgentInput | None = None) -> StreamingResponse:
        message_count = len(run_input.messages or []) if run_input is not None else 0
        LOGGER.info("Received agent run request with %d input messages", message_count)
        return event_stream()

    @app.get("/api/agent/run")
    async def run_agent_get() -> StreamingResponse:
        LOGGER.info("Received agent run request (GET test mode)")
        return event_stream()

    @app.get("/api/health")
    async def health() -> Any:
        try:
            events = load_events(events_path)
        except EventSourceError as exc:
            return _error_response(exc)
        return {
            "status": "ok",
            "timestamp": int(time.time() * 1000),
            "version": get_version(),
            "eventsCount": len(events),
        }

    @app.get("/api/events")
    async def events_document() -> Any:
        try:
            return load_document(events_path)
        except EventSourceError as exc:
            return _error_response(exc)

    return app


__all__ = ["SSE_HEADERS", "create_app"]

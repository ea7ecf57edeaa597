"""Loader for the canned event script replayed by the server."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import orjson


LOGGER = logging.getLogger(__name__)


class EventSourceError(RuntimeError):
    """Raised when the canned event script cannot be loaded."""


def load_document(path: Path) -> dict[str, Any]:
    """Read the whole events document (``{"events": [...], ...}``) from disk."""
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise EventSourceError(f"Cannot read events file {path}: {exc}") from exc

    try:
        document = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise EventSourceError(f"Events file {path} is not valid JSON: {exc}") from exc

    if not isinstance(document, dict) or not isinstance(document.get("events"), list):
        raise EventSourceError(f"Events file {path} must contain an 'events' list")
    return document


def load_events(path: Path) -> list[dict[str, Any]]:
    """Return the ordered event templates from the events document."""
    events = load_document(path)["events"]
    for index, template in enumerate(events):
        if not isinstance(template, dict) or not isinstance(template.get("type"), str):
            raise EventSourceError(f"Event #{index} in {path} has no 'type'")
    LOGGER.info("Loaded %d events from %s", len(events), path)
    return events


__all__ = ["EventSourceError", "load_document", "load_events"]

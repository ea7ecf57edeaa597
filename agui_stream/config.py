"""Configuration models and YAML loader for the AG-UI stream service."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator


LOGGER = logging.getLogger(__name__)

DEFAULT_EVENTS_PATH = Path(__file__).resolve().parent / "data" / "events.json"
DEFAULT_SETTINGS_PATH = "agui_stream.yaml"


class DelayRange(BaseModel):
    """Closed interval, in milliseconds, a pacing delay is drawn from."""

    min_ms: int = Field(ge=0)
    max_ms: int = Field(ge=0)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_bounds(self) -> "DelayRange":
        if self.min_ms > self.max_ms:
            raise ValueError("min_ms must not exceed max_ms")
        return self


def _default_delays() -> dict[str, DelayRange]:
    table = {
        "run-started": (50, 100),
        "run-finished": (100, 200),
        "step-started": (100, 200),
        "step-finished": (50, 100),
        "text-message-start": (50, 150),
        "text-message-content": (30, 80),
        "text-message-end": (50, 100),
        "tool-call-start": (100, 200),
        "tool-call-args": (40, 80),
        "tool-call-end": (100, 200),
        "tool-call-result": (800, 1500),
    }
    return {kind: DelayRange(min_ms=lo, max_ms=hi) for kind, (lo, hi) in table.items()}


class PacingConfig(BaseModel):
    """Per-kind artificial delays applied between emitted events."""

    delays: dict[str, DelayRange] = Field(default_factory=_default_delays)
    default: DelayRange = Field(default_factory=lambda: DelayRange(min_ms=50, max_ms=100))

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def immediate(cls) -> "PacingConfig":
        """Pacing with every delay set to zero."""
        return cls(delays={}, default=DelayRange(min_ms=0, max_ms=0))


class ServerConfig(BaseModel):
    """Settings for the streaming HTTP server."""

    host: str = "127.0.0.1"
    port: int = 3001
    events_path: Path = DEFAULT_EVENTS_PATH
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ]
    )
    log_level: str = "info"
    pacing: PacingConfig = Field(default_factory=PacingConfig)

    model_config = ConfigDict(extra="forbid")


class ClientConfig(BaseModel):
    """Where the subscription client connects to."""

    base_url: str = "http://localhost:3001"
    endpoint: str = "/api/agent/run"
    timeout: float = 300.0  # long-running agent runs

    model_config = ConfigDict(extra="forbid")


class ReducerConfig(BaseModel):
    """Policies for protocol anomalies seen by the stream reducer."""

    duplicate_start: Literal["overwrite", "ignore"] = "overwrite"
    orphan_tool_calls: Literal["drop", "buffer"] = "drop"

    model_config = ConfigDict(extra="forbid")


class Settings(BaseModel):
    """Top-level application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    reducer: ReducerConfig = Field(default_factory=ReducerConfig)

    model_config = ConfigDict(extra="forbid")


@lru_cache(maxsize=4)
def load_settings(config_path: str = DEFAULT_SETTINGS_PATH) -> Settings:
    """Load settings from YAML, falling back to defaults. Results are cached."""
    path = Path(config_path)
    if not path.exists():
        LOGGER.info(f"Config file not found at {path}. Using defaults.")
        return Settings()

    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid settings in {path}: {exc}") from exc


def clear_settings_cache() -> None:
    """Clear the cached settings. Useful for testing or dynamic reloading."""
    load_settings.cache_clear()


__all__ = [
    "ClientConfig",
    "DEFAULT_EVENTS_PATH",
    "DelayRange",
    "PacingConfig",
    "ReducerConfig",
    "ServerConfig",
    "Settings",
    "clear_settings_cache",
    "load_settings",
]

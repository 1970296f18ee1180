"""Roomkeeper application configuration.

Loads settings from a single YAML file:
  * roomkeeper.settings.yaml: server, logging, presence timings and
    notification templates

The path can be overridden with the ROOMKEEPER_SETTINGS environment variable
or by passing ``settings_path`` to :func:`load_config`. A missing file is not
an error; every field has a default.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("roomkeeper.settings.yaml")
SETTINGS_ENV_VAR = "ROOMKEEPER_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str  = "0.0.0.0"
    port:            int  = 3000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if not isinstance(getattr(logging, value.upper(), None), int):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class PresenceSettings(BaseModel):
    """Timings for reconnection detection and typing indicators (milliseconds)."""
    reconnection_window_ms:         int = Field(default=10_000, gt=0)
    reconnection_expiry_padding_ms: int = Field(default=1_000, ge=0)
    typing_timeout_ms:              int = Field(default=3_000, gt=0)


class MessageSettings(BaseModel):
    """System message templates shown to room members."""
    join_template:        str = "{name} ha ingresado a la sala."
    leave_template:       str = "{name} ha abandonado la sala."
    room_closed_template: str = "La sala {room_code} ya no existe o ha sido cerrada."
    time_format:          str = "%H:%M"


class AppConfig(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    presence: PresenceSettings = Field(default_factory=PresenceSettings)
    messages: MessageSettings  = Field(default_factory=MessageSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load *AppConfig* from YAML, falling back to defaults for missing keys."""
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))

    config = AppConfig(**_load_yaml(Path(settings_path)))
    logger.info(
        "Settings loaded (server=%s:%s, reconnection_window_ms=%s, typing_timeout_ms=%s)",
        config.server.host,
        config.server.port,
        config.presence.reconnection_window_ms,
        config.presence.typing_timeout_ms,
    )
    return config


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Process-wide configuration, loaded on first use."""
    return load_config()

"""
ModelGraph configuration. All environment variables in one place.

Read from the environment once, at import time. Class-level defaults on
``Model`` are seeded from here, so set the variables before importing the kernel.
"""

from __future__ import annotations

import logging
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Library settings from environment variables."""

    # Identifiers
    AUTO_ID_START: int = int(os.environ.get("MODELGRAPH_AUTO_ID_START", "1"))
    ENABLE_AUTO_ID: bool = _env_bool("MODELGRAPH_ENABLE_AUTO_ID", True)

    # Logging (empty = leave the host application's configuration alone)
    LOG_LEVEL: str = os.environ.get("MODELGRAPH_LOG_LEVEL", "")


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Apply LOG_LEVEL (or an explicit level) to the library's logger tree."""
    level = level or settings.LOG_LEVEL
    if not level:
        return
    logging.getLogger("modelgraph").setLevel(level.upper())

"""Environment-driven configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from .stream import MAX_BODY_SIZE

ALLOWED_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass
class Settings:
    """Runtime settings populated from the environment."""

    base_path: str = ""
    max_body_size: int = MAX_BODY_SIZE
    log_level: str = "INFO"


def validate_settings(settings: Settings) -> None:
    """Validate *settings* before an :class:`~rpcbridge.api.Api` uses them.

    Raises
    ------
    ValueError
        If the body limit is not positive or the log level is unknown.
    """

    if settings.max_body_size <= 0:
        raise ValueError(f"max_body_size must be positive, got {settings.max_body_size}")
    if settings.log_level.upper() not in ALLOWED_LOG_LEVELS:
        raise ValueError(f"Unsupported log level: {settings.log_level}")


def load_settings() -> Settings:
    """Return configuration derived from `RPCBRIDGE_*` variables."""

    raw_size = os.getenv("RPCBRIDGE_MAX_BODY_SIZE", str(MAX_BODY_SIZE))
    try:
        max_body_size = int(raw_size)
    except ValueError as exc:
        raise ValueError(f"RPCBRIDGE_MAX_BODY_SIZE must be an integer, got {raw_size!r}") from exc
    settings = Settings(
        base_path=os.getenv("RPCBRIDGE_BASE_PATH", ""),
        max_body_size=max_body_size,
        log_level=os.getenv("RPCBRIDGE_LOG_LEVEL", "INFO").upper(),
    )
    validate_settings(settings)
    return settings


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stream handler to the ``rpcbridge`` logger at *level*."""

    logger = logging.getLogger("rpcbridge")
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(handler)
    return logger


__all__ = [
    "ALLOWED_LOG_LEVELS",
    "Settings",
    "configure_logging",
    "load_settings",
    "validate_settings",
]

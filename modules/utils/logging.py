"""Logging helpers."""

from __future__ import annotations

import logging
from pathlib import Path

from config.settings import AppConfig

# Client libraries that log full request URLs at INFO.
_NOISY_LOGGERS = ("httpx", "urllib3", "google_genai", "google.auth")


def setup_logging(config: AppConfig) -> logging.Logger:
    """Configure root handlers once and return the application logger."""
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_dir / "forge.log", encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return logging.getLogger("arduino_code_forge")

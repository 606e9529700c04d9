"""Configure loguru sinks for the CLI, the poller and the API server."""

from __future__ import annotations

import os
import sys
from typing import Optional

from loguru import logger

LOG_LEVEL_ENV = "MISSION_CONTROL_LOG_LEVEL"
LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
    "{message}"
)


def resolve_log_level(level: Optional[str] = None, config: Optional[dict] = None) -> str:
    """Pick the log level from an explicit value, the environment, then config."""
    if level:
        return level.upper()
    env_level = os.environ.get(LOG_LEVEL_ENV)
    if env_level:
        return env_level.upper()
    section = (config or {}).get("logging")
    if isinstance(section, dict) and isinstance(section.get("level"), str):
        return section["level"].upper()
    return "INFO"


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a stderr sink at `level`."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)

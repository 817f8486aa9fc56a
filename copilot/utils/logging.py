"""Logging configuration.

Records are tagged with the conversation session being served so that turns
from concurrent sessions sharing one engine can be told apart.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from pydantic import BaseModel, Field

NO_SESSION = "-"

_session_id: ContextVar[str] = ContextVar("copilot_session_id", default=NO_SESSION)


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - [%(session_id)s] %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    # Streaming clients log every chunk at INFO
    quiet_loggers: list[str] = Field(default_factory=lambda: ["httpx", "httpcore", "anthropic", "uvicorn.access"])
    quiet_level: str = "WARNING"


class SessionContextFilter(logging.Filter):
    """Stamp each record with the session id bound to the current task."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = _session_id.get()
        return True


@contextmanager
def session_log_context(session_id: str) -> Iterator[None]:
    """Bind `session_id` to log records emitted inside the block.

    Tasks created inside the block inherit the binding.
    """
    token = _session_id.set(session_id)
    try:
        yield
    finally:
        _session_id.reset(token)


def setup_logging(config: LogConfig | None = None) -> None:
    """Set up logging for the copilot service."""
    if config is None:
        config = LogConfig()

    logging.basicConfig(
        level=getattr(logging, config.level.upper()),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )

    for handler in logging.getLogger().handlers:
        handler.addFilter(SessionContextFilter())

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(config.quiet_level.upper())


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)
        level: Explicit level, otherwise COPILOT_LOG_LEVEL, LOG_LEVEL or INFO

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    log_level = level or os.getenv("COPILOT_LOG_LEVEL") or os.getenv("LOG_LEVEL", "INFO")
    logger.setLevel(log_level.upper())

    return logger

"""Structured logging configuration for the Weave context engine."""

import logging
import sys
from typing import Any

# Context fields promoted to top-level keys (after the message) when present
PROMOTED_FIELDS = ("user_id", "consumer")

ENV_LOG_LEVELS = {
    "dev": logging.DEBUG,
    "test": logging.DEBUG,
    "staging": logging.INFO,
    "prod": logging.INFO,
}


class StructuredFormatter(logging.Formatter):
    """key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        for key in PROMOTED_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        # Add any other extra fields
        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        parts = [f"{k}={v}" for k, v in log_data.items()]
        return " ".join(parts)


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from app.core.config import get_settings

            env = get_settings().CONTEXT_ENGINE_ENV
            logger.setLevel(ENV_LOG_LEVELS.get(env, logging.INFO))
        except Exception:
            # Settings unavailable (missing env vars) - default to INFO
            logger.setLevel(logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (e.g., user_id, consumer, tier)
    """
    extra: dict[str, Any] = {}
    for key in PROMOTED_FIELDS:
        if key in kwargs:
            extra[key] = kwargs.pop(key)
    extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)

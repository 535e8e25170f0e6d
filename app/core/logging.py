"""Structured logging configuration for the chat orchestration engine."""

import logging
import sys
from typing import Any

# Context fields promoted to top-level keys when passed via log_with_context
_CONTEXT_KEYS = ("request_id", "conversation_id", "mode", "attempt")


class StructuredFormatter(logging.Formatter):
    """key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        for key in _CONTEXT_KEYS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        parts = [f"{k}={v}" for k, v in log_data.items()]
        line = " ".join(parts)

        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from app.core.config import get_settings

            settings = get_settings()
            if settings.CHAT_ENGINE_ENV == "dev":
                logger.setLevel(logging.DEBUG)
            else:
                logger.setLevel(logging.INFO)
        except Exception:
            logger.setLevel(logging.INFO)

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Known keys (request_id, conversation_id, mode, attempt) are emitted as
    top-level fields; anything else is appended as extra data.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields
    """
    extra: dict[str, Any] = {}
    for key in _CONTEXT_KEYS:
        if key in kwargs:
            extra[key] = kwargs.pop(key)
    extra["extra_data"] = kwargs

    logger.log(level, msg, extra=extra)

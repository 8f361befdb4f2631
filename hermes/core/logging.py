"""Key=value log lines for Hermes, tagged with the conversation they belong to."""

import logging
import sys
from typing import Any

from pydantic import ValidationError

from hermes.core.config import get_settings

_ENV_LEVELS = {"dev": logging.DEBUG, "test": logging.INFO}


def _render(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() or ch in '="' for ch in text):
        return '"' + text.replace('"', '\\"') + '"'
    return text


class StructuredFormatter(logging.Formatter):
    """Renders each record as one line of key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
        }

        conversation_id = getattr(record, "conversation_id", None)
        if conversation_id is not None:
            fields["conversation_id"] = conversation_id

        fields["logger"] = record.name
        fields["function"] = record.funcName
        fields["message"] = record.getMessage()
        fields.update(getattr(record, "extra_data", None) or {})

        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info).replace("\n", " | ")

        return " ".join(f"{key}={_render(value)}" for key, value in fields.items())


def _level_for_env() -> int:
    try:
        env = get_settings().HERMES_ENV
    except ValidationError:
        return logging.INFO
    return _ENV_LEVELS.get(env, logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger writing structured lines to stdout.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger with a single structured stdout handler
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)
    logger.setLevel(_level_for_env())
    return logger


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    conversation_id: str | None = None,
    **fields: Any,
) -> None:
    """Log `msg` with a conversation id and any extra key=value fields."""
    extra: dict[str, Any] = {"extra_data": fields}
    if conversation_id is not None:
        extra["conversation_id"] = conversation_id
    logger.log(level, msg, extra=extra)

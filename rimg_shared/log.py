"""
Logging utilities with consistent formatting and request correlation.
"""
import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Final

# Short level tags shown in every line
LEVEL_TAGS: Final[dict[str, str]] = {
    "DEBUG": "DBG",
    "INFO": "INF",
    "WARNING": "WRN",
    "ERROR": "ERR",
    "CRITICAL": "CRT",
    "SUCCESS": "OK ",
}

# Global logger prefix
PREFIX: Final[str] = "[rimg]"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class CorrelationFilter(logging.Filter):
    """Inject `request_id` from `request_id_var` into each log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Attach `record.request_id` for correlation; always returns True."""
        record.request_id = request_id_var.get("")
        return True


class TaggedFormatter(logging.Formatter):
    """Formatter that adds a level tag and the request id when present."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single line with a prefix and tag."""
        tag = LEVEL_TAGS.get(record.levelname, record.levelname[:3])

        # Format: [rimg] [INF] module [rid]: message
        rid = str(getattr(record, "request_id", "") or "").strip()
        rid_part = f" [{rid}]" if rid else ""
        log_format = f"{PREFIX} [{tag}] %(name)s{rid_part}: %(message)s"
        formatter = logging.Formatter(log_format)
        return formatter.format(record)


def _ensure_correlation_filter(logger: logging.Logger) -> None:
    if any(isinstance(f, CorrelationFilter) for f in logger.filters):
        return
    logger.addFilter(CorrelationFilter())


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Get a logger with the rimg prefix and level tags.

    Args:
        name: Logger name (usually __name__)
        level: Optional logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger instance
    """
    # Clean name (drop the package prefix)
    if name.startswith("__main__"):
        name = "main"
    elif "." in name:
        parts = name.split(".")
        if parts[0] in ("rimg_backend", "rimg_shared"):
            name = ".".join(parts[1:]) or parts[0]

    logger = logging.getLogger(f"rimg.{name}")
    _ensure_correlation_filter(logger)

    if level is not None:
        logger.setLevel(level)
    elif not logger.handlers:
        # Default to INFO if not configured
        logger.setLevel(logging.INFO)

    # Add console handler if none exists
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(TaggedFormatter())
        logger.addHandler(handler)

        # Prevent propagation to avoid duplicate logs
        logger.propagate = False

    return logger


def set_level(level: int | str) -> None:
    """Apply `level` to every logger created through `get_logger`."""
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO
    manager = logging.Logger.manager
    for name, logger in list(manager.loggerDict.items()):
        if name == "rimg" or name.startswith("rimg."):
            if isinstance(logger, logging.Logger):
                logger.setLevel(level)

# Add SUCCESS level
SUCCESS_LEVEL: Final[int] = 25  # Between INFO (20) and WARNING (30)
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")

def log_success(logger: logging.Logger, message: str) -> None:
    """
    Log a success message at the SUCCESS level.

    Args:
        logger: Logger instance
        message: Success message
    """
    logger.log(SUCCESS_LEVEL, message)

def log_structured(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Emit a structured JSON log entry with contextual fields."""
    payload = {
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "context": context,
    }
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))

"""
Logging Module

One JSON object per log line. Records may carry the acting username, the
action and resource names, and a dict of extra fields; log_action attaches
them.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional


TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Optional record attributes copied into the JSON line when present
STRUCTURED_FIELDS = ("user_id", "action", "resource", "extra")


class JSONFormatter(logging.Formatter):
    """Render a log record as a single JSON line"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "core_lending",
                  log_format: str = "json") -> logging.Logger:
    """
    Configure the application logger with a single stream handler.

    Calling it again replaces the handler, so repeated setup never duplicates
    output.

    Args:
        level: Level name such as DEBUG or WARNING
        logger_name: Logger to configure; child loggers inherit its handler
        log_format: "json" or "text"
    """
    logger = logging.getLogger(logger_name)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    handler = logging.StreamHandler()
    formatter = logging.Formatter(TEXT_FORMAT) if log_format == "text" else JSONFormatter()
    handler.setFormatter(formatter)

    logger.addHandler(handler)
    logger.setLevel(logging.getLevelName(level.upper()))
    logger.propagate = False
    return logger


def get_logger(name: str = "core_lending") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log a business action with its structured context.

    Args:
        logger: Target logger
        level: Level name, e.g. "info" or "warning"
        message: Human-readable summary
        user_id: Username of the caller
        action: Operation name, e.g. "create_loan"
        resource: Kind of record acted on, e.g. "loan"
        extra: Further fields for the JSON line
    """
    context = {
        "user_id": user_id,
        "action": action,
        "resource": resource,
        "extra": extra or None,
    }
    logger.log(
        logging.getLevelName(level.upper()),
        message,
        extra={key: value for key, value in context.items() if value is not None}
    )

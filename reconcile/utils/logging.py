"""
Structured logging for the reconciliation engine.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional
from reconcile.config import get_config


config = get_config()


class StructuredFormatter(logging.Formatter):
    """Formats log records as structured JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra"):
            log_obj.update(record.extra)

        return json.dumps(log_obj, default=str)


def setup_logging(name: str = __name__) -> logging.Logger:
    """Setup and return a configured logger."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, config.LOG_LEVEL.upper()))

    # Modules call this at import time; attach handlers once
    if logger.handlers:
        return logger

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, config.LOG_LEVEL.upper()))
    console_handler.setFormatter(logging.Formatter(config.LOG_FORMAT))
    logger.addHandler(console_handler)

    # File handler with structured JSON
    if config.LOG_FILE:
        file_handler = logging.FileHandler(config.LOG_FILE)
        file_handler.setLevel(getattr(logging, config.LOG_LEVEL.upper()))
        file_handler.setFormatter(StructuredFormatter())
        logger.addHandler(file_handler)

    return logger


def log_operation(
    logger: logging.Logger,
    operation: str,
    actor_id: str,
    details: Optional[dict] = None,
) -> None:
    """Log a completed workspace operation with context."""
    extra = {
        "operation": operation,
        "actor": actor_id,
    }
    if details:
        extra.update(details)

    logger.info(
        f"[{operation}] by {actor_id}",
        extra={"extra": extra}
    )


def log_rejection(
    logger: logging.Logger,
    operation: str,
    actor_id: str,
    code: str,
    reason: str,
) -> None:
    """Log an operation rejected before any state change."""
    extra = {
        "type": "rejection",
        "operation": operation,
        "actor": actor_id,
        "code": code,
        "reason": reason,
    }
    logger.warning(
        f"Rejected {operation} for {actor_id}: {code}",
        extra={"extra": extra}
    )

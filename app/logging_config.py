"""Logging setup: JSON lines in production, plain text elsewhere.

Quiz context travels through ``extra``::

    logger.info("Attempt saved", extra={"attempt_id": 12, "game_mode": "cubes"})
"""
import logging
import sys
import json
from datetime import datetime
from typing import Any, Dict, Optional
from app.config import settings

CONTEXT_FIELDS = ("attempt_id", "session_id", "game_mode", "usage_date")
"""Optional ``extra`` attributes copied into JSON log lines."""

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with any quiz context fields present."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: Optional[str] = None, json_output: Optional[bool] = None) -> logging.Handler:
    """Configure the root logger once.

    Args:
        log_level: Level name; defaults to INFO in production, DEBUG otherwise
        json_output: Force the JSON formatter on or off (default: production only)

    Returns:
        The installed stdout handler
    """
    if json_output is None:
        json_output = settings.is_production
    if log_level is None:
        log_level = "INFO" if settings.is_production else "DEBUG"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    root_logger = logging.getLogger()
    # Replace a handler installed by an earlier call instead of stacking them
    for existing in list(root_logger.handlers):
        if getattr(existing, "_speed_math", False):
            root_logger.removeHandler(existing)
    handler._speed_math = True
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={log_level}, format={'JSON' if json_output else 'text'}"
    )
    return handler

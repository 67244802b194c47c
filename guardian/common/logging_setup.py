"""
Structured Logging Setup

All agent loggers live under ``guardian`` and share one stdout handler.
JSON lines by default, plain text with GUARDIAN_LOG_FORMAT=text.

Job context (job id and type) is kept in a context variable and stamped
onto records by a handler filter while ``LogContext`` is active.
"""

import contextvars
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER_NAME = "guardian"

# Attributes every LogRecord has; anything else came from extra= or context
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar("log_context", default={})


class JsonFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service", "unknown"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(
            (key, value) for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and key not in log_data
        )
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


class ContextFilter(logging.Filter):
    """Copy the active LogContext fields onto each record"""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Adds the service name, keeping any caller-supplied extra fields"""

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def setup_logging(log_level: str = "INFO", json_format: bool = True) -> logging.Logger:
    """
    (Re)configure the ``guardian`` logger.

    Safe to call twice; the second call (after ``--debug``) replaces the
    handler and level.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def setup_logging_from_env(debug: bool = False) -> logging.Logger:
    """Configure logging from GUARDIAN_LOG_LEVEL / GUARDIAN_LOG_FORMAT."""
    log_level = "DEBUG" if debug else os.environ.get("GUARDIAN_LOG_LEVEL", "INFO")
    json_format = os.environ.get("GUARDIAN_LOG_FORMAT", "json").lower() == "json"
    return setup_logging(log_level, json_format)


def get_service_logger(service_name: str) -> ServiceLoggerAdapter:
    """Logger adapter for ``guardian.<service_name>``"""
    logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{service_name}")
    return ServiceLoggerAdapter(logger, {"service": service_name})


class LogContext:
    """
    Attach fields to every record logged inside the block.

    Usage:
        with LogContext(job_id="abc", job_type="reboot"):
            logger.info("Processing job")
    """

    def __init__(self, **context: Any):
        self.context = context
        self._token: contextvars.Token | None = None

    def __enter__(self) -> "LogContext":
        self._token = _log_context.set({**_log_context.get(), **self.context})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        _log_context.reset(self._token)
        return False

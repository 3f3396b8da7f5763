import logging
import logging.config
import sys
import os
import time
import uuid
from typing import Optional

import structlog

# Chatty libraries that log every Xano round trip at INFO
QUIET_LOGGERS = ("urllib3", "werkzeug")


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure structured logging for the planner.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path. If None, logs to stdout only.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = ["console"]
    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(message)s"},
            "json": {
                "()": "structlog.stdlib.ProcessorFormatter",
                "processor": structlog.processors.JSONRenderer()
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "plain",
                "stream": sys.stdout
            }
        },
        "root": {"level": log_level, "handlers": handlers},
        "loggers": {
            name: {"level": "WARNING"} for name in QUIET_LOGGERS
        }
    }

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        log_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5
        }
        handlers.append("file")

    logging.config.dictConfig(log_config)

    logger = structlog.get_logger("planner")
    logger.info("Logging configured", level=log_level, file=log_file)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def bind_request_context(**fields) -> str:
    """Start a fresh log context for one HTTP request and return its request id."""
    request_id = fields.pop("request_id", None) or uuid.uuid4().hex[:12]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **fields)
    return request_id


def clear_request_context():
    structlog.contextvars.clear_contextvars()


class OperationContext:
    """
    Times a unit of work (a Xano fetch, a capacity build) and logs its outcome.

    Extra keyword fields are attached to both the start and end events, so a
    failed fetch can be traced back to the facility or process type it was for.
    """

    def __init__(self, operation_type: str, operation_id: Optional[str] = None, **fields):
        self.operation_type = operation_type
        self.operation_id = operation_id or str(uuid.uuid4())[:8]
        self.fields = fields
        self.logger = get_logger("planner.operations").bind(
            operation_type=operation_type, operation_id=self.operation_id, **fields
        )
        self.started = None

    @property
    def elapsed(self) -> float:
        return round(time.perf_counter() - self.started, 4) if self.started else 0.0

    def __enter__(self):
        self.started = time.perf_counter()
        self.logger.debug("Operation started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.logger.info("Operation completed", duration_seconds=self.elapsed, status="success")
        else:
            self.logger.error(
                "Operation failed",
                duration_seconds=self.elapsed,
                status="error",
                error_type=exc_type.__name__,
                error_message=str(exc_val)
            )
        return False  # Don't suppress exceptions

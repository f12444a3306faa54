"""
Logging Configuration for the data layer.

This module provides a centralized logging setup for the client data layer and
the reference remote store. It supports structured JSON logging outside of
development and color-coded, human-readable logs for development. Every
remote action gets a correlation ID so that the log lines of one call,
including its fallback to local storage, can be grouped together.

Key Components:
- `CorrelationFilter`: A filter that injects the current correlation ID into
  each log record.
- `JSONFormatter`: Outputs log records as structured JSON for log ingestion.
- `ColoredConsoleFormatter`: Adds color to log levels for a development
  console.
- `get_logging_config`: Builds the `dictConfig` dictionary from the
  `ENVIRONMENT` and `LOG_LEVEL` environment variables.
- `setup_logging`: Initializes the logging system for the whole process.

Architectural Design:
- Context-Aware Logging: The correlation ID lives in a `contextvars` variable,
  so concurrent remote calls running as separate asyncio tasks keep their own
  IDs.
- Centralized Setup: All logging configuration lives here; other modules only
  call `get_logger(__name__)`.
"""

import os
import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variable for the remote call correlation ID
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_RESERVED_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
    "correlation_id",
}


class CorrelationFilter(logging.Filter):
    """Filter that adds correlation ID to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get()
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        corr_id = getattr(record, "correlation_id", None)
        if corr_id:
            log_entry["correlation_id"] = corr_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        # Fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_FIELDS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for development"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET

        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        corr_id = getattr(record, "correlation_id", None)
        corr_part = f" [{corr_id}]" if corr_id else ""

        formatted = f"{color}[{timestamp}] {record.levelname:8} {record.name}{corr_part}: {record.getMessage()}{reset}"

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def get_logging_config() -> Dict[str, Any]:
    """Get logging configuration based on environment"""

    environment = os.getenv("ENVIRONMENT", "development").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "correlation": {"()": CorrelationFilter},
        },
        "formatters": {
            "json": {
                "()": JSONFormatter,
            },
            "colored_console": {
                "()": ColoredConsoleFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "colored_console"
                if environment == "development"
                else "json",
                "filters": ["correlation"],
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            # Application loggers
            "api": {"level": log_level, "handlers": ["console"], "propagate": False},
            "core": {"level": log_level, "handlers": ["console"], "propagate": False},
            "providers": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "services": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            # Third-party loggers
            "aiohttp": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {
                "level": "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }

    return config


def setup_logging():
    """Initialize logging configuration"""
    config = get_logging_config()
    logging.config.dictConfig(config)

    logger = logging.getLogger("core.logging")
    environment = os.getenv("ENVIRONMENT", "development")
    logger.info(f"Logging initialized for {environment} environment")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name"""
    return logging.getLogger(name)


def set_correlation_id(corr_id: Optional[str]):
    """Set correlation ID for the current context"""
    return correlation_id.set(corr_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from the current context"""
    return correlation_id.get()

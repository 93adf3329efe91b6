"""
Logging configuration for the satchannel engine and API.

This module provides a centralized logging configuration with support for:
- Structured JSON logging in production
- Human-readable console output in development
- Optional file-based logging with rotation
"""
import json
import logging
import logging.config
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from satchannel.core.config import settings


class JsonFormatter(logging.Formatter):
    """
    Format log records as JSON for structured logging.

    In production, logs are emitted as JSON for easier parsing by log aggregation
    systems. In development, a more human-readable format is used.
    """
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self.is_prod = settings.ENVIRONMENT.lower() == "production"
        super().__init__(*args, **kwargs)

    def format(self, record: logging.LogRecord) -> str:
        if not self.is_prod:
            return super().format(record)

        log_record: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record, ensure_ascii=False)


def build_logging_config(level: Optional[str] = None, log_dir: Optional[str] = None) -> Dict[str, Any]:
    """
    Build the dictConfig mapping used by :func:`setup_logging`.

    Args:
        level: Root log level (defaults to ``settings.LOG_LEVEL``).
        log_dir: Directory for rotating log files. File handlers are only
            installed when a directory is given.

    Returns:
        A mapping accepted by ``logging.config.dictConfig``.
    """
    level = (level or settings.LOG_LEVEL).upper()
    log_dir = log_dir if log_dir is not None else settings.LOG_DIR

    handlers: Dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        }
    }
    root_handlers = ["console"]

    if log_dir:
        logs_path = Path(log_dir)
        logs_path.mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "INFO",
            "formatter": "file",
            "filename": str(logs_path / "satchannel.log"),
            "maxBytes": 10 * 1024 * 1024,  # 10MB
            "backupCount": 5,
            "encoding": "utf-8",
        }
        root_handlers.append("file")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "satchannel.core.logging.JsonFormatter",
                "fmt": settings.LOG_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "file": {
                "format": settings.LOG_FORMAT,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": root_handlers,
                "level": level,
                "propagate": False,
            },
            "uvicorn": {
                "handlers": root_handlers,
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": root_handlers,
                "level": "WARNING",
                "propagate": False,
            },
        },
    }


def setup_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> None:
    """
    Configure logging for the application.

    Sets up console and optional file handlers with appropriate formatters
    based on the environment (development/production).
    """
    logging.config.dictConfig(build_logging_config(level, log_dir))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: The name of the logger. If None, returns the root logger.

    Returns:
        A configured logger instance.
    """
    return logging.getLogger(name)

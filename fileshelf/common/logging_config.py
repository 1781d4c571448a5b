"""
Structured JSON logging with upload correlation IDs.

Provides:
- JSON format for log aggregation
- An upload correlation ID carried across one save cycle
- Structured metadata
- Performance tracking for storage and processing operations
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from fileshelf.config.settings import Settings, get_settings

# Context variable for the upload correlation ID (thread-safe)
upload_id_ctx: ContextVar[Optional[str]] = ContextVar(
    "upload_id", default=None)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with standardized fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        upload_id = upload_id_ctx.get()
        if upload_id:
            log_data["upload_id"] = upload_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Extra fields passed as extra={"extra_fields": {...}}
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class PerformanceTracker:
    """
    Context manager for tracking operation performance.

    Usage:
        with PerformanceTracker("store", logger, identifier="avatar.png"):
            # ... perform operation
            pass
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = logging.INFO,
        **extra_fields,
    ):
        """
        Initialize performance tracker.

        Args:
            operation: Operation name
            logger: Logger instance
            log_level: Log level for completion message
            **extra_fields: Additional structured fields
        """
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.extra_fields = extra_fields
        self.start_time: Optional[float] = None

    def _extra(self, **fields) -> dict:
        extra = {"operation": self.operation, **self.extra_fields, **fields}
        upload_id = upload_id_ctx.get()
        if upload_id:
            extra["upload_id"] = upload_id
        return extra

    def __enter__(self):
        """Start timing."""
        self.start_time = time.time()
        self.logger.log(
            logging.DEBUG,
            f"Starting operation: {self.operation}",
            extra={"extra_fields": self._extra()},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Log completion with duration. Exceptions are never suppressed."""
        duration_ms = round((time.time() - self.start_time) * 1000, 2)

        if exc_type:
            self.logger.error(
                f"Operation failed: {self.operation}",
                extra={"extra_fields": self._extra(
                    duration_ms=duration_ms,
                    error=str(exc_val),
                    error_type=exc_type.__name__,
                )},
            )
        else:
            self.logger.log(
                self.log_level,
                f"Operation completed: {self.operation}",
                extra={"extra_fields": self._extra(duration_ms=duration_ms)},
            )
        return False


def setup_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure application logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting if True, standard format if False
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, log_level.upper()))

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set third-party loggers to WARNING to reduce noise
    for noisy in ("botocore", "boto3", "urllib3", "PIL"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def configure_logging(settings: Optional[Settings] = None):
    """Configure logging from the log_level and log_json settings."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_json)


def set_upload_id(upload_id: Optional[str] = None) -> str:
    """
    Set the upload correlation ID in context.

    Args:
        upload_id: Upload ID (generated if not provided)

    Returns:
        Upload ID
    """
    if upload_id is None:
        upload_id = str(uuid.uuid4())
    upload_id_ctx.set(upload_id)
    return upload_id


def get_upload_id() -> Optional[str]:
    """Get current upload ID from context."""
    return upload_id_ctx.get()


def clear_upload_id():
    """Clear upload ID from context."""
    upload_id_ctx.set(None)

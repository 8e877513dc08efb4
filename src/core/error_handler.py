"""Centralized error handling and logging for the retention bot.

This module provides:
- Global exception handler for the FastAPI host
- Structured logging with correlation IDs (per update / per sweep tick)
- Environment-aware error responses (generic in production, detailed in dev)
- Prevention of bot token and message content leakage
"""

import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pythonjsonlogger.json import JsonFormatter
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.config import get_settings
from core.exceptions import ConfigurationError, SnapshotCorruptError
from core.security_config import get_allowed_error_fields, is_sensitive_key, mask_token
from schemas.api import ErrorResponse


# Context variable for correlation ID tracking across async calls
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

logger = logging.getLogger(__name__)

# Error type mappings for consistent responses
ERROR_TYPE_MESSAGES = {
    ConfigurationError: "The bot is not configured correctly",
    SnapshotCorruptError: "The retention state could not be loaded",
    ValidationError: "Invalid request data provided",
}

# Loggers that would otherwise print Bot API URLs (which embed the token)
_TOKEN_LEAKING_LOGGERS = ("httpx", "httpcore")


def get_correlation_id() -> str:
    """Get or create a correlation ID for tracing one unit of work."""
    correlation_id: str | None = _correlation_id_var.get()
    if correlation_id is None or correlation_id == "":
        new_id = str(uuid.uuid4())
        _correlation_id_var.set(new_id)
        return new_id
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id_var.set(correlation_id)


class StructuredLogger:
    """Structured logger that includes correlation IDs and sanitized data."""

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def _log_with_context(
        self,
        level: int,
        message: str,
        extra_data: dict[str, Any] | None = None,
        exc_info: bool = False,
    ) -> None:
        """Log with correlation ID and structured data."""
        correlation_id = get_correlation_id()

        sanitized_data = self._sanitize_data(extra_data or {})
        log_data = {
            "correlation_id": correlation_id,
            "message": message,
            **sanitized_data,
        }

        settings = get_settings()
        if settings.ENVIRONMENT == "production":
            # The JsonFormatter merges `structured_data` into the record, so
            # the message is not prefixed here.
            self.logger.log(
                level,
                message,
                extra={"structured_data": log_data},
                exc_info=exc_info,
            )
        else:
            # In development, use human-readable format
            details = " ".join(f"{k}={v}" for k, v in sanitized_data.items())
            self.logger.log(
                level,
                f"[{correlation_id}] {message}" + (f" ({details})" if details else ""),
                extra={"structured_data": log_data},
                exc_info=exc_info,
            )

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Remove or mask sensitive data from log entries."""
        if not isinstance(data, dict) or not data:
            return {}

        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            if is_sensitive_key(key):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = self._sanitize_value(value)
        return sanitized

    def _sanitize_value(self, value: Any) -> Any:
        """Sanitize a single value which may be a dict, list, or primitive."""
        if isinstance(value, dict):
            return self._sanitize_data(value)
        if isinstance(value, list):
            return [self._sanitize_value(item) for item in value]
        if isinstance(value, str):
            return mask_token(value)
        return value

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug level message."""
        self._log_with_context(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info level message."""
        self._log_with_context(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning level message."""
        self._log_with_context(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error level message."""
        self._log_with_context(logging.ERROR, message, kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log_with_context(logging.ERROR, message, kwargs, exc_info=True)


# Global structured logger instance
structured_logger = StructuredLogger(__name__)


def _build_error_response(
    *,
    correlation_id: str,
    error_type: str,
    message: str,
    environment: str,
    details: dict[str, Any] | None = None,
    traceback_str: str | None = None,
    exception_type: str | None = None,
    validation_errors: Any | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Construct a sanitized JSON error response respecting environment rules."""
    allowed_fields = get_allowed_error_fields(environment)

    error_body: dict[str, Any] = {
        "correlation_id": correlation_id,
        "type": error_type,
    }

    # Only include optional fields if allowed in this environment
    if "details" in allowed_fields and details:
        error_body["details"] = details
    if "traceback" in allowed_fields and traceback_str:
        error_body["traceback"] = mask_token(traceback_str)
    if "exception_type" in allowed_fields and exception_type:
        error_body["exception_type"] = exception_type
    if "validation_errors" in allowed_fields and validation_errors is not None:
        error_body["validation_errors"] = validation_errors

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            message=message,
            error=error_body,
            success=False,
        ).model_dump(),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler providing structured, sanitized responses.

    This function centralizes all error handling to ensure:
    - Consistent JSON error envelope
    - Correlation ID is always present
    - Sensitive data is never leaked (production)
    - Helpful diagnostics in development
    """
    settings = get_settings()
    environment = settings.ENVIRONMENT
    correlation_id = get_correlation_id()

    if isinstance(exc, StarletteHTTPException):
        status_code = getattr(exc, "status_code", 500)
        detail = getattr(exc, "detail", "An error occurred")
        http_error_body: dict[str, Any] = {
            "correlation_id": correlation_id,
            "type": "http_error",
        }
        if environment != "production":
            http_error_body["details"] = {"detail": detail}
            http_error_body["exception_type"] = exc.__class__.__name__
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                message="An HTTP error occurred", error=http_error_body, success=False
            ).model_dump(),
        )

    # Pydantic / FastAPI validation errors
    if isinstance(exc, ValidationError | RequestValidationError):
        validation_details = exc.errors()
        structured_logger.warning("Validation error", error_count=len(validation_details))
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="validation_error",
            message="Invalid request data provided",
            environment=environment,
            validation_errors=[
                {"loc": list(e.get("loc", ())), "msg": e.get("msg", "")}
                for e in validation_details
            ],
            status_code=422,
        )

    if isinstance(exc, ConfigurationError | SnapshotCorruptError):
        structured_logger.error(
            "Domain error", error_type=exc.__class__.__name__, domain_message=str(exc)
        )
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="domain_error",
            message=ERROR_TYPE_MESSAGES.get(type(exc), "Domain error"),
            environment=environment,
            status_code=503,
        )

    # Generic fallback
    structured_logger.exception(
        "Unhandled exception", exception_type=exc.__class__.__name__, error=str(exc)
    )
    traceback_str: str | None = None
    if environment != "production":
        traceback_str = "".join(traceback.format_exception(exc)).strip()

    return _build_error_response(
        correlation_id=correlation_id,
        error_type="internal_server_error",
        message="An internal error occurred",
        environment=environment,
        traceback_str=traceback_str,
        exception_type=exc.__class__.__name__ if environment != "production" else None,
    )


def setup_logging() -> None:
    """Configure application logging with proper JSON structure and idempotent setup."""
    settings = get_settings()

    log_level = logging.DEBUG if settings.ENVIRONMENT == "development" else logging.INFO
    root_logger = logging.getLogger()

    # Make setup idempotent - avoid duplicate handlers
    if root_logger.handlers:
        return

    formatter: logging.Formatter
    if settings.ENVIRONMENT == "production":
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        )
    else:
        # Human-readable logging for development
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)

    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    # Request URLs carry the bot token; never let them reach the log
    for name in _TOKEN_LEAKING_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # Suppress noisy third-party loggers in production
    if settings.ENVIRONMENT == "production":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("apscheduler").setLevel(logging.WARNING)

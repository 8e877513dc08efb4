"""API response schemas.

This module defines the common API response formats used by the bot's HTTP
host (health and webhook endpoints).
"""

from __future__ import annotations

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel


# Type variable for generic response types
T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard API response wrapper.

    Attributes:
        success: Whether the request was successful.
        data: The actual response data (when success is True).
        message: A human-readable message about the response.
        error: Error details (when success is False).
    """

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"
    error: dict[str, Any] | None = None


class ErrorResponse(ApiResponse[None]):
    """Error API response.

    A specialized API response for error conditions with a predefined
    success value of False.

    Attributes:
        success: Always False for error responses.
        message: A human-readable error message.
        error: Additional error details.
    """

    success: bool = False
    message: str = "An error occurred"
    error: dict[str, Any] | None = None


class HealthStatus(BaseModel):
    """Payload of the health endpoint."""

    status: Literal["healthy", "starting"]
    message: str
    update_mode: str | None = None
    policies: int = 0
    scheduled: int = 0
    tracked: int = 0
    persist_failures: int = 0

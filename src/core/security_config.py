"""Security configuration constants for the retention bot.

This module centralizes security-related configuration including:
- Sensitive keys that should be sanitized from logs
- Error handling security settings
- Bot token masking for free-form text
"""

import re


# Keys redacted from structured log fields (substring match, case-insensitive)
SENSITIVE_KEYS: set[str] = {
    # Bot API credentials
    "token",
    "bot_token",
    "secret",
    "webhook_secret",
    "secret_token",
    "api_key",
    "authorization",
    "bearer",
    "password",
    # Telegram headers
    "x-telegram-bot-api-secret-token",
    # Message content may hold personal data
    "text",
    "caption",
    "phone",
    "email",
}

# Production-only error response fields
# In production, error responses should only contain these fields to
# prevent information leakage
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
}

# Development error response fields (additional fields allowed in development)
DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}

# Bot API tokens look like "<bot id>:<35 url-safe chars>"
_BOT_TOKEN_PATTERN = re.compile(r"\d{5,}:[A-Za-z0-9_-]{20,}")


def get_allowed_error_fields(environment: str) -> set[str]:
    """Get allowed error response fields based on environment.

    Args:
        environment: The application environment (production, development, etc.)

    Returns:
        Set of allowed field names for error responses
    """
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    else:
        return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Check if a key should be considered sensitive and redacted.

    Args:
        key: The key name to check

    Returns:
        True if the key should be redacted, False otherwise
    """
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)


def mask_token(text: str, token: str | None = None) -> str:
    """Mask bot tokens inside free-form text such as exception messages.

    Bot API URLs embed the token in the path, so any error string built from a
    request URL must pass through here before it is logged or returned.
    """
    if token:
        text = text.replace(token, "[REDACTED]")
    return _BOT_TOKEN_PATTERN.sub("[REDACTED]", text)

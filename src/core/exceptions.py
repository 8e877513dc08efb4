class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class ConfigurationError(DomainError):
    """Exception raised when the bot cannot start with the given settings."""

    pass


class SnapshotCorruptError(DomainError):
    """Exception raised when an existing state snapshot cannot be parsed.

    Loading refuses to continue rather than silently discarding the stored
    retention policies.
    """

    pass


class TelegramApiError(DomainError):
    """Exception raised when a Bot API call fails outside the gateway contract.

    Gateway operations used by the retention engine return outcome values
    instead; this is raised by the lifecycle calls (getMe, getUpdates,
    setWebhook, ...) where the caller decides how to recover.
    """

    def __init__(
        self, method: str, description: str, error_code: int | None = None
    ) -> None:
        self.method = method
        self.description = description
        self.error_code = error_code
        super().__init__(f"{method} failed [{error_code}]: {description}")

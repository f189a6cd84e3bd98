"""Custom exception hierarchy for the chat storage engine.

Following error taxonomy: retryable, non-retryable, validation.
"""


class ChatStorageError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(ChatStorageError):
    """Errors that can be retried (connectivity issues, temporary failures)."""

    pass


class NonRetryableError(ChatStorageError):
    """Errors that should not be retried (validation, logic errors)."""

    pass


class ValidationError(NonRetryableError):
    """Input validation errors, raised before any I/O."""

    pass


class RepositoryError(RetryableError):
    """Database/storage errors."""

    pass


class MigrationError(RepositoryError):
    """A schema migration step failed; the schema version was not advanced."""

    def __init__(self, version: int, reason: str) -> None:
        """Initialize with the version that failed to apply."""
        self.version = version
        super().__init__(f"Schema migration to version {version} failed: {reason}")

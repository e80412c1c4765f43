"""Exception hierarchy for the conversation memory engine."""

from __future__ import annotations

from collections.abc import Iterable


class ConversationMemoryError(Exception):
    """Base exception for all conversation memory errors."""

    pass


# --- Caller-correctable errors ---


class ValidationError(ConversationMemoryError):
    """Input validation failed (malformed turn, option, or consent record)."""

    pass


class ConfigurationError(ConversationMemoryError):
    """Application configuration is invalid or missing required values."""

    pass


class PiiRejectedError(ConversationMemoryError):
    """PII was detected while auto-sanitization is disabled; nothing was persisted."""

    def __init__(self, kinds: Iterable[str], message: str = "PII detected") -> None:
        self.kinds = sorted({str(k) for k in kinds})
        super().__init__(f"{message}: {', '.join(self.kinds)}" if self.kinds else message)


class ConsentRequiredError(ConversationMemoryError):
    """A consent-gated category was written without a valid consent record."""

    def __init__(self, user_id: str | None, category: str) -> None:
        self.user_id = user_id
        self.category = category
        who = user_id if user_id else "anonymous session"
        super().__init__(f"Valid consent required to store '{category}' memory for {who}")


class NotFoundError(ConversationMemoryError):
    """Requested memory item or consent record does not exist."""

    def __init__(self, resource_id=None, message: str = "Not found"):
        self.resource_id = resource_id
        super().__init__(f"{message}: {resource_id}" if resource_id else message)


# --- Backend errors ---


class BackendError(ConversationMemoryError):
    """Base for errors talking to the durable memory backend."""

    retryable: bool = False


class BackendTimeoutError(BackendError):
    """A single backend attempt exceeded its timeout."""

    retryable = True


class BackendRequestError(BackendError):
    """The backend rejected a request or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class BackendUnavailableError(BackendError):
    """All retry attempts against the backend were exhausted."""

    def __init__(self, operation: str, attempts: int, last_error: Exception | None = None):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f"Backend unavailable for '{operation}' after {attempts} attempt(s){detail}"
        )

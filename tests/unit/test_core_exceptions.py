"""Unit tests for core exception hierarchy."""

import pytest

from convmem.core.exceptions import (
    BackendError,
    BackendRequestError,
    BackendTimeoutError,
    BackendUnavailableError,
    ConfigurationError,
    ConsentRequiredError,
    ConversationMemoryError,
    NotFoundError,
    PiiRejectedError,
    ValidationError,
)


class TestExceptionHierarchy:
    """Core exception inheritance."""

    @pytest.mark.parametrize(
        "exc_type",
        [
            ValidationError,
            ConfigurationError,
            PiiRejectedError,
            ConsentRequiredError,
            NotFoundError,
            BackendError,
        ],
    )
    def test_inherits_from_base(self, exc_type):
        assert issubclass(exc_type, ConversationMemoryError)

    @pytest.mark.parametrize(
        "exc_type", [BackendTimeoutError, BackendRequestError, BackendUnavailableError]
    )
    def test_backend_errors(self, exc_type):
        assert issubclass(exc_type, BackendError)


class TestExceptionDetails:
    def test_pii_rejected_lists_kinds(self):
        exc = PiiRejectedError(["phone", "email", "email"])
        assert exc.kinds == ["email", "phone"]
        assert "email" in str(exc)

    def test_consent_required_fields(self):
        exc = ConsentRequiredError("u1", "preference")
        assert exc.user_id == "u1"
        assert exc.category == "preference"
        assert "u1" in str(exc)

    def test_consent_required_anonymous(self):
        assert "anonymous" in str(ConsentRequiredError(None, "preference"))

    def test_not_found_message(self):
        exc = NotFoundError("abc", "Memory not found")
        assert exc.resource_id == "abc"
        assert str(exc) == "Memory not found: abc"

    def test_retryable_flags(self):
        assert BackendTimeoutError("t").retryable is True
        assert BackendRequestError("x", status_code=400).retryable is False
        assert BackendRequestError("x", status_code=503, retryable=True).retryable is True
        assert BackendUnavailableError("add", 3).retryable is False

    def test_unavailable_keeps_last_error(self):
        last = BackendTimeoutError("slow")
        exc = BackendUnavailableError("search", 3, last)
        assert exc.last_error is last
        assert exc.attempts == 3
        assert "search" in str(exc)

"""Unit tests for the API error types and status mapping."""

import pytest

from src.api.middleware.error_handler import (
    AuthorizationError,
    NotFoundError,
    chat_error_status,
)
from src.services.chat_errors import FetchError, OperationTimeoutError, SendError


class TestAPIErrors:
    """Tests for APIError subclasses."""

    def test_default_message(self) -> None:
        """Test that the class message is used when none is given."""
        error = AuthorizationError()

        assert error.message == "Access denied"
        assert error.status_code == 403
        assert error.error_type == "authorization_error"

    def test_message_override(self) -> None:
        """Test that a raise can carry its own message."""
        error = NotFoundError("Conversation not found")

        assert str(error) == "Conversation not found"
        assert error.status_code == 404


class TestChatErrorStatus:
    """Tests for chat_error_status."""

    def test_timeout_is_504(self) -> None:
        """Test that an expired deadline is a gateway timeout."""
        assert chat_error_status(OperationTimeoutError("fetch_messages", 15)) == ("backend_timeout", 504)

    @pytest.mark.parametrize("error", [FetchError("fetch failed"), SendError("insert failed")])
    def test_other_failures_are_502(self, error: Exception) -> None:
        """Test that rejected backend calls are bad gateway."""
        assert chat_error_status(error) == ("backend_error", 502)

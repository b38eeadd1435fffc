"""
Unit tests for the error taxonomy and ErrorHandler.
"""

from bitarchive.errors import (
    AuthError,
    BitArchiveError,
    ConflictError,
    ErrorCategory,
    ErrorHandler,
    NetworkError,
    RateLimitedError,
    RemoteError,
    ValidationError,
    user_message_for,
)


class TestErrors:
    """Test cases for BitArchiveError subclasses."""

    def test_defaults(self):
        error = RateLimitedError("quota exhausted")

        assert error.category == ErrorCategory.RATE_LIMIT
        assert error.code == "rate_limited"
        assert error.retry_suggested is True
        assert error.user_message == "GitHub rate limit reached. Try again later."

    def test_conflict_carries_version_token(self):
        error = ConflictError("exists", version_token="v1")
        assert error.version_token == "v1"
        assert isinstance(error, BitArchiveError)

    def test_remote_error_status(self):
        assert RemoteError("boom", status_code=502).status_code == 502

    def test_auth_is_not_recoverable(self):
        assert AuthError("bad token").recoverable is False

    def test_error_info(self):
        info = ValidationError("too big", code="file_too_large", details={"size": 10}).get_error_info()
        data = info.to_dict()

        assert data["category"] == "validation"
        assert data["code"] == "file_too_large"
        assert data["details"] == {"size": 10}


class TestErrorHandler:
    """Test cases for ErrorHandler classification."""

    def setup_method(self):
        self.handler = ErrorHandler()

    def test_passes_through_archive_errors(self):
        info = self.handler.handle_error(NetworkError("offline"))
        assert info.category == ErrorCategory.NETWORK

    def test_classifies_by_type(self):
        assert self.handler.handle_error(ConnectionResetError("reset")).category == ErrorCategory.NETWORK
        assert self.handler.handle_error(TimeoutError("slow")).category == ErrorCategory.NETWORK
        assert self.handler.handle_error(PermissionError("denied")).category == ErrorCategory.CACHE
        assert self.handler.handle_error(ValueError("bad")).category == ErrorCategory.VALIDATION
        assert self.handler.handle_error(RuntimeError("?")).category == ErrorCategory.UNKNOWN

    def test_counts_errors(self):
        for _ in range(3):
            self.handler.handle_error(NetworkError("offline"))

        assert self.handler.get_error_statistics() == {"network_error": 3}
        self.handler.reset_statistics()
        assert self.handler.get_error_statistics() == {}

    def test_user_message_for(self):
        assert user_message_for(AuthError("x")) == "Invalid token. Check permissions and run setup again."
        assert user_message_for(KeyError("x")) == "Something went wrong."

"""
Centralized error taxonomy and classification for bitarchive.

Every failure the archive can surface is a BitArchiveError subclass carrying
a category, severity, machine-readable code and a short user-facing message.
Errors are logged when they are constructed.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from .logging_config import get_logger, log_error

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Error categories for classification and handling."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    RATE_LIMIT = "rate_limit"
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    CACHE = "cache"
    REMOTE = "remote"
    CONFIGURATION = "configuration"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorInfo:
    """Structured error information."""

    category: ErrorCategory
    severity: ErrorSeverity
    code: str
    message: str
    user_message: str
    details: dict[str, Any]
    timestamp: datetime
    recoverable: bool = True
    retry_suggested: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert error info to dictionary."""
        return {
            "category": self.category.value,
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "retry_suggested": self.retry_suggested,
        }


class BitArchiveError(Exception):
    """Base exception class for bitarchive."""

    category = ErrorCategory.UNKNOWN
    severity = ErrorSeverity.MEDIUM
    default_code = "unknown_error"
    default_user_message = "Something went wrong."
    recoverable = True
    retry_suggested = False
    # Expected control-flow signals are logged at debug level instead of error.
    log_as_error = True

    def __init__(
        self,
        message: str,
        code: str | None = None,
        user_message: str | None = None,
        details: dict[str, Any] | None = None,
        original_exception: Exception | None = None,
    ):
        super().__init__(message)
        self.code = code or self.default_code
        self.user_message = user_message or self.default_user_message
        self.details = details or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now()

        self._log_error()

    def _log_error(self) -> None:
        """Log the error with appropriate level."""
        error_context = {
            "category": self.category.value,
            "severity": self.severity.value,
            "code": self.code,
            "recoverable": self.recoverable,
            **self.details,
        }

        if self.original_exception:
            error_context["original_exception"] = str(self.original_exception)

        if self.log_as_error:
            log_error(self, error_context)
        else:
            logger.debug("expected_condition", error_type=type(self).__name__, message=str(self), **error_context)

    def get_error_info(self) -> ErrorInfo:
        """Get structured error information."""
        return ErrorInfo(
            category=self.category,
            severity=self.severity,
            code=self.code,
            message=str(self),
            user_message=self.user_message,
            details=self.details,
            timestamp=self.timestamp,
            recoverable=self.recoverable,
            retry_suggested=self.retry_suggested,
        )


class ValidationError(BitArchiveError):
    """Payload rejected locally; no network call was made."""

    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW
    default_code = "validation_failed"
    default_user_message = "The selected file can't be uploaded."


class ConflictError(BitArchiveError):
    """The remote already holds a blob at the target path."""

    category = ErrorCategory.CONFLICT
    severity = ErrorSeverity.LOW
    default_code = "already_exists"
    default_user_message = "Already uploaded."
    log_as_error = False

    def __init__(self, message: str, version_token: str | None = None, **kwargs: Any):
        self.version_token = version_token
        super().__init__(message, **kwargs)


class RateLimitedError(BitArchiveError):
    """The remote API quota is exhausted."""

    category = ErrorCategory.RATE_LIMIT
    severity = ErrorSeverity.MEDIUM
    default_code = "rate_limited"
    default_user_message = "GitHub rate limit reached. Try again later."
    retry_suggested = True


class NotFoundError(BitArchiveError):
    """The requested remote resource does not exist."""

    category = ErrorCategory.NOT_FOUND
    severity = ErrorSeverity.LOW
    default_code = "not_found"
    default_user_message = "The image could not be found."
    log_as_error = False


class AuthError(BitArchiveError):
    """The token is invalid, expired or lacks a required scope."""

    category = ErrorCategory.AUTHENTICATION
    severity = ErrorSeverity.HIGH
    default_code = "auth_failed"
    default_user_message = "Invalid token. Check permissions and run setup again."
    recoverable = False


class NetworkError(BitArchiveError):
    """Transport-level failure talking to the remote."""

    category = ErrorCategory.NETWORK
    severity = ErrorSeverity.MEDIUM
    default_code = "network_error"
    default_user_message = "Network error. Check your connection."
    retry_suggested = True


class CacheIOError(BitArchiveError):
    """Local disk fault in the cache store."""

    category = ErrorCategory.CACHE
    severity = ErrorSeverity.MEDIUM
    default_code = "cache_io_error"
    default_user_message = "Couldn't read or write the local image cache."
    retry_suggested = True


class RemoteError(BitArchiveError):
    """Any other non-success response from the remote."""

    category = ErrorCategory.REMOTE
    severity = ErrorSeverity.MEDIUM
    default_code = "remote_error"
    default_user_message = "GitHub rejected the request."

    def __init__(self, message: str, status_code: int | None = None, **kwargs: Any):
        self.status_code = status_code
        super().__init__(message, **kwargs)


class ConfigurationError(BitArchiveError):
    """Archive configuration is missing or malformed."""

    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.HIGH
    default_code = "invalid_configuration"
    default_user_message = "The archive configuration is incomplete."
    recoverable = False


class OperationCancelledError(BitArchiveError):
    """A logical operation was cancelled through its cancellation token."""

    category = ErrorCategory.CANCELLED
    severity = ErrorSeverity.LOW
    default_code = "cancelled"
    default_user_message = "Cancelled."
    log_as_error = False


class ErrorHandler:
    """Turns arbitrary exceptions into ErrorInfo and keeps per-code counters."""

    def __init__(self) -> None:
        self.error_counts: dict[str, int] = {}
        self.logger = get_logger(__name__)

    def handle_error(self, error: Exception, context: dict[str, Any] | None = None) -> ErrorInfo:
        """
        Handle and classify errors.

        Args:
            error: Exception to handle
            context: Additional context information

        Returns:
            ErrorInfo: Structured error information
        """
        if not isinstance(error, BitArchiveError):
            error = self._classify_error(error, context or {})

        error_info = error.get_error_info()
        self._track_error(error_info.code)
        return error_info

    def _classify_error(self, error: Exception, context: dict[str, Any]) -> BitArchiveError:
        """Wrap a foreign exception based on its type."""
        details = {"original_type": type(error).__name__, **context}

        if isinstance(error, (ConnectionError, TimeoutError)):
            return NetworkError(str(error), details=details, original_exception=error)
        if isinstance(error, OSError):
            return CacheIOError(str(error), details=details, original_exception=error)
        if isinstance(error, ValueError):
            return ValidationError(str(error), details=details, original_exception=error)

        return BitArchiveError(str(error), details=details, original_exception=error)

    def _track_error(self, error_code: str) -> None:
        """Track error occurrence for monitoring."""
        self.error_counts[error_code] = self.error_counts.get(error_code, 0) + 1

        if self.error_counts[error_code] % 10 == 0:
            self.logger.warning("frequent_error_detected", error_code=error_code, count=self.error_counts[error_code])

    def get_error_statistics(self) -> dict[str, int]:
        """Get error occurrence statistics."""
        return self.error_counts.copy()

    def reset_statistics(self) -> None:
        """Reset error statistics."""
        self.error_counts.clear()


# Global error handler instance
error_handler = ErrorHandler()


def handle_error(error: Exception, context: dict[str, Any] | None = None) -> ErrorInfo:
    """Global error handling function."""
    return error_handler.handle_error(error, context)


def user_message_for(error: Exception) -> str:
    """Short human-readable message for any terminal failure."""
    if isinstance(error, BitArchiveError):
        return error.user_message
    return handle_error(error).user_message

"""
Error taxonomy for offline-sync.

This module provides:
- A hierarchy rooted at SyncError, partitioned by retryability
- Error context preservation for structured logging
- The aggregate SyncFailure raised when a whole drain pass fails
"""

from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ErrorCategory(Enum):
    """Error categories for classification."""
    AUTHENTICATION = "authentication"
    NETWORK = "network"
    REMOTE = "remote"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    SYNC = "sync"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    component: Optional[str] = None
    operation: Optional[str] = None
    key: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class SyncError(Exception):
    """Base exception for all offline-sync errors."""

    code: str = "SYNC_ERROR"
    default_message: str = "A synchronization error occurred"
    category: ErrorCategory = ErrorCategory.UNKNOWN
    is_retryable: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "is_retryable": self.is_retryable,
                "context": {
                    "timestamp": self.context.timestamp.isoformat(),
                    "component": self.context.component,
                    "operation": self.context.operation,
                    "key": self.context.key,
                    "metadata": self.context.metadata,
                },
            }
        }


class ConfigurationError(SyncError):
    """Invalid or unreadable configuration."""
    code = "CONFIG_ERROR"
    default_message = "Configuration error"
    category = ErrorCategory.CONFIGURATION


class AuthenticationRequired(SyncError):
    """No valid session is available."""
    code = "AUTH_REQUIRED"
    default_message = "Not authenticated"
    category = ErrorCategory.AUTHENTICATION


class AuthFailed(SyncError):
    """The remote rejected the credentials of an existing session.

    Retryable: the data is fine, the session needs refreshing.
    """
    code = "AUTH_FAILED"
    default_message = "Remote rejected the session credentials"
    category = ErrorCategory.AUTHENTICATION
    is_retryable = True


# Retryable transport errors

class TransportError(SyncError):
    """Network or protocol level failure."""
    code = "TRANSPORT_ERROR"
    default_message = "Transport error"
    category = ErrorCategory.NETWORK
    is_retryable = True


class RateLimited(TransportError):
    """The remote throttled the request."""
    code = "RATE_LIMITED"
    default_message = "Rate limited by remote"

    def __init__(self, message: Optional[str] = None, retry_after: Optional[float] = None, **kwargs):
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


class StreamClosed(TransportError):
    """The change stream ended without a caller-triggered stop."""
    code = "STREAM_CLOSED"
    default_message = "Change stream closed by remote"


# Permanent remote errors

class NonRetryableRemoteError(SyncError):
    """Permanent rejection by the remote; retrying can never succeed."""
    code = "REMOTE_REJECTED"
    default_message = "Remote permanently rejected the request"
    category = ErrorCategory.REMOTE


class NotFound(NonRetryableRemoteError):
    """The addressed record does not exist remotely."""
    code = "NOT_FOUND"
    default_message = "Record not found"


class ValidationRejected(NonRetryableRemoteError):
    """The remote rejected the payload as invalid."""
    code = "VALIDATION_REJECTED"
    default_message = "Record failed remote validation"
    category = ErrorCategory.VALIDATION


# Aggregate

class SyncFailure(SyncError):
    """Every item of a drain pass failed."""
    code = "SYNC_FAILURE"
    default_message = "Failed to sync pending mutations"
    category = ErrorCategory.SYNC

    def __init__(self, errors: List[BaseException], attempted: int, **kwargs):
        self.errors = list(errors)
        self.attempted = attempted
        first = str(self.errors[0]) if self.errors else "no items applied"
        message = f"Failed to sync {attempted} pending mutation(s): {first}"
        super().__init__(message, **kwargs)


def is_retryable(error: BaseException) -> bool:
    """Whether a failed operation may succeed if attempted again later.

    Unclassified exceptions count as retryable so queued data is never
    dropped on an error nobody understood.
    """
    if isinstance(error, SyncError):
        return error.is_retryable
    return True


def error_details(
    error: BaseException,
    component: Optional[str] = None,
    operation: Optional[str] = None,
    key: Optional[str] = None,
    **metadata
) -> Dict[str, Any]:
    """Describe an error for a structured log event.

    A SyncError gets missing context filled in from the call site and is
    rendered through to_dict(). Anything else is reported as unclassified.
    """
    if isinstance(error, SyncError):
        error.context.component = error.context.component or component
        error.context.operation = error.context.operation or operation
        error.context.key = error.context.key or key
        error.context.metadata.update(metadata)
        details = error.to_dict()["error"]
    else:
        details = {
            "code": "UNCLASSIFIED",
            "message": str(error),
            "is_retryable": is_retryable(error),
            "context": {
                "component": component,
                "operation": operation,
                "key": key,
                "metadata": metadata,
            },
        }
    details["type"] = type(error).__name__
    return details


__all__ = [
    'ErrorCategory',
    'ErrorContext',
    'SyncError',
    'ConfigurationError',
    'AuthenticationRequired',
    'AuthFailed',
    'TransportError',
    'RateLimited',
    'StreamClosed',
    'NonRetryableRemoteError',
    'NotFound',
    'ValidationRejected',
    'SyncFailure',
    'is_retryable',
    'error_details',
]

"""
Custom exceptions for the genealogy discovery pipeline with structured error context.

Each exception carries a context dictionary so failures can be logged and
stored on the import run record without losing the details of what failed.

Exception Hierarchy:
    GenealogyException (base)
    ├── InvalidInputError (non-retryable)
    ├── UpstreamError
    │   └── NoResponseError
    ├── PersistenceError
    ├── ImportTimeoutError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class GenealogyException(Exception):
    """
    Base exception for all discovery and import errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (identifier, status code, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(GenealogyException):
    """
    Mixin for errors that may succeed when the operation is attempted again.

    Used for transient failures such as upstream 5xx responses and lost
    connections. The job dispatcher retries these.
    """
    pass


class NonRetryableError(GenealogyException):
    """
    Mixin for errors that will fail the same way on every attempt.

    Used for malformed identifiers, too-short names and other input problems.
    """
    pass


# ============================================================================
# Input Errors
# ============================================================================

class InvalidInputError(NonRetryableError):
    """
    Raised before any network call when the input cannot be looked up.

    Context should include:
        - field: Name of the offending input (identifier, name)
        - value: The rejected value
    """
    pass


# ============================================================================
# Upstream Errors
# ============================================================================

class UpstreamError(GenealogyException):
    """
    Raised when the person-lookup service answered with an error.

    Context should include:
        - url: Endpoint that failed
        - status_code: HTTP status code (if a response was received)
        - upstream_message: Error message reported by the service (if any)
        - retry_count: Number of attempts made
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


class NoResponseError(RetryableError, UpstreamError):
    """Raised when the lookup service could not be reached at all."""
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class PersistenceError(GenealogyException):
    """
    Raised when a repository operation fails.

    Context should include:
        - operation: Repository operation (create, merge, create_bidirectional)
        - table_name: Name of the table
    """
    pass


# ============================================================================
# Import Errors
# ============================================================================

class ImportTimeoutError(GenealogyException):
    """Raised when a full-tree import exceeds its wall-clock budget."""
    pass

"""
Custom Exceptions Module
========================
Centralized exception definitions for the ingestion service.

This module defines a hierarchy of exceptions for:
- General pipeline errors
- Quota and tier-limit rejections
- Storage errors
- State machine violations
- External collaborator failures
- Validation errors
"""

from typing import Optional, Dict, Any


class PipelineException(Exception):
    """
    Base exception for all ingestion service errors.

    Provides structured error information including:
    - Error code for programmatic handling
    - Additional context data
    - Cause tracking for exception chaining
    """

    def __init__(
        self,
        message: str,
        code: str = "PIPELINE_ERROR",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional context data
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        The cause is deliberately left out: it may carry raw vendor text.

        Returns:
            Dict[str, Any]: Exception data as dictionary
        """
        result = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ValidationException(PipelineException):
    """Exception raised when request input fails validation."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[str] = None,
        code: str = "VALIDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        """
        Initialize validation exception.

        Args:
            message: Human-readable error message
            field: Name of the field that failed validation
            expected: Description of expected value/format
            code: Machine-readable error code
            details: Additional context data
            cause: Original exception that caused this error
        """
        super().__init__(message, code, details, cause)
        self.field = field
        self.expected = expected

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.expected:
            result["expected"] = self.expected
        return result


class QuotaException(PipelineException):
    """Base for quota and tier-limit rejections."""

    def __init__(
        self,
        message: str,
        tier: str,
        code: str = "QUOTA_ERROR",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        details["tier"] = tier
        super().__init__(message, code, details, cause)
        self.tier = tier


class QuotaExceededError(QuotaException):
    """Raised when an account has used up a monthly allowance."""

    def __init__(
        self,
        message: str,
        tier: str,
        field: str,
        limit: Optional[int],
        current: int,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details.update({
            "field": field,
            "limit": limit,
            "current": current,
            "upgrade_required": True,
        })
        super().__init__(message, tier, "QUOTA_EXCEEDED", details)
        self.field = field
        self.limit = limit
        self.current = current


class BatchLimitError(QuotaException):
    """Raised when a batch is larger than the tier allows."""

    def __init__(
        self,
        message: str,
        tier: str,
        batch_limit: int,
        submitted: int,
    ):
        super().__init__(
            message,
            tier,
            "BATCH_LIMIT_EXCEEDED",
            {
                "batch_limit": batch_limit,
                "submitted": submitted,
                "upgrade_required": True,
            },
        )
        self.batch_limit = batch_limit
        self.submitted = submitted


class StorageException(PipelineException):
    """Exception raised during storage operations."""

    def __init__(
        self,
        message: str,
        storage_type: str,
        operation: str,
        code: str = "STORAGE_ERROR",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        """
        Initialize storage exception.

        Args:
            message: Human-readable error message
            storage_type: Store involved (content, usage, flags, ...)
            operation: Operation that failed (read, write, ...)
            code: Machine-readable error code
            details: Additional context data
            cause: Original exception that caused this error
        """
        super().__init__(message, code, details, cause)
        self.storage_type = storage_type
        self.operation = operation

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["storage_type"] = self.storage_type
        result["operation"] = self.operation
        return result


class StorageReadError(StorageException):
    """Exception raised when a storage read fails."""

    def __init__(
        self,
        message: str,
        storage_type: str,
        key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if key:
            details["key"] = key
        super().__init__(
            message, storage_type, "read", "STORAGE_READ_ERROR", details, cause
        )


class StorageWriteError(StorageException):
    """Exception raised when a storage write fails."""

    def __init__(
        self,
        message: str,
        storage_type: str,
        key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if key:
            details["key"] = key
        super().__init__(
            message, storage_type, "write", "STORAGE_WRITE_ERROR", details, cause
        )


class QuotaStoreError(StorageException):
    """
    Usage-store failure.

    Always propagated to the caller as a rejection; usage is never
    admitted unmetered.
    """

    def __init__(
        self,
        message: str,
        operation: str,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message, "usage", operation, "QUOTA_STORE_UNAVAILABLE", None, cause
        )


class ContentNotFoundError(PipelineException):
    """Raised when a content row cannot be located."""

    def __init__(self, content_id: str):
        super().__init__(
            f"Content not found: {content_id}",
            "CONTENT_NOT_FOUND",
            {"content_id": content_id},
        )
        self.content_id = content_id


class InvalidTransitionError(PipelineException):
    """Raised when a status change is not an edge of the state machine."""

    def __init__(
        self,
        content_id: str,
        from_status: str,
        to_status: str,
    ):
        super().__init__(
            f"Illegal transition {from_status} -> {to_status} for {content_id}",
            "INVALID_TRANSITION",
            {
                "content_id": content_id,
                "from_status": from_status,
                "to_status": to_status,
            },
        )
        self.content_id = content_id
        self.from_status = from_status
        self.to_status = to_status


class ExternalServiceError(PipelineException):
    """
    Failure talking to an external collaborator.

    The message may contain raw vendor text and must go through
    ``classify_error`` before it is persisted or returned.
    """

    def __init__(
        self,
        message: str,
        service: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        details["service"] = service
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, "EXTERNAL_SERVICE_ERROR", details, cause)
        self.service = service
        self.status_code = status_code


class RateLimitError(PipelineException):
    """Exception raised when a client exceeds its request rate."""

    def __init__(
        self,
        message: str,
        source: str,
        limit: int,
        window_seconds: int,
        retry_after: Optional[int] = None,
    ):
        """
        Initialize rate limit exception.

        Args:
            message: Human-readable error message
            source: The client or bucket that was limited
            limit: The rate limit that was exceeded
            window_seconds: The time window for the limit
            retry_after: Seconds to wait before retrying
        """
        details = {
            "limit": limit,
            "window_seconds": window_seconds,
        }
        if retry_after:
            details["retry_after"] = retry_after
        super().__init__(message, "RATE_LIMIT_ERROR", details)
        self.source = source
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = retry_after

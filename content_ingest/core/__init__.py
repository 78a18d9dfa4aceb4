"""
Content Ingest Core Module
==========================
Core infrastructure components for the ingestion service.

This module provides:
- Configuration management
- Logging infrastructure
- Exception hierarchy
- Error taxonomy for user-safe failure messages
"""

from .config import Config
from .logging_config import setup_logging, get_logger, get_content_logger
from .error_taxonomy import ErrorCategory, classify_error, user_friendly_error
from .exceptions import (
    PipelineException,
    ValidationException,
    QuotaException,
    QuotaExceededError,
    BatchLimitError,
    QuotaStoreError,
    StorageException,
    ContentNotFoundError,
    InvalidTransitionError,
    ExternalServiceError,
    RateLimitError,
)

__all__ = [
    "Config",
    "setup_logging",
    "get_logger",
    "get_content_logger",
    "ErrorCategory",
    "classify_error",
    "user_friendly_error",
    "PipelineException",
    "ValidationException",
    "QuotaException",
    "QuotaExceededError",
    "BatchLimitError",
    "QuotaStoreError",
    "StorageException",
    "ContentNotFoundError",
    "InvalidTransitionError",
    "ExternalServiceError",
    "RateLimitError",
]

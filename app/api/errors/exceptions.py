"""
Exception definitions.
Owns: Application-specific exception classes.
"""

from typing import Any


class AppException(Exception):
    error_code: str = "INTERNAL_ERROR"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "error_code": self.error_code,
            "retryable": self.retryable,
            **self.details,
        }


class InvalidInputException(AppException):
    error_code = "INVALID_INPUT"
    status_code = 400
    retryable = False


class PayloadTooLargeException(AppException):
    error_code = "PAYLOAD_TOO_LARGE"
    status_code = 413
    retryable = False


class AccessDeniedException(AppException):
    error_code = "ACCESS_DENIED"
    status_code = 403
    retryable = False


class NotFoundException(AppException):
    error_code = "NOT_FOUND"
    status_code = 404
    retryable = False


class StorageUnavailableException(AppException):
    """Raised when transient storage failures outlast the retry budget."""
    error_code = "STORAGE_UNAVAILABLE"
    status_code = 502
    retryable = True


class StorageException(AppException):
    """Raised for storage failures that could not be classified."""
    error_code = "STORAGE_ERROR"
    status_code = 500
    retryable = False


class InternalException(AppException):
    error_code = "INTERNAL_ERROR"
    status_code = 500
    retryable = True

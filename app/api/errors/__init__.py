from .exceptions import (
    AccessDeniedException,
    AppException,
    InternalException,
    InvalidInputException,
    NotFoundException,
    PayloadTooLargeException,
    StorageException,
    StorageUnavailableException,
)
from .handlers import register_exception_handlers

__all__ = [
    "AccessDeniedException",
    "AppException",
    "InternalException",
    "InvalidInputException",
    "NotFoundException",
    "PayloadTooLargeException",
    "StorageException",
    "StorageUnavailableException",
    "register_exception_handlers",
]

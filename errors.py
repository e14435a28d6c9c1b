"""
Error taxonomy for the storefront.

Field-level validation problems never raise; they live in ``FormState.errors``.
Everything here is a remote-operation or domain failure that the HTTP layer
turns into a ``{"detail": message}`` response.
"""
from typing import Optional

from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    PyMongoError,
    ServerSelectionTimeoutError,
)


class StoreError(Exception):
    status_code = 400
    default_message = "An error occurred"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NotFoundError(StoreError):
    status_code = 404
    default_message = "Record not found"


class BannerLimitError(StoreError):
    status_code = 409
    default_message = "Maximum 5 banners allowed. Please delete existing banners first."


class StorageError(StoreError):
    status_code = 400
    default_message = "Unknown storage error occurred"


class InvalidCredentialsError(StoreError):
    status_code = 401
    default_message = "Invalid email or password"


class DatabaseUnavailableError(StoreError):
    status_code = 503
    default_message = "Database is not configured"


# MongoDB error codes we translate explicitly
_UNAUTHORIZED_CODES = {13, 18}


def friendly_message(error: BaseException) -> str:
    """Normalize any caught error to a message safe to show an admin."""
    if isinstance(error, StoreError):
        return error.message
    if isinstance(error, DuplicateKeyError):
        return "Record already exists"
    if isinstance(error, (ServerSelectionTimeoutError, ConnectionFailure)):
        return "Database is unavailable, please try again later"
    if isinstance(error, OperationFailure):
        if error.code in _UNAUTHORIZED_CODES:
            return "Permission denied"
        return "Database operation failed"
    if isinstance(error, PyMongoError):
        return "Database error occurred"
    return str(error) or "An unexpected error occurred"


def status_for(error: BaseException) -> int:
    if isinstance(error, StoreError):
        return error.status_code
    if isinstance(error, DuplicateKeyError):
        return 409
    if isinstance(error, OperationFailure) and error.code in _UNAUTHORIZED_CODES:
        return 403
    return 503

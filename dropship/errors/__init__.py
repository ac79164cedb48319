"""Error handling module."""
from dropship.errors.exceptions import (
    DropshipError,
    InvalidUrlError,
    FetchError,
    ParseError,
    ImageDownloadError,
    InvalidTransitionError,
    OrderNotFoundError,
    JobNotFoundError,
    JobStateError,
    DuplicateImportError,
    UnauthorizedError,
    NotificationError,
    DatabaseError,
)

__all__ = [
    "DropshipError",
    "InvalidUrlError",
    "FetchError",
    "ParseError",
    "ImageDownloadError",
    "InvalidTransitionError",
    "OrderNotFoundError",
    "JobNotFoundError",
    "JobStateError",
    "DuplicateImportError",
    "UnauthorizedError",
    "NotificationError",
    "DatabaseError",
]

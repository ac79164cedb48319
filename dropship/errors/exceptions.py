"""Custom exception hierarchy for the dropship service.

Extraction errors (InvalidUrlError, FetchError, ParseError) are raised by the
scraper and masked at the pipeline boundary. Fulfillment errors carry
operator-facing messages and are surfaced verbatim.
"""
from typing import Any, Dict, Optional


class DropshipError(Exception):
    """Base exception for all dropship service errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Initialize error.

        Args:
            message: Human-readable error message
            details: Optional structured context for logging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a response-friendly dictionary."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class InvalidUrlError(DropshipError):
    """Supplier URL is malformed, SSRF-blocked, or has no product id.

    Deterministic input error: never retried.
    """


class FetchError(DropshipError):
    """Transient network/HTTP failure while fetching supplier data."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """True when retrying may succeed (transport error, 429 or 5xx)."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class ParseError(DropshipError):
    """Fetched page does not contain a recognizable product structure."""


class ImageDownloadError(FetchError):
    """A single image could not be downloaded."""


class InvalidTransitionError(DropshipError):
    """Fulfillment status change rejected by the state machine."""


class OrderNotFoundError(DropshipError):
    """Dropship order (or a record it depends on) does not exist."""


class JobNotFoundError(DropshipError):
    """Import job does not exist or has expired."""


class JobStateError(DropshipError):
    """Import job cannot move to the requested state."""


class DuplicateImportError(DropshipError):
    """A ProductSource already exists for the supplier product."""


class UnauthorizedError(DropshipError):
    """Caller is not an operator/admin principal."""


class NotificationError(DropshipError):
    """Notification delivery failed."""


class DatabaseError(DropshipError):
    """Database operation failed."""

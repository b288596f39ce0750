"""
Error taxonomy for AtmosFault.

Every failure the core can surface maps onto one of these classes, and the
HTTP layer maps each class onto a status code:

    NotFound              404  unknown or malformed tracking id
    ValidationError       400  malformed input (e.g. hour outside 0-23)
    RateLimited           429  raised by an external throttling collaborator
    UpstreamUnavailable   -    provider/geocoder/weather/feed failure
    StorageError          -    database read or write failure
"""

from typing import Optional


class AtmosFaultError(Exception):
    """Base exception for all AtmosFault errors."""


class NotFound(AtmosFaultError):
    """Tracking id is unknown or not in a recognised format."""

    def __init__(self, message: str, tracking_number: Optional[str] = None):
        self.tracking_number = tracking_number
        super().__init__(message)


class ValidationError(AtmosFaultError):
    """Caller supplied malformed input."""


class UpstreamUnavailable(AtmosFaultError):
    """An external HTTP collaborator timed out, failed, or returned garbage."""

    def __init__(
        self,
        message: str,
        service: str = '',
        status_code: Optional[int] = None,
    ):
        self.service = service
        self.status_code = status_code
        super().__init__(message)


class StorageError(AtmosFaultError):
    """Read or write against the telemetry store or tracking cache failed."""


class RateLimited(AtmosFaultError):
    """Caller exceeded a request quota enforced outside the core."""

    def __init__(
        self,
        message: str = 'Too many requests. Please try again later.',
        retry_after: int = 60,
        remaining: int = 0,
    ):
        self.retry_after = retry_after
        self.remaining = remaining
        super().__init__(message)

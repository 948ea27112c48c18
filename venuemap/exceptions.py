"""Exception taxonomy for the I/O edges of the venue directory.

The coordinate extractor itself never raises: it reports failures through
``ExtractionResult``. The classes below are raised by the layers that talk
to the network or the database, and the API turns them into HTTP errors.

Every exception carries a machine-readable ``code`` and exposes
``to_error_dict()`` for logging and JSON responses.
"""

from __future__ import annotations


class VenueMapError(Exception):
    """Base class for venue directory errors.

    Attributes:
        message: Human-readable description.
        code: Stable machine-readable code (e.g. ``"REDIRECT_FAILED"``).
    """

    default_code: str = "VENUE_MAP_ERROR"

    def __init__(self, message: str = "", *, code: str = "") -> None:
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)

    def to_error_dict(self) -> dict[str, str]:
        return {
            "code": self.code,
            "message": self.message,
            "error_type": type(self).__name__,
        }


class RedirectResolutionError(VenueMapError):
    """A short map link could not be expanded to its final URL."""

    default_code = "REDIRECT_FAILED"

    def __init__(self, url: str, reason: str = "") -> None:
        self.url = url
        self.reason = reason
        message = "Could not expand short URL"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PageFetchError(VenueMapError):
    """Fetching the markup behind a map URL failed."""

    default_code = "PAGE_FETCH_FAILED"

    def __init__(self, url: str, status_code: int | None = None, reason: str = "") -> None:
        self.url = url
        self.status_code = status_code
        detail = reason or (f"HTTP {status_code}" if status_code else "request failed")
        super().__init__(f"Failed to fetch URL: {detail}")


class GeocodingError(VenueMapError):
    """Reverse geocoding service returned an error or unusable payload."""

    default_code = "GEOCODING_FAILED"


class VenueNotFoundError(VenueMapError):
    """No venue, comment or edit exists with the requested id."""

    default_code = "NOT_FOUND"

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind.capitalize()} not found: {record_id}")


class InvalidThemeError(VenueMapError):
    """Theme colours or font failed validation."""

    default_code = "INVALID_THEME"

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Default map centre the legacy link parser substituted when it found no
# coordinates. Never informative as a venue location.
PLACEHOLDER_LAT = 51.5074
PLACEHOLDER_LNG = -0.1278


def is_valid_coordinate(lat: float, lng: float) -> bool:
    """Bounds check that never raises: NaN and infinities are invalid."""
    try:
        if not (math.isfinite(lat) and math.isfinite(lng)):
            return False
    except TypeError:
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Coordinate(BaseModel):
    """A WGS84 point. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def is_placeholder(self) -> bool:
        """True for (0, 0) and the default map centre."""
        return (self.lat == 0 and self.lng == 0) or (
            self.lat == PLACEHOLDER_LAT and self.lng == PLACEHOLDER_LNG
        )

    def to_geojson(self) -> dict[str, Any]:
        """GeoJSON Point for the MongoDB 2dsphere index ([lng, lat] order)."""
        return {"type": "Point", "coordinates": [self.lng, self.lat]}

    @classmethod
    def from_geojson(cls, point: dict[str, Any]) -> "Coordinate":
        lng, lat = point["coordinates"][:2]
        return cls(lat=lat, lng=lng)


class AmbiguousPairOrder(str, Enum):
    """How to assign a bracketed [a,b] pair when both values fit a latitude."""

    FIRST_IS_LONGITUDE = "first_is_longitude"
    """Documented default: ``[lng,lat]``, the order map payloads use."""

    LARGER_MAGNITUDE_IS_LONGITUDE = "larger_magnitude_is_longitude"
    """Legacy guess: the value with the larger absolute value is the longitude."""


class CandidatePair(BaseModel):
    """Two raw numbers lifted from text whose lat/lng roles are not yet known."""

    model_config = ConfigDict(frozen=True)

    first: float
    second: float

    def disambiguate(
        self, order: AmbiguousPairOrder = AmbiguousPairOrder.FIRST_IS_LONGITUDE
    ) -> tuple[float, float]:
        """Return ``(lat, lng)``.

        A value whose magnitude exceeds 90 cannot be a latitude, so when one
        token is beyond 90 and larger than the other it becomes the longitude.
        Otherwise ``order`` decides.
        """
        a, b = self.first, self.second
        if abs(a) > 90 and abs(a) > abs(b):
            return b, a
        if abs(b) > 90 and abs(b) > abs(a):
            return a, b
        if order == AmbiguousPairOrder.LARGER_MAGNITUDE_IS_LONGITUDE and abs(b) >= abs(a):
            return a, b
        return b, a


class ExtractionMethod(str, Enum):
    PRECISE = "precise-pattern"
    PLACE_URL = "place-url-pattern"
    BRACKETED_ARRAY = "bracketed-array-pattern"
    SECONDARY_MARKER = "secondary-marker-pattern"
    NULL_PREFIXED = "null-prefixed-pattern"
    GENERAL_FALLBACK = "general-fallback-pattern"
    QUERY_PARAMETER = "query-parameter-pattern"


class ExtractionError(str, Enum):
    UNSUPPORTED_URL = "unsupported_url"
    REDIRECT_RESOLUTION_FAILED = "redirect_resolution_failed"
    NO_COORDINATES_FOUND = "no_coordinates_found"
    ALL_CANDIDATES_INVALID = "all_candidates_invalid"

    @property
    def message(self) -> str:
        return _ERROR_MESSAGES[self]


_ERROR_MESSAGES = {
    ExtractionError.UNSUPPORTED_URL: "Only Google Maps URLs are supported",
    ExtractionError.REDIRECT_RESOLUTION_FAILED: (
        "Could not expand short URL. Please try using the full Google Maps URL instead."
    ),
    ExtractionError.NO_COORDINATES_FOUND: "No coordinates found",
    ExtractionError.ALL_CANDIDATES_INVALID: "No valid coordinates",
}


class ExtractionResult(BaseModel):
    """Outcome of one extraction: a tagged coordinate or a failure reason."""

    model_config = ConfigDict(frozen=True)

    success: bool
    coordinates: Optional[Coordinate] = None
    method_used: Optional[ExtractionMethod] = None
    error: Optional[ExtractionError] = None
    resolved_url: Optional[str] = None

    @classmethod
    def ok(
        cls,
        coordinates: Coordinate,
        method: ExtractionMethod,
        resolved_url: Optional[str] = None,
    ) -> "ExtractionResult":
        return cls(
            success=True,
            coordinates=coordinates,
            method_used=method,
            resolved_url=resolved_url,
        )

    @classmethod
    def fail(
        cls, error: ExtractionError, resolved_url: Optional[str] = None
    ) -> "ExtractionResult":
        return cls(success=False, error=error, resolved_url=resolved_url)

    def to_response(self) -> dict[str, Any]:
        """JSON body used by the /maps endpoints."""
        if self.success and self.coordinates is not None:
            body: dict[str, Any] = {
                "success": True,
                "coordinates": {"lat": self.coordinates.lat, "lng": self.coordinates.lng},
                "methodUsed": self.method_used.value if self.method_used else None,
            }
        else:
            body = {
                "success": False,
                "error": self.error.message if self.error else "Unknown error",
                "code": self.error.value if self.error else None,
            }
        if self.resolved_url:
            body["resolvedUrl"] = self.resolved_url
        return body


# ── Venues ──────────────────────────────────────────────────


class VenueType(str, Enum):
    BAR = "bar"
    PUB = "pub"
    LIQUOR_STORE = "liquor_store"


class ModerationStatus(str, Enum):
    """Lifecycle of community submissions (venues and suggested edits)."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Venue(BaseModel):
    """A venue listed in the directory."""

    id: str
    name: str
    location: Coordinate
    type: Optional[VenueType] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    brands: list[str] = Field(default_factory=list)
    photos: list[str] = Field(default_factory=list)
    ambiance: list[str] = Field(default_factory=list)
    price_range: Optional[str] = None
    google_maps_url: Optional[str] = None
    status: ModerationStatus = ModerationStatus.PENDING
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class VenueSubmission(BaseModel):
    """Community-submitted venue awaiting moderation."""

    name: str = Field(..., min_length=1, max_length=200)
    location: Coordinate
    type: Optional[VenueType] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    brands: list[str] = Field(default_factory=list)
    photos: list[str] = Field(default_factory=list)
    ambiance: list[str] = Field(default_factory=list)
    price_range: Optional[str] = None
    google_maps_url: Optional[str] = None
    created_by: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class VenueFilters(BaseModel):
    q: Optional[str] = Field(None, description="Substring match on venue name")
    city: Optional[str] = None
    brand: Optional[str] = None
    type: Optional[VenueType] = None
    page: int = Field(1, ge=1)


class VenuePage(BaseModel):
    venues: list[Venue]
    total_count: int
    current_page: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class VenuePin(BaseModel):
    """Minimal record for drawing every venue on the map."""

    id: str
    location: Coordinate


class NearbyVenue(Venue):
    distance_km: float


class CommentCreate(BaseModel):
    author: Optional[str] = None
    body: str = Field(..., min_length=1, max_length=2000)


class Comment(CommentCreate):
    id: str
    venue_id: str
    created_at: datetime = Field(default_factory=_utcnow)


class VenueChanges(BaseModel):
    """The fields a suggested edit may touch, typed as on ``Venue``."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    location: Optional[Coordinate] = None
    type: Optional[VenueType] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    brands: Optional[list[str]] = None
    photos: Optional[list[str]] = None
    ambiance: Optional[list[str]] = None
    price_range: Optional[str] = None
    google_maps_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


EDITABLE_FIELDS = frozenset(VenueChanges.model_fields)

# Venue fields that cannot be cleared by an edit
REQUIRED_EDIT_FIELDS = frozenset({"name", "location", "brands", "photos", "ambiance"})


class VenueEditCreate(BaseModel):
    changes: dict[str, Any]
    note: Optional[str] = None
    submitted_by: Optional[str] = None

    @field_validator("changes")
    @classmethod
    def _known_fields_only(cls, v: dict[str, Any]) -> dict[str, Any]:
        if not v:
            raise ValueError("changes must not be empty")
        unknown = set(v) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"fields not editable: {', '.join(sorted(unknown))}")
        return v


class VenueEdit(VenueEditCreate):
    id: str
    venue_id: str
    status: ModerationStatus = ModerationStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)
    resolved_at: Optional[datetime] = None


# ── Map link parsing ────────────────────────────────────────


class VenueInfo(BaseModel):
    """Venue details recoverable from the text of a map link."""

    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.name or self.address or self.city)


class GeocodedAddress(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None


class MapLinkParse(BaseModel):
    """Everything a submission form can prefill from one map link."""

    success: bool
    coordinates: Optional[Coordinate] = None
    venue_info: VenueInfo = Field(default_factory=VenueInfo)
    method_used: Optional[ExtractionMethod] = None
    requires_manual_review: bool = False
    error: Optional[str] = None
    resolved_url: Optional[str] = None

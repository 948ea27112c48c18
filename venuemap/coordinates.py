"""Pull a venue coordinate out of a Google Maps URL or the page behind it.

Matchers run in a fixed priority order and the first candidate that passes
validation wins; results from different matchers are never merged.

1. ``!3d<lat>!4d<lng>`` place markers, then the embed form ``!2d<lng>!3d<lat>``,
   then ``!3d<lat>...!4d<lng>`` with other blocks between them inside a
   ``data=`` segment. These mark the venue itself, not the map viewport.
2. ``/place/<name>/@<lat>,<lng>,`` viewport of a place URL.
3. ``[<num>,<num>]`` arrays anywhere in page markup, roles decided by
   magnitude (see ``CandidatePair.disambiguate``).
4. ``[3,<lng>,<lat>]`` arrays.
5. ``null,null,<lat>,<lng>`` runs.
6. Any ``@<lat>,<lng>,`` viewport.
7. ``q=<lat>,<lng>`` / ``ll=<lat>,<lng>`` query parameters.

A candidate is valid when it is inside WGS84 bounds and is not a placeholder
((0, 0) or the default map centre).
"""

import logging
import re
from typing import Iterator, Optional

from venuemap.config import settings
from venuemap.models import (
    AmbiguousPairOrder,
    CandidatePair,
    Coordinate,
    ExtractionError,
    ExtractionMethod,
    ExtractionResult,
    is_valid_coordinate,
)

logger = logging.getLogger(__name__)

_NUM = r"-?\d+\.?\d*(?:[eE][-+]?\d+)?"
_DEC = r"-?\d+\.\d+"

PRECISE_PATTERN = re.compile(rf"!3d({_NUM})!4d({_NUM})")
EMBED_PATTERN = re.compile(rf"!2d({_NUM})!3d({_NUM})")
# Other ``!``-blocks may sit between the markers inside a ``data=`` segment
DATA_SEGMENT_PATTERN = re.compile(r"data=([^?&#\s\"'<>]*)")
SPLIT_PRECISE_PATTERN = re.compile(rf"!3d({_NUM})(?:![^!]*)*?!4d({_NUM})")
PLACE_AT_PATTERN = re.compile(rf"/place/[^/@]*/@({_NUM}),({_NUM}),")
BRACKETED_PAIR_PATTERN = re.compile(rf"\[({_DEC}),({_DEC})\]")
SECONDARY_MARKER_PATTERN = re.compile(rf"\[3,({_DEC}),({_DEC})\]")
NULL_PREFIXED_PATTERN = re.compile(rf"null,null,({_DEC}),({_DEC})")
GENERAL_AT_PATTERN = re.compile(rf"@({_NUM}),({_NUM}),")
QUERY_PARAM_PATTERN = re.compile(rf"[?&](?:q|ll)=({_NUM})(?:,|%2C)({_NUM})(?=$|[&#])", re.IGNORECASE)

# A candidate is (lat, lng), or None when the text matched but a token
# would not parse.
Candidate = Optional[tuple[float, float]]


def default_pair_order() -> AmbiguousPairOrder:
    return AmbiguousPairOrder(settings.ambiguous_pair_order)


def _number(token: str) -> Optional[float]:
    try:
        return float(token)
    except ValueError:
        return None


def _ordered(pattern: re.Pattern, text: str, *, lat_first: bool) -> Iterator[Candidate]:
    for match in pattern.finditer(text):
        a, b = _number(match.group(1)), _number(match.group(2))
        if a is None or b is None:
            yield None
        else:
            yield (a, b) if lat_first else (b, a)


def _first_only(pattern: re.Pattern, text: str) -> Iterator[Candidate]:
    match = pattern.search(text)
    if match:
        a, b = _number(match.group(1)), _number(match.group(2))
        yield None if a is None or b is None else (a, b)


def _precise(text: str, order: AmbiguousPairOrder) -> Iterator[Candidate]:
    yield from _ordered(PRECISE_PATTERN, text, lat_first=True)
    yield from _ordered(EMBED_PATTERN, text, lat_first=False)
    for segment in DATA_SEGMENT_PATTERN.finditer(text):
        yield from _ordered(SPLIT_PRECISE_PATTERN, segment.group(1), lat_first=True)


def _place_url(text: str, order: AmbiguousPairOrder) -> Iterator[Candidate]:
    if "/place/" in text:
        yield from _first_only(PLACE_AT_PATTERN, text)


def _bracketed(text: str, order: AmbiguousPairOrder) -> Iterator[Candidate]:
    for match in BRACKETED_PAIR_PATTERN.finditer(text):
        a, b = _number(match.group(1)), _number(match.group(2))
        if a is None or b is None:
            yield None
            continue
        yield CandidatePair(first=a, second=b).disambiguate(order)


def _secondary_marker(text: str, order: AmbiguousPairOrder) -> Iterator[Candidate]:
    yield from _ordered(SECONDARY_MARKER_PATTERN, text, lat_first=False)


def _null_prefixed(text: str, order: AmbiguousPairOrder) -> Iterator[Candidate]:
    yield from _ordered(NULL_PREFIXED_PATTERN, text, lat_first=True)


def _general_at(text: str, order: AmbiguousPairOrder) -> Iterator[Candidate]:
    yield from _first_only(GENERAL_AT_PATTERN, text)


def _query_parameter(text: str, order: AmbiguousPairOrder) -> Iterator[Candidate]:
    yield from _ordered(QUERY_PARAM_PATTERN, text, lat_first=True)


MATCHERS = (
    (ExtractionMethod.PRECISE, _precise),
    (ExtractionMethod.PLACE_URL, _place_url),
    (ExtractionMethod.BRACKETED_ARRAY, _bracketed),
    (ExtractionMethod.SECONDARY_MARKER, _secondary_marker),
    (ExtractionMethod.NULL_PREFIXED, _null_prefixed),
    (ExtractionMethod.GENERAL_FALLBACK, _general_at),
    (ExtractionMethod.QUERY_PARAMETER, _query_parameter),
)


def validate_candidate(lat: float, lng: float) -> Optional[Coordinate]:
    """Coordinate for an in-bounds, informative pair; None otherwise."""
    if not is_valid_coordinate(lat, lng):
        return None
    coordinate = Coordinate(lat=lat, lng=lng)
    if coordinate.is_placeholder():
        return None
    return coordinate


def extract(
    text: object, *, ambiguous_order: Optional[AmbiguousPairOrder] = None
) -> ExtractionResult:
    """Find the venue coordinate in a map URL or page markup.

    Never raises: non-string input and text without any recognised pattern
    give ``no_coordinates_found``; text whose candidates all fail validation
    gives ``all_candidates_invalid``.
    """
    if not isinstance(text, str) or not text:
        return ExtractionResult.fail(ExtractionError.NO_COORDINATES_FOUND)

    order = ambiguous_order or default_pair_order()
    matched = False
    for method, matcher in MATCHERS:
        for candidate in matcher(text, order):
            matched = True
            if candidate is None:
                continue
            coordinate = validate_candidate(*candidate)
            if coordinate is not None:
                logger.debug(
                    "Coordinates %.7f,%.7f extracted via %s",
                    coordinate.lat,
                    coordinate.lng,
                    method.value,
                )
                return ExtractionResult.ok(coordinate, method)

    if matched:
        logger.debug("All coordinate candidates rejected (%d chars scanned)", len(text))
        return ExtractionResult.fail(ExtractionError.ALL_CANDIDATES_INVALID)
    return ExtractionResult.fail(ExtractionError.NO_COORDINATES_FOUND)

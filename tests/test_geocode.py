"""Tests for Nominatim payload handling and full map-link parsing."""

from __future__ import annotations

import httpx
import pytest

from tests.conftest import LAFUENTE_URL, NAME_ONLY_URL, SHORT_URL
from venuemap.exceptions import GeocodingError, RedirectResolutionError
from venuemap.geocode import (
    address_from_nominatim,
    normalize_country,
    parse_map_link,
    reverse_geocode,
)
from venuemap.models import Coordinate, ExtractionMethod, GeocodedAddress

SANTIAGO = Coordinate(lat=-33.4372, lng=-70.6506)


# ---------------------------------------------------------------------------
# Payload flattening
# ---------------------------------------------------------------------------


class TestAddressFromNominatim:
    def test_street_address(self) -> None:
        result = address_from_nominatim(
            {
                "display_name": "317, Bandera, Santiago, Chile",
                "address": {
                    "house_number": "317",
                    "road": "Bandera",
                    "city": "Santiago",
                    "country": "Chile",
                    "country_code": "cl",
                },
            }
        )
        assert result.address == "317, Bandera"
        assert result.city == "Santiago"
        assert result.country == "Chile"
        assert result.country_code == "CL"

    def test_amenity_when_no_street(self) -> None:
        result = address_from_nominatim(
            {"display_name": "Bar Nacional", "address": {"amenity": "Bar Nacional", "town": "Pucón"}}
        )
        assert result.address == "Bar Nacional"
        assert result.city == "Pucón"

    def test_skips_administrative_display_name(self) -> None:
        result = address_from_nominatim(
            {
                "display_name": "City of Westminster, London, Greater London, England",
                "address": {"borough": "City of Westminster", "county": "Greater London"},
            }
        )
        assert result.address == "London"
        assert result.city == "Greater London"

    def test_empty_payload(self) -> None:
        assert address_from_nominatim({}) == GeocodedAddress()


class TestNormalizeCountry:
    @pytest.mark.parametrize(
        ("country", "code", "expected"),
        [
            ("Chile", "cl", "Chile"),
            ("España", "ES", "Spain"),
            (None, "GB", "United Kingdom"),
            ("Narnia", "ZZ", "Narnia"),
            (None, None, None),
        ],
    )
    def test_normalize(self, country: str | None, code: str | None, expected: str | None) -> None:
        assert normalize_country(country, code) == expected


# ---------------------------------------------------------------------------
# reverse_geocode
# ---------------------------------------------------------------------------


class TestReverseGeocode:
    @pytest.mark.asyncio()
    async def test_queries_coordinate(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "display_name": "Bandera, Santiago",
                    "address": {"road": "Bandera", "city": "Santiago", "country_code": "cl"},
                },
            )

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await reverse_geocode(SANTIAGO, client=client)

        assert result.address == "Bandera"
        assert seen[0].url.params["lat"] == "-33.4372"
        assert seen[0].url.params["lon"] == "-70.6506"
        assert seen[0].url.params["format"] == "json"

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500),
            httpx.Response(200, text="<html>not json</html>"),
            httpx.Response(200, json={"error": "Unable to geocode"}),
        ],
    )
    async def test_failures_raise(self, response: httpx.Response) -> None:
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response)) as client:
            with pytest.raises(GeocodingError):
                await reverse_geocode(SANTIAGO, client=client)


# ---------------------------------------------------------------------------
# parse_map_link
# ---------------------------------------------------------------------------


async def _madrid(coordinate: Coordinate) -> GeocodedAddress:
    return GeocodedAddress(address="Calle de Fernando el Santo 1", city="Madrid", country="España", country_code="ES")


async def _no_geocode(coordinate: Coordinate) -> GeocodedAddress:
    raise AssertionError("geocoder must not be called")


class TestParseMapLink:
    @pytest.mark.asyncio()
    async def test_merges_url_and_geocoded_details(self) -> None:
        parsed = await parse_map_link(LAFUENTE_URL, geocode=_madrid)
        assert parsed.success
        assert parsed.coordinates == Coordinate(lat=40.4280246, lng=-3.6887462)
        assert parsed.method_used == ExtractionMethod.PRECISE
        assert parsed.venue_info.name == "Lafuente Lorenzo S.A."
        assert parsed.venue_info.address == "Calle de Fernando el Santo 1"
        assert parsed.venue_info.city == "Madrid"
        assert parsed.venue_info.country == "Spain"
        assert not parsed.requires_manual_review

    @pytest.mark.asyncio()
    async def test_url_city_wins_over_geocoded(self) -> None:
        url = (
            "https://www.google.com/maps/place/Bar+Nacional,+Bandera+317,+Santiago,+Chile"
            "/@-33.4372,-70.6506,17z"
        )
        parsed = await parse_map_link(url, geocode=_madrid)
        assert parsed.venue_info.city == "Santiago"
        assert parsed.venue_info.address == "Calle de Fernando el Santo 1"

    @pytest.mark.asyncio()
    async def test_name_without_coordinates_needs_review(self) -> None:
        parsed = await parse_map_link(NAME_ONLY_URL, geocode=_no_geocode)
        assert parsed.success
        assert parsed.requires_manual_review
        assert parsed.coordinates is None
        assert parsed.venue_info.name == "Bar Nacional"

    @pytest.mark.asyncio()
    async def test_nothing_recoverable(self) -> None:
        parsed = await parse_map_link("https://www.google.com/maps", geocode=_no_geocode)
        assert not parsed.success
        assert parsed.error

    @pytest.mark.asyncio()
    async def test_unsupported(self) -> None:
        parsed = await parse_map_link("https://example.com/place/Bar", geocode=_no_geocode)
        assert not parsed.success
        assert parsed.error == "Only Google Maps URLs are supported"

    @pytest.mark.asyncio()
    async def test_redirect_failure(self) -> None:
        async def resolve(url: str) -> str:
            raise RedirectResolutionError(url)

        parsed = await parse_map_link(SHORT_URL, resolve=resolve, geocode=_no_geocode)
        assert not parsed.success
        assert parsed.error.startswith("Could not expand short URL")

    @pytest.mark.asyncio()
    async def test_geocoding_failure_is_skipped(self) -> None:
        async def broken(coordinate: Coordinate) -> GeocodedAddress:
            raise GeocodingError("service down")

        parsed = await parse_map_link(LAFUENTE_URL, geocode=broken)
        assert parsed.success
        assert parsed.venue_info.address is None
        assert parsed.venue_info.name == "Lafuente Lorenzo S.A."

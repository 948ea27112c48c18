"""Tests for the HTTP routes.

The lifespan is not run: network edges and the database are replaced via
``app.dependency_overrides``.
"""

from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from tests.conftest import (
    LAFUENTE_URL,
    NAME_ONLY_URL,
    SECONDARY_MARKER_HTML,
    SHORT_URL,
    make_cursor,
    venue_doc,
)
from venuemap.api import app, get_geocoder, get_page_fetcher, get_resolver
from venuemap.config import settings
from venuemap.db import get_db
from venuemap.exceptions import GeocodingError, PageFetchError, RedirectResolutionError
from venuemap.models import Coordinate, GeocodedAddress
from venuemap.theme import DEFAULT_THEME

EXPANDED = "https://www.google.com/maps/place/Bar+X/@-33.4372,-70.6506,17z"


async def _resolve(url: str) -> str:
    return EXPANDED


async def _fetch(url: str) -> str:
    return SECONDARY_MARKER_HTML


async def _geocode(coordinate: Coordinate) -> GeocodedAddress:
    return GeocodedAddress(address="Bandera 317", city="Santiago", country="Chile", country_code="CL")


@pytest.fixture()
def db() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def client(db: MagicMock) -> Iterator[TestClient]:
    app.dependency_overrides[get_resolver] = lambda: _resolve
    app.dependency_overrides[get_page_fetcher] = lambda: _fetch
    app.dependency_overrides[get_geocoder] = lambda: _geocode
    app.dependency_overrides[get_db] = lambda: db
    app.state.theme = DEFAULT_THEME
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.theme = DEFAULT_THEME


@pytest.fixture()
def admin_headers(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    monkeypatch.setattr(settings, "admin_token", "s3cret")
    return {"X-Admin-Token": "s3cret"}


# ---------------------------------------------------------------------------
# Map links
# ---------------------------------------------------------------------------


class TestExpandUrl:
    def test_short_link(self, client: TestClient) -> None:
        resp = client.post("/maps/expand-url", json={"url": SHORT_URL})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "expandedUrl": EXPANDED, "originalUrl": SHORT_URL}

    def test_missing_url(self, client: TestClient) -> None:
        resp = client.post("/maps/expand-url", json={"url": "  "})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "URL is required"

    def test_unsupported(self, client: TestClient) -> None:
        resp = client.post("/maps/expand-url", json={"url": "https://example.com/maps"})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Only Google Maps URLs are supported"

    def test_redirect_failure(self, client: TestClient) -> None:
        async def failing(url: str) -> str:
            raise RedirectResolutionError(url, "timeout")

        app.dependency_overrides[get_resolver] = lambda: failing
        resp = client.post("/maps/expand-url", json={"url": SHORT_URL})
        assert resp.status_code == 502
        assert resp.json()["detail"].startswith("Could not expand short URL")


class TestParseCoordinates:
    def test_from_markup(self, client: TestClient) -> None:
        resp = client.post("/maps/parse-coordinates", json={"url": SHORT_URL})
        body = resp.json()
        assert resp.status_code == 200
        assert body["success"] is True
        assert body["coordinates"] == {"lat": -32.973640155577314, "lng": -71.54449177677758}
        assert body["methodUsed"] == "secondary-marker-pattern"
        assert body["source"] == "html_extraction"

    def test_fetch_failure(self, client: TestClient) -> None:
        async def failing(url: str) -> str:
            raise PageFetchError(url, status_code=503)

        app.dependency_overrides[get_page_fetcher] = lambda: failing
        resp = client.post("/maps/parse-coordinates", json={"url": LAFUENTE_URL})
        assert resp.status_code == 502
        assert resp.json()["detail"] == "Failed to fetch URL: HTTP 503"

    def test_userinfo_host_rejected(self, client: TestClient) -> None:
        resp = client.post(
            "/maps/parse-coordinates", json={"url": "https://maps.google.com@127.0.0.1:8080/admin"}
        )
        assert resp.status_code == 400

    def test_redirect_off_maps_not_fetched(self, client: TestClient) -> None:
        async def offsite(url: str) -> str:
            return "http://127.0.0.1:8080/admin"

        async def fetch(url: str) -> str:
            raise AssertionError("only Google Maps pages may be fetched")

        app.dependency_overrides[get_resolver] = lambda: offsite
        app.dependency_overrides[get_page_fetcher] = lambda: fetch
        resp = client.post("/maps/parse-coordinates", json={"url": SHORT_URL})
        assert resp.status_code == 502

    def test_no_coordinates_in_markup(self, client: TestClient) -> None:
        async def empty(url: str) -> str:
            return "<html></html>"

        app.dependency_overrides[get_page_fetcher] = lambda: empty
        body = client.post("/maps/parse-coordinates", json={"url": LAFUENTE_URL}).json()
        assert body["success"] is False
        assert body["code"] == "no_coordinates_found"


class TestLocate:
    def test_full_link(self, client: TestClient) -> None:
        body = client.post("/maps/locate", json={"url": LAFUENTE_URL}).json()
        assert body["coordinates"] == {"lat": 40.4280246, "lng": -3.6887462}
        assert body["methodUsed"] == "precise-pattern"

    def test_short_link_reports_resolved_url(self, client: TestClient) -> None:
        body = client.post("/maps/locate", json={"url": SHORT_URL}).json()
        assert body["methodUsed"] == "place-url-pattern"
        assert body["resolvedUrl"] == EXPANDED

    def test_unsupported(self, client: TestClient) -> None:
        assert client.post("/maps/locate", json={"url": "https://example.com"}).status_code == 400


class TestParseLink:
    def test_prefills_details(self, client: TestClient) -> None:
        body = client.post("/maps/parse-link", json={"url": LAFUENTE_URL}).json()
        assert body["success"] is True
        assert body["coordinates"] == {"lat": 40.4280246, "lng": -3.6887462}
        assert body["venue_info"]["name"] == "Lafuente Lorenzo S.A."
        assert body["venue_info"]["address"] == "Bandera 317"
        assert body["method_used"] == "precise-pattern"

    def test_manual_review(self, client: TestClient) -> None:
        async def empty(url: str) -> str:
            return "<html></html>"

        app.dependency_overrides[get_page_fetcher] = lambda: empty
        body = client.post("/maps/parse-link", json={"url": NAME_ONLY_URL}).json()
        assert body["success"] is True
        assert body["requires_manual_review"] is True
        assert body["coordinates"] is None


class TestGeocode:
    def test_success(self, client: TestClient) -> None:
        resp = client.post("/geocode", json={"lat": -33.4372, "lng": -70.6506})
        assert resp.json() == {
            "success": True,
            "data": {"address": "Bandera 317", "city": "Santiago", "country": "Chile", "country_code": "CL"},
        }

    def test_out_of_bounds(self, client: TestClient) -> None:
        assert client.post("/geocode", json={"lat": 95, "lng": 0}).status_code == 422

    def test_service_error(self, client: TestClient) -> None:
        async def failing(coordinate: Coordinate) -> GeocodedAddress:
            raise GeocodingError("Reverse geocoding failed: HTTP 503")

        app.dependency_overrides[get_geocoder] = lambda: failing
        assert client.post("/geocode", json={"lat": -33.4, "lng": -70.6}).status_code == 502


# ---------------------------------------------------------------------------
# Venues
# ---------------------------------------------------------------------------


class TestVenues:
    def test_unknown_id_is_404(self, client: TestClient, db: MagicMock) -> None:
        db.venues.find_one = AsyncMock(return_value=None)
        resp = client.get(f"/venues/{ObjectId()}")
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"

    def test_malformed_id_is_404(self, client: TestClient) -> None:
        assert client.get("/venues/not-an-id").status_code == 404

    def test_submission_validated(self, client: TestClient) -> None:
        resp = client.post("/venues", json={"name": "Bar", "location": {"lat": 100, "lng": 0}})
        assert resp.status_code == 422

    def test_invalid_bounds(self, client: TestClient) -> None:
        resp = client.get("/venues/by-bounds", params={"north": -10, "south": 10, "east": 1, "west": 0})
        assert resp.status_code == 400

    def test_bounds_limit_capped(self, client: TestClient, db: MagicMock) -> None:
        cursor = make_cursor([])
        db.venues.find.return_value = cursor
        resp = client.get(
            "/venues/by-bounds",
            params={"north": 10, "south": -10, "east": 10, "west": -10, "limit": 1000},
        )
        assert resp.status_code == 200
        assert resp.json() == {"venues": [], "count": 0}
        cursor.limit.assert_called_once_with(settings.bounds_max_limit)
        assert "max-age" in resp.headers["cache-control"]

    def test_edit_with_wrong_type_is_400(self, client: TestClient, db: MagicMock) -> None:
        db.venues.find_one = AsyncMock(return_value=venue_doc())
        db.venue_edits.insert_one = AsyncMock()
        resp = client.post(f"/venues/{ObjectId()}/edits", json={"changes": {"brands": 5}})
        assert resp.status_code == 400
        assert "brands" in resp.json()["detail"]
        db.venue_edits.insert_one.assert_not_awaited()


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------


class TestAdmin:
    def test_requires_token(self, client: TestClient) -> None:
        assert client.get("/admin/edits").status_code == 403

    def test_rejects_wrong_token(self, client: TestClient, admin_headers: dict[str, str]) -> None:
        assert client.get("/admin/edits", headers={"X-Admin-Token": "guess"}).status_code == 403

    def test_lists_edits(self, client: TestClient, db: MagicMock, admin_headers: dict[str, str]) -> None:
        db.venue_edits.find.return_value = make_cursor([])
        resp = client.get("/admin/edits", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json() == []

    def test_unknown_decision(self, client: TestClient, admin_headers: dict[str, str]) -> None:
        resp = client.post(f"/admin/edits/{ObjectId()}/maybe", headers=admin_headers)
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Theme
# ---------------------------------------------------------------------------


class TestTheme:
    def test_current_theme(self, client: TestClient) -> None:
        body = client.get("/theme").json()
        assert body["name"] == "Default Theme"
        assert body["font"] == "geist"
        assert body["colors"]["textAccent"] == "#ffffff"

    def test_css(self, client: TestClient) -> None:
        resp = client.get("/theme/css")
        assert resp.headers["content-type"].startswith("text/css")
        assert "--font-sans: var(--font-geist-sans);" in resp.text

    def test_update_requires_admin(self, client: TestClient) -> None:
        assert client.put("/theme", json={"name": "Night"}).status_code == 403

    def test_update_invalid(self, client: TestClient, admin_headers: dict[str, str]) -> None:
        resp = client.put("/theme", json={"colors": {"primary": "red"}}, headers=admin_headers)
        assert resp.status_code == 400
        assert "colors.primary" in resp.json()["detail"]

    def test_update_switches_active_theme(
        self, client: TestClient, db: MagicMock, admin_headers: dict[str, str]
    ) -> None:
        db.theme_settings.update_many = AsyncMock()
        db.theme_settings.update_one = AsyncMock()
        resp = client.put(
            "/theme", json={"name": "Night", "font": "poppins"}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.json()["theme"]["updatedAt"] is not None
        assert "var(--font-poppins)" in client.get("/theme/css").text

"""Shared pytest fixtures for the venue directory test suite."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

# ---------------------------------------------------------------------------
# Sample map links
# ---------------------------------------------------------------------------

LAFUENTE_URL = (
    "https://www.google.com/maps/place/Lafuente+Lorenzo+S.A./@40.4276243,-3.6897011,17z"
    "/data=!3m1!5s0xd4228915eeccabb:0x1cc80ad33bc1ca9b!4m6!3m5!1s0xd4228915b5bfd75:"
    "0x77dd0669a0f7e315!8m2!3d40.4280246!4d-3.6887462!16s%2Fg%2F11bzt503jg"
    "?entry=ttu&g_ep=EgoyMDI1MDgyNS4wIKXMDSoASAFQAw%3D%3D"
)

SHORT_URL = "https://maps.app.goo.gl/AbCdEf123"

NAME_ONLY_URL = "https://www.google.com/maps/place/Bar+Nacional"

SECONDARY_MARKER_HTML = (
    '<script>window.APP_INITIALIZATION_STATE=[[[3,-71.54449177677758,'
    '-32.973640155577314]],null]</script>'
)


@pytest.fixture()
def lafuente_url() -> str:
    return LAFUENTE_URL


# ---------------------------------------------------------------------------
# MongoDB doubles
# ---------------------------------------------------------------------------


def make_cursor(docs: list[dict[str, Any]]) -> MagicMock:
    """Chainable Motor cursor double returning ``docs`` from ``to_list``."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=docs)
    return cursor


def insert_one_double() -> AsyncMock:
    """``insert_one`` double that assigns ``_id`` in place like pymongo does."""

    async def _insert(doc: dict[str, Any]) -> MagicMock:
        doc.setdefault("_id", ObjectId())
        return MagicMock(inserted_id=doc["_id"])

    return AsyncMock(side_effect=_insert)


def venue_doc(**overrides: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "_id": ObjectId(),
        "name": "Bar Nacional",
        "location": {"type": "Point", "coordinates": [-70.6506, -33.4372]},
        "address": "Bandera 317",
        "city": "Santiago",
        "country": "Chile",
        "type": "bar",
        "brands": ["Mistral"],
        "status": "approved",
    }
    doc.update(overrides)
    return doc


@pytest.fixture()
def fake_db() -> MagicMock:
    """MagicMock database; tests attach AsyncMocks to the collections they use."""
    return MagicMock()

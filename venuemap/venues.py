"""Venue, comment and suggested-edit persistence in MongoDB.

Venues store ``location`` as a GeoJSON point so the 2dsphere index can
serve bounding-box and radius queries. Every function takes the database
handle explicitly.
"""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import ReturnDocument

from venuemap.distance import EARTH_RADIUS_KM, filter_venues_by_distance
from venuemap.exceptions import VenueNotFoundError
from venuemap.models import (
    REQUIRED_EDIT_FIELDS,
    Comment,
    CommentCreate,
    Coordinate,
    ModerationStatus,
    NearbyVenue,
    Venue,
    VenueChanges,
    VenueEdit,
    VenueEditCreate,
    VenueFilters,
    VenuePage,
    VenuePin,
    VenueSubmission,
)

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _object_id(kind: str, value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise VenueNotFoundError(kind, value) from None


def doc_to_venue(doc: dict[str, Any]) -> Venue:
    """Convert a MongoDB venue document to a ``Venue``."""
    fields = {k: v for k, v in doc.items() if k not in ("_id", "id", "location")}
    return Venue(id=str(doc["_id"]), location=Coordinate.from_geojson(doc["location"]), **fields)


def _doc_to_comment(doc: dict[str, Any]) -> Comment:
    fields = {k: v for k, v in doc.items() if k not in ("_id", "id")}
    return Comment(id=str(doc["_id"]), **fields)


def _doc_to_edit(doc: dict[str, Any]) -> VenueEdit:
    fields = {k: v for k, v in doc.items() if k not in ("_id", "id")}
    return VenueEdit(id=str(doc["_id"]), **fields)


# ── Queries ─────────────────────────────────────────────────


def build_venue_query(
    filters: VenueFilters, status: ModerationStatus = ModerationStatus.APPROVED
) -> dict[str, Any]:
    """MongoDB filter for the public venue list."""
    query: dict[str, Any] = {"status": status.value}
    if filters.q:
        query["name"] = {"$regex": re.escape(filters.q), "$options": "i"}
    if filters.city:
        query["city"] = {"$regex": re.escape(filters.city), "$options": "i"}
    if filters.brand:
        query["brands"] = filters.brand
    if filters.type:
        query["type"] = filters.type.value
    return query


def bounds_query(north: float, south: float, east: float, west: float) -> dict[str, Any]:
    """Filter for approved venues inside a map viewport.

    A viewport crossing the antimeridian (``west > east``) is split in two.

    Raises:
        ValueError: When ``south`` is above ``north`` or a bound is out of range.
    """
    if not (-90 <= south <= north <= 90):
        raise ValueError("south must be <= north, both within [-90, 90]")
    if not (-180 <= west <= 180 and -180 <= east <= 180):
        raise ValueError("east and west must be within [-180, 180]")

    def box(w: float, e: float) -> dict[str, Any]:
        return {"location": {"$geoWithin": {"$box": [[w, south], [e, north]]}}}

    query: dict[str, Any] = {"status": ModerationStatus.APPROVED.value}
    if west <= east:
        query.update(box(west, east))
    else:
        query["$or"] = [box(west, 180), box(-180, east)]
    return query


async def list_venues(
    db: AsyncIOMotorDatabase,
    filters: VenueFilters,
    *,
    page_size: int,
    status: ModerationStatus = ModerationStatus.APPROVED,
) -> VenuePage:
    query = build_venue_query(filters, status)
    total = await db.venues.count_documents(query)
    skip = (filters.page - 1) * page_size
    docs = (
        await db.venues.find(query)
        .sort("created_at", -1)
        .skip(skip)
        .limit(page_size)
        .to_list(page_size)
    )
    total_pages = math.ceil(total / page_size) if page_size else 0
    return VenuePage(
        venues=[doc_to_venue(d) for d in docs],
        total_count=total,
        current_page=filters.page,
        total_pages=total_pages,
        has_next_page=filters.page < total_pages,
        has_prev_page=filters.page > 1,
    )


async def venues_in_bounds(
    db: AsyncIOMotorDatabase,
    *,
    north: float,
    south: float,
    east: float,
    west: float,
    limit: int,
) -> list[Venue]:
    query = bounds_query(north, south, east, west)
    docs = await db.venues.find(query).sort("created_at", -1).limit(limit).to_list(limit)
    return [doc_to_venue(d) for d in docs]


async def nearby_venues(
    db: AsyncIOMotorDatabase, origin: Coordinate, radius_km: float, *, limit: int = 200
) -> list[NearbyVenue]:
    """Approved venues within ``radius_km`` of ``origin``, closest first."""
    query = {
        "status": ModerationStatus.APPROVED.value,
        "location": {
            "$geoWithin": {
                "$centerSphere": [[origin.lng, origin.lat], radius_km / EARTH_RADIUS_KM]
            }
        },
    }
    docs = await db.venues.find(query).limit(limit).to_list(limit)
    return filter_venues_by_distance((doc_to_venue(d) for d in docs), origin, radius_km)


async def venue_pins(db: AsyncIOMotorDatabase) -> list[VenuePin]:
    cursor = db.venues.find(
        {"status": ModerationStatus.APPROVED.value}, {"location": 1}
    ).sort("created_at", -1)
    return [
        VenuePin(id=str(d["_id"]), location=Coordinate.from_geojson(d["location"]))
        async for d in cursor
    ]


async def random_venue(db: AsyncIOMotorDatabase) -> Venue | None:
    docs = await db.venues.aggregate(
        [{"$match": {"status": ModerationStatus.APPROVED.value}}, {"$sample": {"size": 1}}]
    ).to_list(1)
    return doc_to_venue(docs[0]) if docs else None


async def get_venue(db: AsyncIOMotorDatabase, venue_id: str) -> Venue:
    doc = await db.venues.find_one({"_id": _object_id("venue", venue_id)})
    if not doc:
        raise VenueNotFoundError("venue", venue_id)
    return doc_to_venue(doc)


# ── Submissions & moderation ────────────────────────────────


async def submit_venue(db: AsyncIOMotorDatabase, submission: VenueSubmission) -> Venue:
    """Store a community submission; it stays hidden until approved."""
    now = _now()
    doc = submission.model_dump(mode="json", exclude={"location"})
    doc.update(
        location=submission.location.to_geojson(),
        status=ModerationStatus.PENDING.value,
        created_at=now,
        updated_at=now,
    )
    result = await db.venues.insert_one(doc)
    logger.info("Venue submitted: %s (%s)", submission.name, result.inserted_id)
    return doc_to_venue(doc)


async def set_venue_status(
    db: AsyncIOMotorDatabase, venue_id: str, status: ModerationStatus
) -> Venue:
    doc = await db.venues.find_one_and_update(
        {"_id": _object_id("venue", venue_id)},
        {"$set": {"status": status.value, "updated_at": _now()}},
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise VenueNotFoundError("venue", venue_id)
    logger.info("Venue %s marked %s", venue_id, status.value)
    return doc_to_venue(doc)


async def delete_venue(db: AsyncIOMotorDatabase, venue_id: str) -> None:
    """Delete a venue together with its comments and suggested edits."""
    oid = _object_id("venue", venue_id)
    if not await db.venues.find_one({"_id": oid}, {"_id": 1}):
        raise VenueNotFoundError("venue", venue_id)
    await db.comments.delete_many({"venue_id": venue_id})
    await db.venue_edits.delete_many({"venue_id": venue_id})
    await db.venues.delete_one({"_id": oid})
    logger.info("Venue %s deleted", venue_id)


# ── Comments ────────────────────────────────────────────────


async def add_comment(
    db: AsyncIOMotorDatabase, venue_id: str, comment: CommentCreate
) -> Comment:
    await get_venue(db, venue_id)
    doc = {**comment.model_dump(), "venue_id": venue_id, "created_at": _now()}
    await db.comments.insert_one(doc)
    return _doc_to_comment(doc)


async def list_comments(
    db: AsyncIOMotorDatabase, venue_id: str, *, limit: int = 50
) -> list[Comment]:
    docs = (
        await db.comments.find({"venue_id": venue_id})
        .sort("created_at", -1)
        .limit(limit)
        .to_list(limit)
    )
    return [_doc_to_comment(d) for d in docs]


# ── Suggested edits ─────────────────────────────────────────


def edit_to_update(changes: dict[str, Any]) -> dict[str, Any]:
    """Translate suggested ``changes`` into a venue ``$set`` document.

    Values are checked against the venue field types so an approved edit
    always leaves a document ``doc_to_venue`` can read back.

    Raises:
        ValueError: When a changed value is not acceptable for its field.
    """
    try:
        parsed = VenueChanges.model_validate(changes)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ValueError(f"Invalid {field}: {first['msg']}") from e
    cleared = sorted(f for f in REQUIRED_EDIT_FIELDS & set(changes) if changes[f] is None)
    if cleared:
        raise ValueError(f"Cannot clear {', '.join(cleared)}")
    update = parsed.model_dump(mode="json", include=set(changes))
    if parsed.location is not None:
        update["location"] = parsed.location.to_geojson()
    update["updated_at"] = _now()
    return update


async def suggest_edit(
    db: AsyncIOMotorDatabase, venue_id: str, edit: VenueEditCreate
) -> VenueEdit:
    await get_venue(db, venue_id)
    # Validate now so a bad suggestion is rejected before it reaches moderators
    edit_to_update(edit.changes)
    doc = {
        **edit.model_dump(),
        "venue_id": venue_id,
        "status": ModerationStatus.PENDING.value,
        "created_at": _now(),
        "resolved_at": None,
    }
    await db.venue_edits.insert_one(doc)
    return _doc_to_edit(doc)


async def list_edits(
    db: AsyncIOMotorDatabase,
    status: ModerationStatus = ModerationStatus.PENDING,
    *,
    limit: int = 100,
) -> list[VenueEdit]:
    docs = (
        await db.venue_edits.find({"status": status.value})
        .sort("created_at", 1)
        .limit(limit)
        .to_list(limit)
    )
    return [_doc_to_edit(d) for d in docs]


async def resolve_edit(db: AsyncIOMotorDatabase, edit_id: str, *, approve: bool) -> VenueEdit:
    """Approve (apply to the venue) or reject a pending suggested edit."""
    oid = _object_id("edit", edit_id)
    doc = await db.venue_edits.find_one({"_id": oid, "status": ModerationStatus.PENDING.value})
    if not doc:
        raise VenueNotFoundError("edit", edit_id)

    if approve:
        result = await db.venues.update_one(
            {"_id": _object_id("venue", doc["venue_id"])},
            {"$set": edit_to_update(doc["changes"])},
        )
        if result.matched_count == 0:
            raise VenueNotFoundError("venue", doc["venue_id"])

    status = ModerationStatus.APPROVED if approve else ModerationStatus.REJECTED
    resolved = await db.venue_edits.find_one_and_update(
        {"_id": oid},
        {"$set": {"status": status.value, "resolved_at": _now()}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Edit %s for venue %s %s", edit_id, doc["venue_id"], status.value)
    return _doc_to_edit(resolved)

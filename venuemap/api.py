"""FastAPI backend for the venue directory and map-link tools."""

import secrets
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel

from venuemap import venues as venue_store
from venuemap.config import configure_logging, settings
from venuemap.coordinates import extract
from venuemap.db import close_db, get_db, init_db
from venuemap.exceptions import (
    GeocodingError,
    InvalidThemeError,
    PageFetchError,
    RedirectResolutionError,
    VenueNotFoundError,
)
from venuemap.geocode import Geocoder, parse_map_link, reverse_geocode
from venuemap.map_urls import is_supported_map_url
from venuemap.models import (
    Comment,
    CommentCreate,
    Coordinate,
    ExtractionError,
    ModerationStatus,
    NearbyVenue,
    Venue,
    VenueEdit,
    VenueEditCreate,
    VenueFilters,
    VenuePage,
    VenueSubmission,
    VenueType,
)
from venuemap.resolver import PageFetcher, Resolver, expand_url, fetch_page, locate, resolve_short_link
from venuemap.theme import (
    DEFAULT_THEME,
    ThemeConfig,
    load_active_theme,
    parse_theme,
    render_css,
    reset_theme,
    save_theme,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await init_db()
    app.state.theme = await load_active_theme(get_db())
    yield
    await close_db()


app = FastAPI(title="Venue Directory API", lifespan=lifespan)
app.state.theme = DEFAULT_THEME

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VenueNotFoundError)
async def _not_found(request: Request, exc: VenueNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": exc.message, **exc.to_error_dict()})


# ── Dependencies ────────────────────────────────────────────


def get_resolver() -> Resolver:
    return resolve_short_link


def get_page_fetcher() -> PageFetcher:
    return fetch_page


def get_geocoder() -> Geocoder:
    return reverse_geocode


def current_theme(request: Request) -> ThemeConfig:
    return request.app.state.theme


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    if not settings.admin_token or not x_admin_token:
        raise HTTPException(status_code=403, detail="Admin access required")
    if not secrets.compare_digest(x_admin_token, settings.admin_token):
        raise HTTPException(status_code=403, detail="Admin access required")


class MapUrlRequest(BaseModel):
    url: str


class StatusUpdate(BaseModel):
    status: ModerationStatus


def _require_map_url(url: str) -> str:
    if not url.strip():
        raise HTTPException(status_code=400, detail="URL is required")
    if not is_supported_map_url(url):
        raise HTTPException(status_code=400, detail=ExtractionError.UNSUPPORTED_URL.message)
    return url.strip()


# ── Map links ───────────────────────────────────────────────


@app.post("/maps/expand-url")
async def expand_map_url(req: MapUrlRequest, resolve: Resolver = Depends(get_resolver)):
    """Expand a short map link to its final URL; full links are echoed."""
    url = _require_map_url(req.url)
    try:
        expanded = await expand_url(url, resolve=resolve)
    except RedirectResolutionError:
        raise HTTPException(
            status_code=502, detail=ExtractionError.REDIRECT_RESOLUTION_FAILED.message
        )
    return {"success": True, "expandedUrl": expanded, "originalUrl": url}


@app.post("/maps/parse-coordinates")
async def parse_coordinates(
    req: MapUrlRequest,
    resolve: Resolver = Depends(get_resolver),
    fetch: PageFetcher = Depends(get_page_fetcher),
):
    """Fetch the page behind a map link and extract coordinates from its markup."""
    url = _require_map_url(req.url)
    try:
        target = await expand_url(url, resolve=resolve)
        if not is_supported_map_url(target):
            raise HTTPException(status_code=502, detail="Short link did not lead to Google Maps")
        html = await fetch(target)
    except RedirectResolutionError:
        raise HTTPException(
            status_code=502, detail=ExtractionError.REDIRECT_RESOLUTION_FAILED.message
        )
    except PageFetchError as e:
        raise HTTPException(status_code=502, detail=e.message)

    result = extract(html)
    return {**result.to_response(), "source": "html_extraction"}


@app.post("/maps/locate")
async def locate_map_url(
    req: MapUrlRequest,
    resolve: Resolver = Depends(get_resolver),
    fetch: PageFetcher = Depends(get_page_fetcher),
):
    """Coordinates from the link text, falling back to the page markup."""
    result = await locate(req.url, resolve=resolve, fetch=fetch)
    if result.error == ExtractionError.UNSUPPORTED_URL:
        raise HTTPException(status_code=400, detail=result.error.message)
    if result.error == ExtractionError.REDIRECT_RESOLUTION_FAILED:
        raise HTTPException(status_code=502, detail=result.error.message)
    return result.to_response()


@app.post("/maps/parse-link")
async def parse_link(
    req: MapUrlRequest,
    resolve: Resolver = Depends(get_resolver),
    fetch: PageFetcher = Depends(get_page_fetcher),
    geocode: Geocoder = Depends(get_geocoder),
):
    """Coordinates plus venue name and address for prefilling a submission."""
    url = _require_map_url(req.url)
    parsed = await parse_map_link(url, resolve=resolve, fetch=fetch, geocode=geocode)
    return parsed.model_dump(mode="json")


@app.post("/geocode")
async def geocode_point(point: Coordinate, geocode: Geocoder = Depends(get_geocoder)):
    """Reverse geocode a coordinate to a street address."""
    try:
        address = await geocode(point)
    except GeocodingError as e:
        raise HTTPException(status_code=502, detail=e.message)
    return {"success": True, "data": address.model_dump()}


# ── Venues ──────────────────────────────────────────────────


@app.get("/venues", response_model=VenuePage)
async def list_venues(
    q: Optional[str] = Query(None, description="Search in venue name"),
    city: Optional[str] = Query(None, description="Filter by city"),
    brand: Optional[str] = Query(None, description="Filter by brand"),
    type: Optional[VenueType] = Query(None, description="Filter by venue type"),
    page: int = Query(1, ge=1),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """List approved venues, newest first."""
    filters = VenueFilters(q=q, city=city, brand=brand, type=type, page=page)
    return await venue_store.list_venues(db, filters, page_size=settings.venue_page_size)


@app.get("/venues/nearby", response_model=list[NearbyVenue])
async def list_nearby_venues(
    lat: float = Query(..., ge=-90, le=90, description="Latitude of the user"),
    lng: float = Query(..., ge=-180, le=180, description="Longitude of the user"),
    radius_km: float = Query(10, gt=0, le=500, description="Radius in km"),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Approved venues within a radius, closest first, with distances."""
    origin = Coordinate(lat=lat, lng=lng)
    return await venue_store.nearby_venues(db, origin, radius_km)


@app.get("/venues/by-bounds")
async def list_venues_by_bounds(
    response: Response,
    north: float = Query(...),
    south: float = Query(...),
    east: float = Query(...),
    west: float = Query(...),
    limit: int = Query(settings.bounds_default_limit, ge=1),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    """Approved venues inside the visible map area."""
    limit = min(limit, settings.bounds_max_limit)
    try:
        found = await venue_store.venues_in_bounds(
            db, north=north, south=south, east=east, west=west, limit=limit
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid bounds parameters: {e}")
    response.headers["Cache-Control"] = "public, max-age=300, stale-while-revalidate=60"
    return {"venues": [v.model_dump(mode="json") for v in found], "count": len(found)}


@app.get("/venues/pins")
async def list_venue_pins(response: Response, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Id and location of every approved venue, for map markers."""
    pins = await venue_store.venue_pins(db)
    response.headers["Cache-Control"] = "public, max-age=600, stale-while-revalidate=120"
    return {"pins": [p.model_dump() for p in pins], "count": len(pins)}


@app.get("/venues/random", response_model=Venue)
async def get_random_venue(db: AsyncIOMotorDatabase = Depends(get_db)):
    venue = await venue_store.random_venue(db)
    if venue is None:
        raise HTTPException(status_code=404, detail="No venues available")
    return venue


@app.get("/venues/{venue_id}", response_model=Venue)
async def get_venue(venue_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Get a single venue by ID."""
    return await venue_store.get_venue(db, venue_id)


@app.post("/venues", response_model=Venue, status_code=201)
async def submit_venue(submission: VenueSubmission, db: AsyncIOMotorDatabase = Depends(get_db)):
    """Submit a new venue for moderation."""
    return await venue_store.submit_venue(db, submission)


@app.get("/venues/{venue_id}/comments", response_model=list[Comment])
async def list_comments(venue_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    return await venue_store.list_comments(db, venue_id)


@app.post("/venues/{venue_id}/comments", response_model=Comment, status_code=201)
async def add_comment(
    venue_id: str, comment: CommentCreate, db: AsyncIOMotorDatabase = Depends(get_db)
):
    return await venue_store.add_comment(db, venue_id, comment)


@app.post("/venues/{venue_id}/edits", response_model=VenueEdit, status_code=201)
async def suggest_edit(
    venue_id: str, edit: VenueEditCreate, db: AsyncIOMotorDatabase = Depends(get_db)
):
    """Suggest a correction to a venue; applied once an admin approves it."""
    try:
        return await venue_store.suggest_edit(db, venue_id, edit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ── Moderation ──────────────────────────────────────────────


@app.get("/admin/venues", response_model=VenuePage, dependencies=[Depends(require_admin)])
async def admin_list_venues(
    status: ModerationStatus = Query(ModerationStatus.PENDING),
    page: int = Query(1, ge=1),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    filters = VenueFilters(page=page)
    return await venue_store.list_venues(
        db, filters, page_size=settings.venue_page_size, status=status
    )


@app.post(
    "/admin/venues/{venue_id}/status",
    response_model=Venue,
    dependencies=[Depends(require_admin)],
)
async def admin_set_venue_status(
    venue_id: str, update: StatusUpdate, db: AsyncIOMotorDatabase = Depends(get_db)
):
    return await venue_store.set_venue_status(db, venue_id, update.status)


@app.delete("/admin/venues/{venue_id}", dependencies=[Depends(require_admin)])
async def admin_delete_venue(venue_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    await venue_store.delete_venue(db, venue_id)
    return {"success": True, "message": "Venue and all related data deleted successfully"}


@app.get("/admin/edits", response_model=list[VenueEdit], dependencies=[Depends(require_admin)])
async def admin_list_edits(
    status: ModerationStatus = Query(ModerationStatus.PENDING),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await venue_store.list_edits(db, status)


@app.post(
    "/admin/edits/{edit_id}/{decision}",
    response_model=VenueEdit,
    dependencies=[Depends(require_admin)],
)
async def admin_resolve_edit(
    edit_id: str, decision: str, db: AsyncIOMotorDatabase = Depends(get_db)
):
    if decision not in ("approve", "reject"):
        raise HTTPException(status_code=404, detail="Unknown decision")
    try:
        return await venue_store.resolve_edit(db, edit_id, approve=decision == "approve")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ── Theme ───────────────────────────────────────────────────


def _theme_body(theme: ThemeConfig) -> dict[str, Any]:
    return {
        "name": theme.name,
        "font": theme.font.value,
        "colors": theme.colors.model_dump(by_alias=True),
        "updatedAt": theme.updated_at.isoformat() if theme.updated_at else None,
    }


@app.get("/theme")
async def get_theme(theme: ThemeConfig = Depends(current_theme)):
    return _theme_body(theme)


@app.get("/theme/css", response_class=PlainTextResponse)
async def get_theme_css(theme: ThemeConfig = Depends(current_theme)):
    return PlainTextResponse(render_css(theme), media_type="text/css")


@app.put("/theme", dependencies=[Depends(require_admin)])
async def update_theme(
    request: Request,
    payload: dict[str, Any] = Body(...),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    try:
        theme = parse_theme(payload)
    except InvalidThemeError as e:
        raise HTTPException(status_code=400, detail=e.message)
    request.app.state.theme = await save_theme(db, theme)
    return {"success": True, "theme": _theme_body(request.app.state.theme)}


@app.delete("/theme", dependencies=[Depends(require_admin)])
async def delete_theme(request: Request, db: AsyncIOMotorDatabase = Depends(get_db)):
    request.app.state.theme = await reset_theme(db)
    return {"success": True, "theme": _theme_body(request.app.state.theme)}

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from venuemap.config import settings

_client: AsyncIOMotorClient | None = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(settings.mongodb_uri)
    return _client


def get_db() -> AsyncIOMotorDatabase:
    return get_client()[settings.mongodb_db]


async def init_db() -> None:
    """Create indexes for venues, comments, edits and theme settings."""
    db = get_db()

    # Venues: 2dsphere index for geo queries, listing by status and recency
    await db.venues.create_index([("location", "2dsphere")])
    await db.venues.create_index([("status", 1), ("created_at", -1)])

    await db.comments.create_index([("venue_id", 1), ("created_at", -1)])
    await db.venue_edits.create_index([("status", 1), ("created_at", 1)])

    # One document per named theme; at most one is active
    await db.theme_settings.create_index("name", unique=True)


async def close_db() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None

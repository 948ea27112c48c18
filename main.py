"""Verify MongoDB connectivity and initialize indexes."""

import asyncio

from venuemap.config import configure_logging
from venuemap.db import close_db, get_client, get_db, init_db


async def main() -> None:
    configure_logging()
    client = get_client()
    db = get_db()

    # Ping to verify connection
    result = await client.admin.command("ping")
    print(f"MongoDB ping: {result}")

    # Venues, comments, edits and theme indexes
    await init_db()
    print("Indexes created.")

    collections = await db.list_collection_names()
    print(f"Collections in '{db.name}': {collections}")

    approved = await db.venues.count_documents({"status": "approved"})
    pending = await db.venues.count_documents({"status": "pending"})
    print(f"Venues: {approved} approved, {pending} pending moderation.")

    await close_db()
    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())

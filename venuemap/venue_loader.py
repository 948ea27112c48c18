"""Submit a venue to the directory from a Google Maps link."""

import argparse
import asyncio
import sys

from venuemap.config import configure_logging
from venuemap.db import close_db, get_db, init_db
from venuemap.geocode import parse_map_link
from venuemap.map_urls import format_coordinates, is_supported_map_url
from venuemap.models import MapLinkParse, VenueSubmission, VenueType
from venuemap.resolver import fetch_page
from venuemap.venues import submit_venue


def _print_parse(parsed: MapLinkParse) -> None:
    info = parsed.venue_info
    print(f"  Name:     {info.name or 'N/A'}")
    print(f"  Address:  {info.address or 'N/A'}")
    print(f"  City:     {info.city or 'N/A'}")
    print(f"  Country:  {info.country or 'N/A'}")
    if parsed.coordinates:
        print(f"  Coords:   {format_coordinates(parsed.coordinates)}")
        print(f"  Method:   {parsed.method_used.value if parsed.method_used else 'N/A'}")
    else:
        print("  Coords:   not found (needs manual review)")
    if parsed.resolved_url:
        print(f"  Resolved: {parsed.resolved_url}")
    print()


def build_submission(
    parsed: MapLinkParse, url: str, venue_type: VenueType | None = None
) -> VenueSubmission | None:
    """Submission for a parsed link, or None when name or location is missing."""
    if parsed.coordinates is None or not parsed.venue_info.name:
        return None
    info = parsed.venue_info
    return VenueSubmission(
        name=info.name,
        location=parsed.coordinates,
        type=venue_type,
        address=info.address,
        city=info.city,
        country=info.country,
        google_maps_url=url,
    )


async def load_venue(
    url: str, *, venue_type: VenueType | None = None, dry_run: bool = False
) -> None:
    """Parse a map link and insert it as a pending venue."""
    print(f"Parsing: {url}")
    parsed = await parse_map_link(url, fetch=fetch_page)

    if not parsed.success:
        print(f"Could not parse link: {parsed.error}")
        return

    print()
    _print_parse(parsed)

    submission = build_submission(parsed, url, venue_type)
    if submission is None:
        print("Link lacks a venue name or coordinates; submit it by hand instead.")
        return

    if dry_run:
        print("Dry run, nothing saved.")
        return

    answer = input("Submit this venue for moderation? [y/N] ").strip().lower()
    if answer != "y":
        print("Cancelled.")
        return

    await init_db()
    venue = await submit_venue(get_db(), submission)
    print(f"\nDone: {venue.name} saved as pending (id: {venue.id}).")


async def main() -> None:
    parser = argparse.ArgumentParser(
        prog="python -m venuemap.venue_loader",
        description="Submit a venue from a Google Maps link.",
    )
    parser.add_argument("url", help="Google Maps link (full or maps.app.goo.gl)")
    parser.add_argument("--type", choices=[t.value for t in VenueType], default=None)
    parser.add_argument("--dry-run", action="store_true", help="Parse only, save nothing")
    args = parser.parse_args()

    configure_logging()
    if not is_supported_map_url(args.url):
        print("Only Google Maps URLs are supported.")
        sys.exit(1)

    try:
        await load_venue(
            args.url,
            venue_type=VenueType(args.type) if args.type else None,
            dry_run=args.dry_run,
        )
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())

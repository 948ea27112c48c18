"""Network edge of coordinate lookup: expand short links, fetch page markup.

``locate`` ties the pure pieces together. Both network steps are injected
callables so callers (and tests) can supply their own; neither is retried.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional
from urllib.parse import unquote

import httpx

from venuemap.config import settings
from venuemap.coordinates import extract
from venuemap.exceptions import PageFetchError, RedirectResolutionError, VenueMapError
from venuemap.map_urls import is_short_link, is_supported_map_url
from venuemap.models import AmbiguousPairOrder, ExtractionError, ExtractionResult

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[str]]
PageFetcher = Callable[[str], Awaitable[str]]

BROWSER_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


@asynccontextmanager
async def _http_client(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": settings.http_user_agent},
    ) as owned:
        yield owned


async def resolve_short_link(url: str, *, client: Optional[httpx.AsyncClient] = None) -> str:
    """Follow redirects from a short link and return the final URL.

    Raises:
        RedirectResolutionError: On a transport error or non-success status.
    """
    async with _http_client(client) as http:
        try:
            resp = await http.head(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise RedirectResolutionError(url, str(e)) from e

    if resp.is_error:
        raise RedirectResolutionError(url, f"HTTP {resp.status_code}")
    return str(resp.url)


async def fetch_page(url: str, *, client: Optional[httpx.AsyncClient] = None) -> str:
    """Download the markup a map URL renders to.

    Raises:
        PageFetchError: On a transport error or non-success status.
    """
    async with _http_client(client) as http:
        try:
            resp = await http.get(url, headers=BROWSER_HEADERS, follow_redirects=True)
        except httpx.HTTPError as e:
            raise PageFetchError(url, reason=str(e)) from e

    if resp.is_error:
        raise PageFetchError(url, status_code=resp.status_code)
    return resp.text


async def expand_url(url: str, *, resolve: Optional[Resolver] = None) -> str:
    """Final URL for any supported map link; full links come back unchanged.

    Raises:
        RedirectResolutionError: When a short link cannot be expanded.
    """
    url = url.strip()
    if not is_short_link(url):
        return url
    resolver = resolve or resolve_short_link
    try:
        return await resolver(url)
    except RedirectResolutionError:
        raise
    except (VenueMapError, httpx.HTTPError) as e:
        raise RedirectResolutionError(url, str(e)) from e


async def locate(
    url: object,
    *,
    resolve: Optional[Resolver] = None,
    fetch: Optional[PageFetcher] = None,
    ambiguous_order: Optional[AmbiguousPairOrder] = None,
) -> ExtractionResult:
    """Classify, expand and extract. Failures come back as values.

    The URL text is tried first. Only when it yields nothing and ``fetch``
    is given is the page markup downloaded and scanned.
    """
    if not is_supported_map_url(url):
        return ExtractionResult.fail(ExtractionError.UNSUPPORTED_URL)

    try:
        target = await expand_url(url, resolve=resolve)
    except RedirectResolutionError as e:
        logger.warning("Could not expand short link %s: %s", url, e.reason or e.message)
        return ExtractionResult.fail(ExtractionError.REDIRECT_RESOLUTION_FAILED)

    result = extract(unquote(target), ambiguous_order=ambiguous_order)
    if result.success or fetch is None:
        return result.model_copy(update={"resolved_url": target})
    if not is_supported_map_url(target):
        logger.warning("Not fetching %s: redirected off Google Maps", target)
        return result.model_copy(update={"resolved_url": target})

    try:
        markup = await fetch(target)
    except (VenueMapError, httpx.HTTPError) as e:
        logger.warning("Page fetch failed for %s: %s", target, e)
        return result.model_copy(update={"resolved_url": target})

    page_result = extract(markup, ambiguous_order=ambiguous_order)
    if page_result.success:
        logger.info("Coordinates for %s found in page markup", target)
        return page_result.model_copy(update={"resolved_url": target})

    if ExtractionError.ALL_CANDIDATES_INVALID in (result.error, page_result.error):
        return ExtractionResult.fail(ExtractionError.ALL_CANDIDATES_INVALID, resolved_url=target)
    return ExtractionResult.fail(ExtractionError.NO_COORDINATES_FOUND, resolved_url=target)

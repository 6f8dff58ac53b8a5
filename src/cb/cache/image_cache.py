"""
Image cache: remote images stored locally as data URLs.

Each request for a URL goes through:
1. Lookup in the ``imageCache`` store, keyed by the URL itself.
2. On a miss, an HTTP GET of the URL.
3. Encoding of the body as ``data:<content-type>;base64,<payload>``,
   written back under the URL.

Any failure along the way yields the original URL, so rendering code can
always use what get_cached_image returns.
"""

from __future__ import annotations

import asyncio
import base64

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cb.cache.kv_store import cache_enabled, kv_delete, kv_get, kv_set
from cb.config import get_settings
from cb.exceptions import EncodeFailedError, FetchFailedError
from cb.logging import get_logger
from cb.observability.cache_stats import get_cache_stats
from cb.types import StoreName

logger = get_logger(__name__)

IMAGE_STORE = StoreName.IMAGE_CACHE
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def encode_data_url(content: bytes, content_type: str | None = None) -> str:
    """Encode raw bytes as an RFC 2397 data URL.

    Only the media type of ``content_type`` is kept; parameters such as
    charset are dropped. An empty or missing type becomes
    application/octet-stream.

    Raises:
        EncodeFailedError: If content is not a bytes-like object.
    """
    if not isinstance(content, (bytes, bytearray, memoryview)):
        raise EncodeFailedError(
            "Image payload is not bytes",
            context={"payload_type": type(content).__name__},
        )

    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if not media_type:
        media_type = DEFAULT_CONTENT_TYPE

    payload = base64.b64encode(bytes(content)).decode("ascii")
    return f"data:{media_type};base64,{payload}"


class ImageCache:
    """Fetches images over HTTP and keeps data-URL copies in the cache.

    The HTTP client is created lazily. A client passed in by the caller
    is used as-is and is not closed by close().
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        """Initialize the image cache.

        Args:
            client: Optional preconfigured HTTP client.
        """
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            settings = get_settings()
            self._client = httpx.AsyncClient(
                headers={"User-Agent": settings.HTTP_USER_AGENT},
                timeout=settings.HTTP_TIMEOUT_SECONDS,
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this cache created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def _download(self, url: str) -> httpx.Response:
        """GET url, retrying transient transport errors.

        Status failures and permanent errors such as a missing scheme are
        not retried.

        Raises:
            FetchFailedError: On a non-2xx status or once retries are exhausted.
        """
        client = await self._get_client()

        try:
            async for attempt in AsyncRetrying(
                retry=(
                    retry_if_exception_type(httpx.TransportError)
                    & retry_if_not_exception_type(httpx.UnsupportedProtocol)
                ),
                stop=stop_after_attempt(get_settings().IMAGE_FETCH_ATTEMPTS),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
                reraise=True,
            ):
                with attempt:
                    response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchFailedError(
                f"Failed to fetch {url}: {e}",
                context={"url": url, "error_type": type(e).__name__},
            ) from e

        if not response.is_success:
            raise FetchFailedError(
                f"Image request returned {response.status_code} {response.reason_phrase}",
                context={"url": url, "status_code": response.status_code},
            )
        return response

    async def fetch_and_cache(self, url: str) -> str | None:
        """Fetch url, encode it and store it under url.

        Returns:
            The data URL, or None if the fetch or the encoding failed.
        """
        stats = get_cache_stats()
        stats.record(IMAGE_STORE, "fetches")

        try:
            response = await self._download(url)
        except FetchFailedError as e:
            stats.record(IMAGE_STORE, "fetch_failures")
            logger.error(
                "Failed to fetch image",
                url=url,
                status_code=e.context.get("status_code"),
                error=str(e),
            )
            return None

        try:
            data_url = await asyncio.to_thread(
                encode_data_url,
                response.content,
                response.headers.get("content-type"),
            )
        except EncodeFailedError as e:
            stats.record(IMAGE_STORE, "errors")
            logger.error("Failed to encode image", url=url, error=str(e))
            return None

        await kv_set(IMAGE_STORE, url, data_url)
        logger.debug("Image cached", url=url[:80], size=len(response.content))
        return data_url

    async def get_cached_image(self, url: str) -> str:
        """Return a data URL for url, or url itself if it cannot be cached.

        Never raises. Empty input and a disabled cache short-circuit to the
        input without touching the store or the network.
        """
        if not url or not cache_enabled():
            return url

        try:
            cached = await kv_get(IMAGE_STORE, url)
            if isinstance(cached, str) and cached:
                return cached

            fetched = await self.fetch_and_cache(url)
            return fetched or url
        except Exception as e:
            logger.error(
                "Error getting cached image",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return url

    async def clear_image_cache(self, url: str) -> None:
        """Drop the cached copy of url so the next request refetches it."""
        if not url or not cache_enabled():
            return
        await kv_delete(IMAGE_STORE, url)


_shared_cache: ImageCache | None = None


def get_image_cache() -> ImageCache:
    """Get the shared ImageCache, creating it on first use."""
    global _shared_cache
    if _shared_cache is None:
        _shared_cache = ImageCache()
    return _shared_cache


async def get_cached_image(url: str) -> str:
    """Return a cached data URL for url, falling back to url."""
    return await get_image_cache().get_cached_image(url)


async def clear_image_cache(url: str) -> None:
    """Remove one cached image."""
    await get_image_cache().clear_image_cache(url)


async def close_image_cache() -> None:
    """Close and forget the shared ImageCache."""
    global _shared_cache
    cache = _shared_cache
    _shared_cache = None
    if cache is not None:
        await cache.close()

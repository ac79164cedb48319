"""Product image harvesting with bounded concurrency.

One ImageDownloader is constructed at service start and shared by every
import so its semaphore caps total in-flight image requests for the process.
"""
import asyncio
import re
from typing import Iterable, List, Optional
from urllib.parse import urljoin, urlsplit

import httpx
import structlog

from dropship.config import ImageSettings
from dropship.errors import ImageDownloadError, InvalidUrlError
from dropship.models import DownloadedImage, ImageMetadata
from dropship.services.extraction.helpers import random_delay
from dropship.services.extraction.image_sniff import sniff_dimensions
from dropship.services.extraction.retry import retry_with_backoff
from dropship.services.extraction.throttle import Limiter, RateLimiter
from dropship.services.extraction.url_guard import is_blocked_host

logger = structlog.get_logger(__name__)

ACCEPT_HEADER = "image/webp,image/apng,image/*,*/*;q=0.8"
DEFAULT_CONTENT_TYPE = "image/jpeg"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

ITEM_DELAY_MS = (100, 500)
BATCH_DELAY_MS = (500, 1000)
MAX_REDIRECTS = 5

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif")
_IMAGE_HOST = re.compile(r"(alicdn\.com|img\.aliexpress\.com|^i\d+\.wp\.com)$", re.IGNORECASE)
_SIZE_SUFFIX = re.compile(r"_\d+x\d+")
_QUALITY_SUFFIX = re.compile(r"_[qQ]\d+")
_TRAILING_SUFFIX = re.compile(r"(\.(?:jpe?g|png|webp|gif))(?:_[^/]*)$", re.IGNORECASE)


# =============================================================================
# URL helpers
# =============================================================================


def normalize_image_url(url: str) -> str:
    """Request the highest-resolution variant of a CDN image.

    '//ae01.alicdn.com/kf/abc.jpg_640x640q90.jpg' becomes
    'https://ae01.alicdn.com/kf/abc.jpg'.
    """
    url = url.strip()
    if url.startswith("//"):
        url = f"https:{url}"
    url = _TRAILING_SUFFIX.sub(r"\1", url)
    url = _SIZE_SUFFIX.sub("", url)
    return _QUALITY_SUFFIX.sub("", url)


def is_public_http_url(url: str) -> bool:
    """http(s) URL whose host is not loopback, private, link-local or a literal IP."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return False
    return not is_blocked_host(parts.hostname)


def is_valid_image_url(url: str) -> bool:
    """Public http(s) URL with an image extension or on a known image CDN host."""
    if not is_public_http_url(url):
        return False
    parts = urlsplit(url)
    if parts.path.lower().endswith(IMAGE_EXTENSIONS):
        return True
    return bool(_IMAGE_HOST.search(parts.hostname))


def filter_valid_urls(urls: Iterable[str]) -> List[str]:
    """Normalize, drop non-image shapes and de-duplicate, preserving order."""
    seen = set()
    result: List[str] = []
    for url in urls:
        if not url:
            continue
        normalized = normalize_image_url(url)
        if normalized in seen or not is_valid_image_url(normalized):
            continue
        seen.add(normalized)
        result.append(normalized)
    return result


def convert_to_webp(content: bytes) -> bytes:
    """WebP re-encoding extension point. Identity until an encoder is wired in."""
    return content


# =============================================================================
# Downloader
# =============================================================================


class ImageDownloader:
    """Downloads product images through a shared limiter and semaphore."""

    def __init__(
        self,
        settings: ImageSettings,
        limiter: Optional[Limiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        jitter: bool = True,
    ) -> None:
        self.settings = settings
        self.limiter = limiter or RateLimiter(settings.min_request_delay_ms)
        self.jitter = jitter
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.timeout_seconds, connect=10.0),
            transport=transport,
            follow_redirects=False,
            headers={"Accept": ACCEPT_HEADER, "User-Agent": USER_AGENT},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _fetch(self, url: str) -> httpx.Response:
        """Single GET following redirects only to public http(s) hosts."""
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            try:
                response = await self._client.get(current)
            except httpx.HTTPError as e:
                raise ImageDownloadError(
                    f"Image request failed: {type(e).__name__}",
                    details={"url": current},
                ) from e

            if response.is_redirect:
                location = urljoin(current, response.headers.get("location", ""))
                if not is_public_http_url(location):
                    raise InvalidUrlError(
                        "Image redirect to a blocked host",
                        details={"url": url, "location": location},
                    )
                current = location
                continue

            if response.status_code >= 400:
                raise ImageDownloadError(
                    f"Image request returned HTTP {response.status_code}",
                    status_code=response.status_code,
                    details={"url": current},
                )
            return response

        raise ImageDownloadError("Too many redirects", details={"url": url})

    async def download_image(self, url: str) -> DownloadedImage:
        """Download one image and sniff its dimensions.

        Raises:
            ImageDownloadError: URL shape rejected or request failed after retries
            InvalidUrlError: A redirect pointed at a blocked host
        """
        if not is_valid_image_url(url):
            raise ImageDownloadError("Not an image URL", details={"url": url})

        async with self._semaphore:
            await self.limiter.wait_turn()
            response = await retry_with_backoff(
                lambda: self._fetch(url),
                max_retries=self.settings.max_retries,
                base_delay_ms=self.settings.retry_base_delay_ms,
            )

        content = response.content
        content_type = response.headers.get("content-type", DEFAULT_CONTENT_TYPE).split(";")[0].strip()
        dimensions = sniff_dimensions(content)
        return DownloadedImage(
            url=url,
            content=content,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            size=len(content),
            width=dimensions[0] if dimensions else None,
            height=dimensions[1] if dimensions else None,
        )

    async def _download_or_none(self, url: str) -> Optional[DownloadedImage]:
        if self.jitter:
            await random_delay(*ITEM_DELAY_MS)
        try:
            return await self.download_image(url)
        except Exception as e:
            logger.warning(
                "image_download_failed",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def download_images(self, urls: Iterable[str]) -> List[DownloadedImage]:
        """Download many images in batches; failures are logged and skipped.

        Callers should pass URLs through filter_valid_urls first.
        """
        urls = list(urls)
        batch_size = self.settings.max_concurrent
        results: List[DownloadedImage] = []

        for start in range(0, len(urls), batch_size):
            if start and self.jitter:
                await random_delay(*BATCH_DELAY_MS)
            batch = urls[start:start + batch_size]
            downloaded = await asyncio.gather(*(self._download_or_none(url) for url in batch))
            results.extend(image for image in downloaded if image is not None)

        failed = len(urls) - len(results)
        if failed:
            logger.info("image_batch_partial", requested=len(urls), downloaded=len(results), failed=failed)
        return results

    async def download_as_webp(self, url: str) -> DownloadedImage:
        image = await self.download_image(url)
        converted = convert_to_webp(image.content)
        if converted is image.content:
            return image
        return image.model_copy(update={
            "content": converted,
            "content_type": "image/webp",
            "size": len(converted),
        })

    async def get_image_metadata(self, url: str) -> Optional[ImageMetadata]:
        """HEAD request for content type and length; None on failure."""
        if not is_valid_image_url(url):
            return None
        await self.limiter.wait_turn()
        try:
            response = await self._client.head(url)
        except httpx.HTTPError as e:
            logger.warning("image_metadata_failed", url=url, error=str(e))
            return None
        if response.status_code >= 400:
            return None
        length = response.headers.get("content-length")
        return ImageMetadata(
            url=url,
            content_type=response.headers.get("content-type"),
            size=int(length) if length and length.isdigit() else None,
        )

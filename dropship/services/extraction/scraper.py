"""Supplier listing scraper.

Usage:
    async with ProductScraper(settings.scraper, queue) as scraper:
        product = await scraper.scrape(url)

The RequestQueue is owned by the caller and shared by every scraper of the
process; the httpx client is owned by the scraper and released on close().
"""
from typing import Optional
from urllib.parse import urljoin

import httpx
import structlog

from dropship.config import ScraperSettings
from dropship.errors import FetchError, InvalidUrlError
from dropship.models import SupplierProduct
from dropship.services.extraction import url_guard
from dropship.services.extraction.fingerprint import Fingerprint, FingerprintGenerator
from dropship.services.extraction.page_parser import parse_product_page
from dropship.services.extraction.retry import retry_with_backoff
from dropship.services.extraction.throttle import RequestQueue

logger = structlog.get_logger(__name__)

MAX_REDIRECTS = 5


class ProductScraper:
    """Fetches one listing at a time and parses it into a SupplierProduct."""

    def __init__(
        self,
        settings: ScraperSettings,
        queue: RequestQueue,
        fingerprints: Optional[FingerprintGenerator] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.queue = queue
        self.fingerprints = fingerprints or FingerprintGenerator()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "ProductScraper":
        self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.timeout_seconds, connect=10.0),
                transport=self._transport,
                follow_redirects=False,
            )

    async def close(self) -> None:
        """Release the HTTP client. Safe to call more than once."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raising if not initialized."""
        if self._client is None:
            raise RuntimeError(
                "ProductScraper not initialized. Use 'async with ProductScraper(...) as scraper:'"
            )
        return self._client

    async def scrape(self, url: str) -> SupplierProduct:
        """Scrape a supplier listing.

        Raises:
            InvalidUrlError: URL rejected by the guard (no request is made)
            FetchError: Request failed after all retries
            ParseError: Page has no recognizable product
        """
        normalized = url_guard.normalize(url)
        if normalized is None:
            raise InvalidUrlError("Invalid supplier product URL")
        product_id = url_guard.extract_product_id(normalized)
        log = logger.bind(product_id=product_id)

        fingerprint = self.fingerprints.generate()
        log.info("scrape_started", user_agent=fingerprint.user_agent, locale=fingerprint.locale)

        html = await retry_with_backoff(
            lambda: self.queue.enqueue(lambda: self._fetch_page(normalized, fingerprint)),
            max_retries=self.settings.max_retries,
            base_delay_ms=self.settings.retry_base_delay_ms,
        )

        product = parse_product_page(html, normalized, product_id)
        log.info(
            "scrape_completed",
            title=product.title[:80],
            variants=len(product.variants),
            images=len(product.images),
        )
        return product

    async def _fetch_page(self, url: str, fingerprint: Fingerprint) -> str:
        """Single GET with manual, allow-list checked redirects."""
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            try:
                response = await self.client.get(current, headers=fingerprint.headers())
            except httpx.HTTPError as e:
                raise FetchError(
                    f"Request failed: {type(e).__name__}",
                    details={"url": current},
                ) from e

            if response.is_redirect:
                location = urljoin(current, response.headers.get("location", ""))
                if not url_guard.is_allowed_host(location):
                    raise InvalidUrlError(
                        "Redirect to a disallowed host",
                        details={"location": location},
                    )
                current = location
                continue

            if response.status_code >= 400:
                raise FetchError(
                    f"Supplier responded with HTTP {response.status_code}",
                    status_code=response.status_code,
                    details={"url": current},
                )
            return response.text

        raise FetchError("Too many redirects", details={"url": url})

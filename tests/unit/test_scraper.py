"""Unit tests for ProductScraper using httpx.MockTransport."""
import random

import httpx
import pytest

from dropship.config import ScraperSettings
from dropship.errors import FetchError, InvalidUrlError, ParseError
from dropship.services.extraction.fingerprint import USER_AGENTS, FingerprintGenerator
from dropship.services.extraction.scraper import ProductScraper
from dropship.services.extraction.throttle import RequestQueue

PAGE = """
<html><body>
<h1 data-pl="product-title">Knitted Baby Hat</h1>
<div class="product-price-current">US $4.20</div>
<p>12 pieces available</p>
</body></html>
"""


@pytest.fixture
def settings():
    return ScraperSettings(min_request_delay_ms=0, max_retries=2, retry_base_delay_ms=0)


async def scrape_with(handler, settings, url="https://www.aliexpress.com/item/123.html"):
    queue = RequestQueue.with_interval(0)
    try:
        async with ProductScraper(
            settings,
            queue,
            FingerprintGenerator(random.Random(7)),
            transport=httpx.MockTransport(handler),
        ) as scraper:
            return await scraper.scrape(url)
    finally:
        await queue.close()


class TestScrape:
    @pytest.mark.asyncio
    async def test_fetches_normalized_url_with_fingerprint(self, settings):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=PAGE)

        product = await scrape_with(handler, settings, url="https://m.aliexpress.com/p/x.html?productId=123")

        assert len(seen) == 1
        assert str(seen[0].url) == "https://www.aliexpress.com/item/123.html"
        assert seen[0].headers["User-Agent"] in USER_AGENTS
        assert product.product_id == "123"
        assert product.title == "Knitted Baby Hat"
        assert product.stock == 12

    @pytest.mark.asyncio
    async def test_invalid_url_makes_no_request(self, settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, text=PAGE)

        with pytest.raises(InvalidUrlError):
            await scrape_with(handler, settings, url="http://127.0.0.1/item/1.html")
        assert calls == []

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, settings):
        responses = iter([httpx.Response(503), httpx.Response(500), httpx.Response(200, text=PAGE)])

        product = await scrape_with(lambda request: next(responses), settings)

        assert product.title == "Knitted Baby Hat"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502)

        with pytest.raises(FetchError) as exc_info:
            await scrape_with(handler, settings)

        assert exc_info.value.status_code == 502
        assert len(calls) == settings.max_retries + 1

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        with pytest.raises(FetchError):
            await scrape_with(handler, settings)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self, settings):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(200, text=PAGE)

        product = await scrape_with(handler, settings)
        assert product.price is not None
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_unparseable_page_is_not_retried(self, settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, text="<html><body></body></html>")

        with pytest.raises(ParseError):
            await scrape_with(handler, settings)
        assert len(calls) == 1


class TestRedirects:
    @pytest.mark.asyncio
    async def test_follows_allowed_redirect(self, settings):
        def handler(request):
            if request.url.host == "aliexpress.us":
                return httpx.Response(200, text=PAGE)
            return httpx.Response(301, headers={"location": "https://aliexpress.us/item/123.html"})

        product = await scrape_with(handler, settings)
        assert product.title == "Knitted Baby Hat"

    @pytest.mark.asyncio
    async def test_rejects_redirect_to_internal_host(self, settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(302, headers={"location": "http://169.254.169.254/latest/meta-data"})

        with pytest.raises(InvalidUrlError):
            await scrape_with(handler, settings)
        assert len(calls) == 1


class TestLifecycle:
    def test_client_requires_open(self, settings):
        scraper = ProductScraper(settings, RequestQueue.with_interval(0))
        with pytest.raises(RuntimeError):
            scraper.client

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, settings):
        scraper = ProductScraper(settings, RequestQueue.with_interval(0))
        scraper.open()
        await scraper.close()
        await scraper.close()

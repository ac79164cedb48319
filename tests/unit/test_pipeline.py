"""Unit tests for ExtractionPipeline."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from dropship.errors import FetchError
from dropship.models import DownloadedImage, ExtractionOptions
from dropship.services.extraction.pipeline import (
    GENERIC_FETCH_ERROR,
    MSG_VALIDATION_SKIPPED,
    ExtractionPipeline,
)
from dropship.services.extraction.stock_validator import StockValidator
from tests.conftest import make_product, make_variant

URL = "https://www.aliexpress.com/item/1005001234567890.html"


class FakeScraper:
    """Async context manager standing in for ProductScraper."""

    def __init__(self, product=None, error=None):
        self.product = product
        self.error = error
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    async def scrape(self, url):
        if self.error:
            raise self.error
        return self.product


def make_pipeline(scraper, downloader=None, max_images=10):
    return ExtractionPipeline(
        scraper_factory=lambda: scraper,
        validator=StockValidator(),
        downloader=downloader,
        max_images=max_images,
    )


class TestExtractionPipeline:
    @pytest.mark.asyncio
    async def test_success_validates_stock(self):
        product = make_product([make_variant("a", 5), make_variant("b", 0)])
        scraper = FakeScraper(product)

        result = await make_pipeline(scraper).run(URL)

        assert result.success
        assert result.product == product
        assert result.stock_validation.out_of_stock_variants == ["b"]
        assert result.images is None
        assert scraper.closed

    @pytest.mark.asyncio
    async def test_failure_is_masked(self):
        scraper = FakeScraper(error=FetchError("HTTP 503 from upstream proxy 10.0.0.3", status_code=503))

        result = await make_pipeline(scraper).run(URL)

        assert not result.success
        assert result.error == GENERIC_FETCH_ERROR
        assert "10.0.0.3" not in result.error
        assert not result.stock_validation.is_valid
        assert result.stock_validation.is_completely_out_of_stock
        assert scraper.closed

    @pytest.mark.asyncio
    async def test_skipped_validation_lists_all_variants(self):
        product = make_product([make_variant("a", 0), make_variant("b", 0)])

        result = await make_pipeline(FakeScraper(product)).run(URL, ExtractionOptions(validate_stock=False))

        assert result.stock_validation.is_valid
        assert result.stock_validation.available_variants == ["a", "b"]
        assert result.stock_validation.message == MSG_VALIDATION_SKIPPED

    @pytest.mark.asyncio
    async def test_downloads_filtered_images_up_to_limit(self):
        images = [f"https://ae01.alicdn.com/kf/{n}.jpg" for n in range(5)]
        product = make_product(stock=3, images=images + ["https://example.com/page.html"])
        downloader = MagicMock()
        downloader.download_images = AsyncMock(
            return_value=[DownloadedImage(url=images[0], content=b"x", size=1)]
        )

        result = await make_pipeline(FakeScraper(product), downloader, max_images=3).run(
            URL, ExtractionOptions(download_images=True)
        )

        downloader.download_images.assert_awaited_once_with(images[:3])
        assert len(result.images) == 1

    @pytest.mark.asyncio
    async def test_no_download_unless_requested(self):
        downloader = MagicMock()
        downloader.download_images = AsyncMock()

        result = await make_pipeline(FakeScraper(make_product(stock=3)), downloader).run(URL)

        downloader.download_images.assert_not_awaited()
        assert result.images is None

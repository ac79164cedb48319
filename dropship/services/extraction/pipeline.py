"""Scrape -> validate -> download orchestration for preview and import."""
from typing import Callable, Optional

import structlog

from dropship.models import (
    ExtractionOptions,
    ExtractionResult,
    StockValidationResult,
    SupplierProduct,
)
from dropship.services.extraction.image_downloader import ImageDownloader, filter_valid_urls
from dropship.services.extraction.scraper import ProductScraper
from dropship.services.extraction.stock_validator import StockValidator

logger = structlog.get_logger(__name__)

GENERIC_FETCH_ERROR = "Failed to fetch product data. Please check the URL and try again."
MSG_VALIDATION_SKIPPED = "Stock validation skipped"
MSG_EXTRACTION_FAILED = "Extraction failed"


def skipped_validation(product: SupplierProduct) -> StockValidationResult:
    """Permissive result used when the caller disables stock validation."""
    return StockValidationResult(
        is_valid=True,
        available_variants=[variant.sku_id for variant in product.variants],
        out_of_stock_variants=[],
        total_available_stock=0,
        is_completely_out_of_stock=False,
        has_partial_stock=False,
        message=MSG_VALIDATION_SKIPPED,
    )


def failed_validation() -> StockValidationResult:
    return StockValidationResult(
        is_valid=False,
        is_completely_out_of_stock=True,
        message=MSG_EXTRACTION_FAILED,
    )


class ExtractionPipeline:
    """Runs one extraction; scraper per run, validator and downloader shared."""

    def __init__(
        self,
        scraper_factory: Callable[[], ProductScraper],
        validator: StockValidator,
        downloader: Optional[ImageDownloader] = None,
        max_images: int = 10,
    ) -> None:
        self.scraper_factory = scraper_factory
        self.validator = validator
        self.downloader = downloader
        self.max_images = max_images

    async def run(
        self,
        url: str,
        options: Optional[ExtractionOptions] = None,
    ) -> ExtractionResult:
        options = options or ExtractionOptions()
        log = logger.bind(download_images=options.download_images, validate_stock=options.validate_stock)

        try:
            async with self.scraper_factory() as scraper:
                product = await scraper.scrape(url)
        except Exception as e:
            # Full detail stays in logs; callers get a generic message
            log.error(
                "extraction_failed",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return ExtractionResult(
                success=False,
                stock_validation=failed_validation(),
                error=GENERIC_FETCH_ERROR,
            )

        log = log.bind(product_id=product.product_id)
        if options.validate_stock:
            validation = self.validator.validate(product)
        else:
            validation = skipped_validation(product)

        images = None
        if options.download_images and product.images and self.downloader is not None:
            urls = filter_valid_urls(product.images)[: self.max_images]
            images = await self.downloader.download_images(urls)

        log.info(
            "extraction_completed",
            stock_valid=validation.is_valid,
            images_downloaded=len(images) if images is not None else None,
        )
        return ExtractionResult(
            success=True,
            product=product,
            stock_validation=validation,
            images=images,
        )

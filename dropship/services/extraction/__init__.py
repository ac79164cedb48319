"""Supplier listing extraction: URL guard, scraping, stock and images."""
from dropship.services.extraction.fingerprint import Fingerprint, FingerprintGenerator
from dropship.services.extraction.helpers import clean_product_title, parse_price, slugify
from dropship.services.extraction.image_downloader import (
    ImageDownloader,
    filter_valid_urls,
    normalize_image_url,
)
from dropship.services.extraction.pipeline import ExtractionPipeline
from dropship.services.extraction.retry import retry_with_backoff
from dropship.services.extraction.scraper import ProductScraper
from dropship.services.extraction.stock_validator import StockValidator
from dropship.services.extraction.throttle import RateLimiter, RedisRateLimiter, RequestQueue
from dropship.services.extraction.url_guard import extract_product_id, is_valid_supplier_url, normalize

__all__ = [
    "Fingerprint",
    "FingerprintGenerator",
    "clean_product_title",
    "parse_price",
    "slugify",
    "ImageDownloader",
    "filter_valid_urls",
    "normalize_image_url",
    "ExtractionPipeline",
    "retry_with_backoff",
    "ProductScraper",
    "StockValidator",
    "RateLimiter",
    "RedisRateLimiter",
    "RequestQueue",
    "extract_product_id",
    "is_valid_supplier_url",
    "normalize",
]

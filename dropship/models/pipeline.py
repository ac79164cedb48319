"""Extraction pipeline input/output models."""
from typing import List, Optional

from pydantic import BaseModel

from dropship.models.images import DownloadedImage
from dropship.models.product import SupplierProduct
from dropship.models.stock import StockValidationResult


class ExtractionOptions(BaseModel):
    download_images: bool = False
    validate_stock: bool = True


class ExtractionResult(BaseModel):
    """Outcome of one scrape/validate/download run.

    On failure ``error`` carries a generic, caller-safe message and
    ``stock_validation`` reports the product as completely out of stock.
    """

    success: bool
    product: Optional[SupplierProduct] = None
    stock_validation: StockValidationResult
    images: Optional[List[DownloadedImage]] = None
    error: Optional[str] = None

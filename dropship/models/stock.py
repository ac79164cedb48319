"""Stock validation models."""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class StockValidationConfig(BaseModel):
    """Policy knobs for StockValidator."""

    min_stock_threshold: int = Field(default=1, ge=0)
    reject_on_partial_stock: bool = False
    max_out_of_stock_variants: Optional[int] = Field(default=None, ge=0)
    min_in_stock_percentage: float = Field(default=0.0, ge=0, le=100)


class StockValidationResult(BaseModel):
    """Derived, non-persisted verdict on a product's sellability.

    For variant-bearing products
    len(available_variants) + len(out_of_stock_variants) == total variants.
    """

    is_valid: bool
    available_variants: List[str] = Field(default_factory=list)
    out_of_stock_variants: List[str] = Field(default_factory=list)
    total_available_stock: int = 0
    is_completely_out_of_stock: bool = False
    has_partial_stock: bool = False
    message: str = ""

    @property
    def total_variants(self) -> int:
        return len(self.available_variants) + len(self.out_of_stock_variants)


class VariantStockStatus(str, Enum):
    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    UNKNOWN = "unknown"


class StockAction(str, Enum):
    """Operator action recommended for an imported product."""
    NONE = "NONE"
    UPDATE_STOCK = "UPDATE_STOCK"
    HIDE_VARIANTS = "HIDE_VARIANTS"
    HIDE_PRODUCT = "HIDE_PRODUCT"


class ActionPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RecommendedAction(BaseModel):
    action: StockAction
    priority: ActionPriority
    reason: str

"""Category pricing inputs and retail price breakdowns."""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class CategoryPricing(BaseModel):
    """Markup rules a storefront category applies to supplier cost.

    Attributes:
        category_id: Category the rules belong to (None for the defaults)
        markup_factor: Multiplier applied to cost; below 1.0 is rejected at pricing time
        shipping_buffer: Flat amount added after markup to absorb shipping
        min_price: Floor for the final price
        max_price: Ceiling for the final price
    """

    category_id: Optional[str] = None
    category_name: Optional[str] = None
    markup_factor: Decimal = Field(default=Decimal("2.5"), gt=0)
    shipping_buffer: Decimal = Field(default=Decimal("3.00"), ge=0)
    min_price: Optional[Decimal] = Field(default=None, ge=0)
    max_price: Optional[Decimal] = Field(default=None, ge=0)


class PriceBreakdown(BaseModel):
    """Every step from supplier cost to the listed price."""

    cost_price: Decimal
    marked_up_price: Decimal
    with_shipping_buffer: Decimal
    with_platform_fees: Decimal
    final_price: Decimal
    markup_factor: Decimal
    shipping_buffer: Decimal
    platform_fee_rate: Decimal


class MarginInfo(BaseModel):
    cost_price: Decimal
    retail_price: Decimal
    margin: Decimal
    margin_percentage: Decimal
    markup_factor: Decimal


class PriceValidation(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    adjusted_price: Optional[Decimal] = None


class PricePreview(BaseModel):
    """Operator-facing summary shown before an import is confirmed."""

    cost_price: Decimal
    retail_price: Decimal
    compare_at_price: Decimal
    margin: Decimal
    margin_percentage: Decimal
    breakdown: PriceBreakdown

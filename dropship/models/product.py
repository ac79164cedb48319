"""Pydantic models for scraped supplier products."""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SupplierVariant(BaseModel):
    """One purchasable SKU of a supplier listing.

    A stock of None means the page did not report a number; the variant is
    then assumed to be available.
    """

    model_config = ConfigDict(frozen=True)

    sku_id: str = Field(..., min_length=1, description="Supplier SKU identifier")
    attributes: Dict[str, str] = Field(
        default_factory=dict,
        description="Attribute set such as {'Color': 'Red', 'Size': 'XL'}"
    )
    price: Decimal = Field(..., ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    image: Optional[str] = None

    @field_validator("price")
    @classmethod
    def quantize_price(cls, v: Decimal) -> Decimal:
        return v.quantize(Decimal("0.01"))

    @property
    def name(self) -> str:
        """Attribute values joined for display, e.g. 'Red / XL'."""
        return " / ".join(self.attributes.values()) or self.sku_id


class ShippingOption(BaseModel):
    """Shipping method offered on the listing."""

    model_config = ConfigDict(frozen=True)

    method: str
    cost: Decimal = Decimal("0")
    estimated_days: int = 30


class SupplierInfo(BaseModel):
    """Store selling the listing."""

    model_config = ConfigDict(frozen=True)

    name: str = "Unknown Store"
    store_id: Optional[str] = None
    store_url: Optional[str] = None
    rating: Optional[float] = None


class SupplierProduct(BaseModel):
    """Immutable snapshot produced by one scrape of a supplier listing."""

    model_config = ConfigDict(frozen=True)

    product_id: str = Field(..., min_length=1, description="Supplier product id")
    url: str = Field(..., description="Canonical listing URL")
    title: str = Field(..., min_length=1)
    description: str = ""
    price: Decimal = Field(..., ge=0)
    original_price: Optional[Decimal] = None
    currency: str = Field(default="USD", min_length=3, max_length=3)
    stock: Optional[int] = Field(default=None, ge=0)
    images: List[str] = Field(default_factory=list)
    variants: List[SupplierVariant] = Field(default_factory=list)
    specifications: Dict[str, str] = Field(default_factory=dict)
    shipping: List[ShippingOption] = Field(default_factory=list)
    supplier: SupplierInfo = Field(default_factory=SupplierInfo)
    rating: Optional[float] = None
    review_count: Optional[int] = None
    orders_count: Optional[int] = None
    scraped_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("price", "original_price")
    @classmethod
    def quantize_price(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is None:
            return v
        return v.quantize(Decimal("0.01"))

    @property
    def has_variants(self) -> bool:
        return bool(self.variants)

    def get_variant(self, sku_id: str) -> Optional[SupplierVariant]:
        """Look up a variant by its supplier SKU id."""
        for variant in self.variants:
            if variant.sku_id == sku_id:
                return variant
        return None

"""ProductSource ORM model: catalog product to supplier origin link."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dropship.db.base import Base, TimestampMixin, UUIDMixin
from dropship.models import InventoryStatus, SourceStatus

if TYPE_CHECKING:
    from dropship.db.models.catalog_product import CatalogProduct
    from dropship.db.models.supplier import Supplier


class ProductSource(Base, UUIDMixin, TimestampMixin):
    """Supplier origin of a catalog product.

    Created once at import time; only a re-import updates it.

    Attributes:
        supplier_product_id: Marketplace product id (unique, duplicate-import key)
        supplier_sku: Default supplier SKU when no per-variant mapping applies
        variant_mapping: {local_sku: supplier_sku}
        status: ACTIVE, UNAVAILABLE or DISCONTINUED at the supplier
        inventory_status: Stock level observed at the last check
    """

    __tablename__ = "product_sources"

    catalog_product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("catalog_products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_slug: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    supplier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("suppliers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    supplier_product_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    supplier_url: Mapped[str] = mapped_column(String(500), nullable=False)
    supplier_sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    variant_mapping: Mapped[Dict[str, str]] = mapped_column(JSONB, nullable=False, default=dict)
    original_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    original_currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default="USD")
    status: Mapped[SourceStatus] = mapped_column(
        SQLEnum(SourceStatus, name="product_source_status"),
        nullable=False,
        default=SourceStatus.ACTIVE,
    )
    inventory_status: Mapped[InventoryStatus] = mapped_column(
        SQLEnum(InventoryStatus, name="inventory_status"),
        nullable=False,
        default=InventoryStatus.UNKNOWN,
    )
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    catalog_product: Mapped["CatalogProduct"] = relationship(back_populates="sources")
    supplier: Mapped[Optional["Supplier"]] = relationship(back_populates="product_sources")

    def supplier_sku_for(self, local_sku: Optional[str]) -> str:
        """Resolve the supplier SKU for a local SKU.

        Per-variant mapping first, then the default supplier SKU, then the
        local SKU itself.
        """
        if local_sku:
            mapped = (self.variant_mapping or {}).get(local_sku)
            if isinstance(mapped, dict):
                mapped = mapped.get("supplier_sku")
            if mapped:
                return str(mapped)
        return self.supplier_sku or local_sku or self.supplier_product_id

    def __repr__(self) -> str:
        return (
            f"<ProductSource(id={self.id}, slug='{self.product_slug}', "
            f"supplier_product_id={self.supplier_product_id})>"
        )

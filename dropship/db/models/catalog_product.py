"""Catalog product created by a supplier import."""
from decimal import Decimal
from enum import Enum as PyEnum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import CheckConstraint, Enum as SQLEnum, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dropship.db.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from dropship.db.models.product_source import ProductSource


class CatalogProductStatus(PyEnum):
    """Catalog visibility. Imports land as draft unless published."""
    DRAFT = "draft"
    ACTIVE = "active"
    HIDDEN = "hidden"


class CatalogProduct(Base, UUIDMixin, TimestampMixin):
    """Storefront product record.

    Attributes:
        name: Display name (cleaned supplier title or override)
        slug: Unique URL slug, also the SKU prefix of its variants
        category_id: Storefront category id; pricing rules live in categories
        price: Selling price (category markup applied to cost_price)
        compare_at_price: Strike-through price shown next to price
        cost_price: Supplier cost at import time
        images: Image URLs in display order
        variants: [{"sku": local_sku, "name": ..., "price": ..., "available": bool}]
    """

    __tablename__ = "catalog_products"
    __table_args__ = (
        CheckConstraint("price >= 0", name="check_catalog_price_non_negative"),
    )

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), unique=True, nullable=False, index=True)
    category_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    compare_at_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    cost_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, server_default="USD")
    status: Mapped[CatalogProductStatus] = mapped_column(
        SQLEnum(
            CatalogProductStatus,
            name="catalog_product_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=CatalogProductStatus.DRAFT,
    )
    images: Mapped[List[str]] = mapped_column(JSONB, nullable=False, default=list)
    variants: Mapped[List[Dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)

    sources: Mapped[List["ProductSource"]] = relationship(back_populates="catalog_product")

    def __repr__(self) -> str:
        return f"<CatalogProduct(id={self.id}, slug='{self.slug}')>"

"""Storefront category ORM model carrying retail pricing rules."""
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from dropship.db.base import Base, TimestampMixin


class Category(Base, TimestampMixin):
    """Category referenced by catalog_products.category_id.

    Pricing columns left NULL fall back to the PRICING_ defaults.
    """

    __tablename__ = "categories"
    __table_args__ = (
        CheckConstraint("markup_factor IS NULL OR markup_factor > 0", name="chk_category_markup_positive"),
        CheckConstraint(
            "min_price IS NULL OR max_price IS NULL OR min_price <= max_price",
            name="chk_category_price_bounds",
        ),
    )

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    markup_factor: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2), nullable=True)
    shipping_buffer: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    min_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    max_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    def __repr__(self) -> str:
        return f"<Category(id='{self.id}', name='{self.name}', markup={self.markup_factor})>"

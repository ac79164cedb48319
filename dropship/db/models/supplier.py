"""Supplier store ORM model."""
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Float, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dropship.db.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from dropship.db.models.product_source import ProductSource


class Supplier(Base, UUIDMixin, TimestampMixin):
    """Marketplace store that products are sourced from.

    Upserted by store id on every import.
    """

    __tablename__ = "suppliers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    platform: Mapped[str] = mapped_column(String(50), nullable=False, server_default="aliexpress")
    store_id: Mapped[Optional[str]] = mapped_column(String(50), unique=True, nullable=True, index=True)
    store_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    product_sources: Mapped[List["ProductSource"]] = relationship(back_populates="supplier")

    def __repr__(self) -> str:
        return f"<Supplier(id={self.id}, name='{self.name}', store_id={self.store_id})>"

"""DropshipOrder and DropshipOrderItem ORM models."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dropship.db.base import Base, TimestampMixin, UUIDMixin
from dropship.models import FulfillmentStatus

if TYPE_CHECKING:
    from dropship.db.models.product_source import ProductSource
    from dropship.db.models.store_order import StoreOrder


class DropshipOrder(Base, UUIDMixin, TimestampMixin):
    """Re-purchase of a store order's sourced items from the supplier.

    One per store order. Created PENDING by OrderHandler, mutated only by
    FulfillmentStateMachine, never deleted.

    Status Transitions:
        See dropship.services.fulfillment.state_machine.TRANSITIONS
    """

    __tablename__ = "dropship_orders"

    store_order_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("orders.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False,
    )
    status: Mapped[FulfillmentStatus] = mapped_column(
        SQLEnum(FulfillmentStatus, name="fulfillment_status"),
        nullable=False,
        default=FulfillmentStatus.PENDING,
        index=True,
    )

    # Snapshots taken at creation
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shipping_address: Mapped[Dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)

    supplier_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tracking_carrier: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tracking_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    product_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    issue_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    placed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    store_order: Mapped["StoreOrder"] = relationship()
    items: Mapped[List["DropshipOrderItem"]] = relationship(
        back_populates="dropship_order",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<DropshipOrder(id={self.id}, status={self.status.value})>"


class DropshipOrderItem(Base, UUIDMixin, TimestampMixin):
    """Supplier line of a DropshipOrder. Immutable after creation."""

    __tablename__ = "dropship_order_items"

    dropship_order_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("dropship_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_source_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("product_sources.id", ondelete="RESTRICT"),
        nullable=False,
    )
    store_order_item_id: Mapped[str] = mapped_column(String(100), nullable=False)
    supplier_sku: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    dropship_order: Mapped["DropshipOrder"] = relationship(back_populates="items")
    product_source: Mapped["ProductSource"] = relationship()

"""Read-side fulfillment queries: listings, validation, costs, history, stats."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dropship.config import FulfillmentSettings
from dropship.db.models import DropshipOrder
from dropship.db.repositories import DropshipOrderRepository
from dropship.models import (
    DropshipOrderView,
    FulfillmentHistoryEvent,
    FulfillmentStats,
    FulfillmentStatus,
    FulfillmentValidation,
    InventoryStatus,
    OrderCost,
    PendingOrderFilters,
    SourceStatus,
    SupplierOrderLine,
    SupplierOrderRequest,
)
from dropship.services.fulfillment.views import address_from, to_order_view

logger = structlog.get_logger(__name__)

S = FulfillmentStatus

NOT_FULFILLABLE = (S.CANCELLED, S.DELIVERED, S.REFUNDED)


def validate_order(order: DropshipOrder) -> FulfillmentValidation:
    """Check an order can be placed with the supplier.

    Errors block placement; warnings need an operator's eye.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if order.status in NOT_FULFILLABLE:
        errors.append(f"Order is {order.status.value.lower()} and cannot be fulfilled")
    if not order.items:
        errors.append("Order has no dropship items")

    for item in order.items:
        source = item.product_source
        label = item.supplier_sku
        if source is None:
            errors.append(f"Product source missing for item {label}")
            continue
        if source.status == SourceStatus.DISCONTINUED:
            errors.append(f"Product {source.supplier_product_id} is discontinued at the supplier")
        elif source.status == SourceStatus.UNAVAILABLE:
            warnings.append(f"Product {source.supplier_product_id} is currently unavailable")
        if source.inventory_status == InventoryStatus.OUT_OF_STOCK:
            warnings.append(f"Product {source.supplier_product_id} was out of stock at last check")
        if not item.supplier_sku:
            errors.append(f"Supplier SKU missing for product {source.supplier_product_id}")

    address = address_from(order.shipping_address)
    if not address.is_complete:
        errors.append("Shipping address is incomplete")
    if not order.customer_email:
        warnings.append("Customer email is missing; no notifications will be sent")

    return FulfillmentValidation(is_valid=not errors, errors=errors, warnings=warnings)


def calculate_cost(order: DropshipOrder, currency: str = "USD") -> OrderCost:
    product_cost = sum((item.total_cost for item in order.items), Decimal("0"))
    shipping_cost = order.shipping_cost or Decimal("0")
    return OrderCost(
        product_cost=product_cost,
        shipping_cost=shipping_cost,
        total=product_cost + shipping_cost,
        currency=order.currency or currency,
    )


def build_history(order: DropshipOrder) -> List[FulfillmentHistoryEvent]:
    """Milestones reconstructed from the order's timestamps, oldest first."""
    events = [FulfillmentHistoryEvent(status=S.PENDING, timestamp=order.created_at, description="Order created")]
    if order.placed_at:
        description = "Order placed with supplier"
        if order.supplier_order_id:
            description += f" ({order.supplier_order_id})"
        events.append(FulfillmentHistoryEvent(status=S.PLACED, timestamp=order.placed_at, description=description))
    if order.shipped_at:
        description = "Order shipped"
        if order.tracking_number:
            description += f", tracking {order.tracking_number}"
        events.append(FulfillmentHistoryEvent(status=S.SHIPPED, timestamp=order.shipped_at, description=description))
    if order.delivered_at:
        events.append(FulfillmentHistoryEvent(
            status=S.DELIVERED, timestamp=order.delivered_at, description="Order delivered"
        ))
    if order.status in (S.ISSUE, S.CANCELLED, S.REFUNDED):
        events.append(FulfillmentHistoryEvent(
            status=order.status,
            timestamp=order.updated_at or order.created_at,
            description=order.issue_description or f"Order {order.status.value.lower()}",
        ))
    return sorted(events, key=lambda event: event.timestamp)


def prepare_supplier_order(order: DropshipOrder) -> SupplierOrderRequest:
    address = address_from(order.shipping_address)
    if not address.name:
        address = address.model_copy(update={"name": order.customer_name or ""})
    lines = [
        SupplierOrderLine(
            supplier_product_id=item.product_source.supplier_product_id,
            supplier_url=item.product_source.supplier_url,
            supplier_sku=item.supplier_sku,
            quantity=item.quantity,
        )
        for item in order.items
        if item.product_source is not None
    ]
    order_number = order.store_order.order_number if order.store_order is not None else str(order.store_order_id)
    return SupplierOrderRequest(
        dropship_order_id=str(order.id),
        shipping_address=address,
        items=lines,
        note=f"Order {order_number}. Please do not include invoices or prices in the package.",
    )


class FulfillmentService:
    """Queries over dropship orders for the operator console."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        settings: FulfillmentSettings,
    ) -> None:
        self._session_maker = session_maker
        self.settings = settings

    async def _get(self, order_id: str) -> Optional[DropshipOrder]:
        try:
            key = uuid.UUID(str(order_id))
        except ValueError:
            return None
        async with self._session_maker() as session:
            return await DropshipOrderRepository(session).get(key)

    async def get_pending_orders(self, filters: Optional[PendingOrderFilters] = None) -> List[DropshipOrderView]:
        async with self._session_maker() as session:
            orders = await DropshipOrderRepository(session).list(filters or PendingOrderFilters())
        return [to_order_view(order) for order in orders]

    async def get_fulfillment_details(self, order_id: str) -> Optional[DropshipOrderView]:
        order = await self._get(order_id)
        return to_order_view(order) if order is not None else None

    async def prepare_order_for_supplier(self, order_id: str) -> Optional[SupplierOrderRequest]:
        order = await self._get(order_id)
        return prepare_supplier_order(order) if order is not None else None

    async def calculate_order_cost(self, order_id: str) -> Optional[OrderCost]:
        order = await self._get(order_id)
        return calculate_cost(order, self.settings.currency) if order is not None else None

    async def validate_fulfillment(self, order_id: str) -> FulfillmentValidation:
        order = await self._get(order_id)
        if order is None:
            return FulfillmentValidation(is_valid=False, errors=["Fulfillment order not found"])
        return validate_order(order)

    async def get_orders_requiring_attention(
        self, max_pending_hours: Optional[int] = None
    ) -> List[DropshipOrderView]:
        """ISSUE orders plus PENDING orders older than the attention window."""
        hours = max_pending_hours if max_pending_hours is not None else self.settings.attention_pending_hours
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        async with self._session_maker() as session:
            orders = await DropshipOrderRepository(session).list_requiring_attention(cutoff)
        return [to_order_view(order) for order in orders]

    async def get_fulfillment_history(self, order_id: str) -> List[FulfillmentHistoryEvent]:
        order = await self._get(order_id)
        return build_history(order) if order is not None else []

    async def get_fulfillment_stats(self) -> FulfillmentStats:
        async with self._session_maker() as session:
            counts = await DropshipOrderRepository(session).count_by_status()
        return FulfillmentStats(counts=counts, total=sum(counts.values()))

"""
Dropship Order Repository
=========================

Data access for dropship_orders / dropship_order_items and the storefront
order rows that fulfillment transitions update in the same transaction.
"""
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from dropship.db.models import DropshipOrder, DropshipOrderItem, StoreOrder
from dropship.models import FulfillmentStatus, PendingOrderFilters


def _full_load():
    return (
        selectinload(DropshipOrder.items).selectinload(DropshipOrderItem.product_source),
        selectinload(DropshipOrder.store_order).selectinload(StoreOrder.items),
        selectinload(DropshipOrder.store_order).selectinload(StoreOrder.shipping),
    )


class DropshipOrderRepository:
    """Repository for dropship orders."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, order_id: uuid.UUID, for_update: bool = False) -> Optional[DropshipOrder]:
        """Load an order with items, store order and shipping record.

        Args:
            order_id: Dropship order id
            for_update: Lock the order row until the transaction ends
        """
        stmt = select(DropshipOrder).where(DropshipOrder.id == order_id).options(*_full_load())
        if for_update:
            stmt = stmt.with_for_update(of=DropshipOrder)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_store_order_id(self, store_order_id: uuid.UUID) -> Optional[DropshipOrder]:
        result = await self._session.execute(
            select(DropshipOrder)
            .where(DropshipOrder.store_order_id == store_order_id)
            .options(selectinload(DropshipOrder.items))
        )
        return result.scalar_one_or_none()

    async def add(self, order: DropshipOrder, items: List[DropshipOrderItem]) -> DropshipOrder:
        """Persist a new order and its items (caller owns the transaction)."""
        self._session.add(order)
        await self._session.flush()
        for item in items:
            item.dropship_order_id = order.id
            self._session.add(item)
        await self._session.flush()
        return order

    async def list(self, filters: PendingOrderFilters) -> List[DropshipOrder]:
        stmt = (
            select(DropshipOrder)
            .where(DropshipOrder.status.in_(filters.statuses))
            .options(*_full_load())
            .order_by(DropshipOrder.created_at)
            .limit(filters.limit)
            .offset(filters.offset)
        )
        if filters.created_after:
            stmt = stmt.where(DropshipOrder.created_at >= filters.created_after)
        if filters.created_before:
            stmt = stmt.where(DropshipOrder.created_at < filters.created_before)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def list_requiring_attention(self, pending_before: datetime) -> List[DropshipOrder]:
        """Orders in ISSUE plus PENDING orders created before ``pending_before``."""
        stmt = (
            select(DropshipOrder)
            .where(
                (DropshipOrder.status == FulfillmentStatus.ISSUE)
                | (
                    (DropshipOrder.status == FulfillmentStatus.PENDING)
                    & (DropshipOrder.created_at < pending_before)
                )
            )
            .options(*_full_load())
            .order_by(DropshipOrder.created_at)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_status(self) -> Dict[FulfillmentStatus, int]:
        result = await self._session.execute(
            select(DropshipOrder.status, func.count(DropshipOrder.id)).group_by(DropshipOrder.status)
        )
        counts = {status: 0 for status in FulfillmentStatus}
        for status, count in result.all():
            counts[status] = count
        return counts

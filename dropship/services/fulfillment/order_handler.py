"""
Order Handler

Opens a DropshipOrder for the sourced lines of a confirmed store order.
Lines without a ProductSource are fulfilled from the store's own stock and
are left out; an order with no sourced lines is a no-op success.
"""
import uuid
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dropship.config import FulfillmentSettings
from dropship.db.models import DropshipOrder, DropshipOrderItem, ProductSource
from dropship.db.repositories import (
    DropshipOrderRepository,
    ProductSourceRepository,
    source_match_rank,
)
from dropship.models import (
    FulfillmentStatus,
    OrderHandlerResult,
    StoreOrderLine,
    StoreOrderSnapshot,
)

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")

Match = Tuple[StoreOrderLine, ProductSource]


def match_order_lines(
    lines: Iterable[StoreOrderLine],
    candidates: Sequence[ProductSource],
) -> List[Match]:
    """Pair each line with the best-ranked source that supplies it.

    Candidates arrive oldest first; among equally ranked sources the first
    wins. Lines matched by more than one source are logged.
    """
    matches: List[Match] = []
    for line in lines:
        ranked = []
        for position, source in enumerate(candidates):
            rank = source_match_rank(source, line)
            if rank is not None:
                ranked.append((rank, position, source))
        if not ranked:
            continue
        ranked.sort(key=lambda entry: (entry[0], entry[1]))
        chosen = ranked[0][2]
        if len(ranked) > 1:
            logger.warning(
                "ambiguous_product_source_match",
                order_item_id=line.order_item_id,
                sku=line.sku,
                chosen=str(chosen.id),
                candidates=[str(source.id) for _, _, source in ranked],
            )
        matches.append((line, chosen))
    return matches


def estimate_shipping_cost(item_count: int, settings: FulfillmentSettings) -> Decimal:
    """base + per_item * (item_count - 1); zero for an empty order."""
    if item_count <= 0:
        return Decimal("0")
    base = Decimal(str(settings.shipping_base_cost))
    per_item = Decimal(str(settings.shipping_per_item_cost))
    return (base + per_item * (item_count - 1)).quantize(CENTS)


def build_order_items(matches: Sequence[Match]) -> List[DropshipOrderItem]:
    items = []
    for line, source in matches:
        unit_cost = Decimal(source.original_price).quantize(CENTS)
        items.append(DropshipOrderItem(
            id=uuid.uuid4(),
            product_source_id=source.id,
            product_source=source,
            store_order_item_id=line.order_item_id,
            supplier_sku=source.supplier_sku_for(line.sku),
            quantity=line.quantity,
            unit_cost=unit_cost,
            total_cost=(unit_cost * line.quantity).quantize(CENTS),
        ))
    return items


class OrderHandler:
    """Creates dropship orders from confirmed store orders."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        settings: FulfillmentSettings,
    ) -> None:
        self._session_maker = session_maker
        self.settings = settings

    async def create_dropship_order_for_order(
        self,
        order: StoreOrderSnapshot,
        items: Sequence[StoreOrderLine],
    ) -> OrderHandlerResult:
        """Create the PENDING DropshipOrder and its items atomically.

        Idempotent per store order: an existing dropship order is returned.
        """
        log = logger.bind(store_order_id=order.order_id, order_number=order.order_number)
        try:
            store_order_id = uuid.UUID(order.order_id)
        except ValueError:
            return OrderHandlerResult(success=False, error="Invalid order id")

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    orders = DropshipOrderRepository(session)
                    existing = await orders.get_by_store_order_id(store_order_id)
                    if existing is not None:
                        log.info("dropship_order_exists", dropship_order_id=str(existing.id))
                        return OrderHandlerResult(
                            success=True,
                            dropship_order_id=str(existing.id),
                            matched_items=len(existing.items),
                        )

                    candidates = await ProductSourceRepository(session).find_candidates(items)
                    matches = match_order_lines(items, candidates)
                    if not matches:
                        log.info("order_has_no_dropshipped_items", items=len(items))
                        return OrderHandlerResult(success=True)

                    order_items = build_order_items(matches)
                    product_cost = sum((item.total_cost for item in order_items), Decimal("0"))
                    shipping_cost = estimate_shipping_cost(len(order_items), self.settings)

                    dropship_order = DropshipOrder(
                        id=uuid.uuid4(),
                        store_order_id=store_order_id,
                        status=FulfillmentStatus.PENDING,
                        customer_email=order.customer_email,
                        customer_name=order.customer_name,
                        shipping_address=order.shipping_address.model_dump(),
                        product_cost=product_cost,
                        shipping_cost=shipping_cost,
                        total_cost=product_cost + shipping_cost,
                        currency=self.settings.currency,
                    )
                    await orders.add(dropship_order, order_items)
        except SQLAlchemyError as e:
            log.error("dropship_order_create_failed", error=str(e), exc_info=True)
            return OrderHandlerResult(success=False, error="Failed to create dropship order")

        log.info(
            "dropship_order_created",
            dropship_order_id=str(dropship_order.id),
            matched_items=len(order_items),
            unmatched_items=len(items) - len(order_items),
            total_cost=str(dropship_order.total_cost),
        )
        return OrderHandlerResult(
            success=True,
            dropship_order_id=str(dropship_order.id),
            matched_items=len(order_items),
        )

    async def order_contains_dropshipped_items(self, items: Sequence[StoreOrderLine]) -> bool:
        async with self._session_maker() as session:
            candidates = await ProductSourceRepository(session).find_candidates(items)
        return bool(match_order_lines(items, candidates))

    async def get_supplier_urls_for_order_items(
        self,
        items: Sequence[StoreOrderLine],
    ) -> Dict[str, str]:
        """Map order_item_id -> supplier listing URL for sourced lines."""
        async with self._session_maker() as session:
            candidates = await ProductSourceRepository(session).find_candidates(items)
        return {line.order_item_id: source.supplier_url for line, source in match_order_lines(items, candidates)}

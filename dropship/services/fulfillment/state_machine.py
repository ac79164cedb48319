"""
Fulfillment State Machine

Legal DropshipOrder status transitions and the operator actions layered on
top of them. Multi-record actions (shipped, delivered) update the dropship
order, the store order and the shipping record in one transaction;
notifications run only after commit and never affect the result.
"""
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dropship.db.models import DropshipOrder
from dropship.db.models.store_order import (
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_SHIPPED,
    SHIPPING_STATUS_DELIVERED,
    SHIPPING_STATUS_IN_TRANSIT,
)
from dropship.db.repositories import DropshipOrderRepository
from dropship.errors import (
    DropshipError,
    InvalidTransitionError,
    OrderNotFoundError,
    UnauthorizedError,
)
from dropship.models import ActionResult, FulfillmentStatus, OrderNotice, Principal
from dropship.services.fulfillment.notifications import NotificationSink, get_tracking_url
from dropship.services.fulfillment.views import to_notice

logger = structlog.get_logger(__name__)

S = FulfillmentStatus

TRANSITIONS: Dict[FulfillmentStatus, FrozenSet[FulfillmentStatus]] = {
    S.PENDING: frozenset({S.PLACED, S.CANCELLED, S.ISSUE}),
    S.PLACED: frozenset({S.CONFIRMED, S.CANCELLED, S.ISSUE}),
    S.CONFIRMED: frozenset({S.SHIPPED, S.CANCELLED, S.ISSUE}),
    S.SHIPPED: frozenset({S.DELIVERED, S.ISSUE}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
    S.REFUNDED: frozenset(),
    S.ISSUE: frozenset({S.PENDING, S.PLACED, S.CONFIRMED, S.SHIPPED, S.CANCELLED}),
}

_missing = set(FulfillmentStatus) - set(TRANSITIONS)
if _missing:
    raise RuntimeError(f"Fulfillment statuses without transition rules: {sorted(s.value for s in _missing)}")

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

MIN_ISSUE_LENGTH = 10

MSG_ORDER_NOT_FOUND = "Fulfillment order not found"
MSG_UNAUTHORIZED = "Unauthorized"
MSG_TRACKING_REQUIRED = "Tracking number is required"
MSG_SUPPLIER_ORDER_REQUIRED = "AliExpress order ID is required"
MSG_ISSUE_TOO_SHORT = f"Issue description must be at least {MIN_ISSUE_LENGTH} characters"
MSG_UPDATE_FAILED = "Failed to update fulfillment order"


def can_transition(current: FulfillmentStatus, target: FulfillmentStatus) -> bool:
    return target in TRANSITIONS[current]


def assert_transition(current: FulfillmentStatus, target: FulfillmentStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is legal."""
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot transition from {current.value} to {target.value}")


def _now() -> datetime:
    return datetime.now(timezone.utc)


Mutation = Callable[[DropshipOrder], None]


class FulfillmentStateMachine:
    """Operator actions driving a DropshipOrder through its lifecycle.

    Every action returns ActionResult; domain errors become its ``error``
    verbatim so operators can act on them.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        notifier: NotificationSink,
    ) -> None:
        self._session_maker = session_maker
        self.notifier = notifier

    # =========================================================================
    # Plumbing
    # =========================================================================

    @staticmethod
    def _authorize(principal: Principal) -> None:
        if not principal.is_operator:
            raise UnauthorizedError(MSG_UNAUTHORIZED)

    async def _apply(self, order_id: str, mutate: Mutation) -> OrderNotice:
        """Load, lock and mutate one order inside a single transaction."""
        try:
            key = uuid.UUID(str(order_id))
        except ValueError:
            raise OrderNotFoundError(MSG_ORDER_NOT_FOUND) from None

        async with self._session_maker() as session:
            async with session.begin():
                order = await DropshipOrderRepository(session).get(key, for_update=True)
                if order is None:
                    raise OrderNotFoundError(MSG_ORDER_NOT_FOUND)
                mutate(order)
                notice = to_notice(order)
        return notice

    async def _run(
        self,
        action: str,
        principal: Principal,
        order_id: str,
        mutate: Mutation,
    ) -> Tuple[ActionResult, Optional[OrderNotice]]:
        log = logger.bind(action=action, order_id=order_id, operator_id=principal.user_id)
        try:
            self._authorize(principal)
            notice = await self._apply(order_id, mutate)
        except DropshipError as e:
            log.warning("fulfillment_action_rejected", error=e.message)
            return ActionResult.fail(e.message), None
        except SQLAlchemyError as e:
            log.error("fulfillment_action_failed", error=str(e), exc_info=True)
            return ActionResult.fail(MSG_UPDATE_FAILED), None
        log.info("fulfillment_action_applied")
        return ActionResult.ok(), notice

    async def _notify(self, kind: str, send: Callable[[], object]) -> None:
        """Best-effort notification: failures are logged, never raised."""
        try:
            await send()
        except Exception as e:
            logger.error(
                "fulfillment_notification_failed",
                kind=kind,
                error=str(e),
                error_type=type(e).__name__,
            )

    # =========================================================================
    # Operator actions
    # =========================================================================

    async def update_fulfillment_status(
        self,
        principal: Principal,
        order_id: str,
        status: FulfillmentStatus,
    ) -> ActionResult:
        """Generic transition checked against TRANSITIONS only."""

        def mutate(order: DropshipOrder) -> None:
            assert_transition(order.status, status)
            order.status = status
            now = _now()
            if status == S.PLACED and order.placed_at is None:
                order.placed_at = now
            elif status == S.SHIPPED and order.shipped_at is None:
                order.shipped_at = now
            elif status == S.DELIVERED and order.delivered_at is None:
                order.delivered_at = now

        result, _ = await self._run("update_status", principal, order_id, mutate)
        return result

    async def add_tracking_info(
        self,
        principal: Principal,
        order_id: str,
        tracking_number: str,
        carrier: Optional[str] = None,
        tracking_url: Optional[str] = None,
    ) -> ActionResult:
        tracking_number = (tracking_number or "").strip()
        carrier = (carrier or "").strip() or None
        if not tracking_number:
            return ActionResult.fail(MSG_TRACKING_REQUIRED)
        url = (tracking_url or "").strip() or get_tracking_url(tracking_number, carrier)

        def mutate(order: DropshipOrder) -> None:
            order.tracking_number = tracking_number
            order.tracking_carrier = carrier
            order.tracking_url = url
            shipping = order.store_order.shipping if order.store_order else None
            if shipping is not None:
                shipping.tracking_number = tracking_number
                shipping.carrier = carrier
                shipping.tracking_url = url

        result, _ = await self._run("add_tracking", principal, order_id, mutate)
        return result

    async def mark_order_placed(
        self,
        principal: Principal,
        order_id: str,
        supplier_order_id: str,
    ) -> ActionResult:
        supplier_order_id = (supplier_order_id or "").strip()
        if not supplier_order_id:
            return ActionResult.fail(MSG_SUPPLIER_ORDER_REQUIRED)

        def mutate(order: DropshipOrder) -> None:
            if order.status != S.PENDING:
                raise InvalidTransitionError(f"Cannot mark as placed. Current status: {order.status.value}")
            order.status = S.PLACED
            order.supplier_order_id = supplier_order_id
            order.placed_at = _now()

        result, _ = await self._run("mark_placed", principal, order_id, mutate)
        return result

    async def mark_order_shipped(
        self,
        principal: Principal,
        order_id: str,
        tracking_number: str,
        carrier: Optional[str] = None,
    ) -> ActionResult:
        """PLACED/CONFIRMED -> SHIPPED across order, store order and shipping record."""
        tracking_number = (tracking_number or "").strip()
        carrier = (carrier or "").strip() or None
        if not tracking_number:
            return ActionResult.fail(MSG_TRACKING_REQUIRED)
        url = get_tracking_url(tracking_number, carrier)

        def mutate(order: DropshipOrder) -> None:
            if order.status not in (S.PLACED, S.CONFIRMED):
                raise InvalidTransitionError(f"Cannot mark as shipped. Current status: {order.status.value}")
            store_order = order.store_order
            shipping = store_order.shipping if store_order is not None else None
            if store_order is None or shipping is None:
                raise OrderNotFoundError("Shipping record not found for order")

            now = _now()
            order.status = S.SHIPPED
            order.tracking_number = tracking_number
            order.tracking_carrier = carrier
            order.tracking_url = url
            order.shipped_at = now

            store_order.status = ORDER_STATUS_SHIPPED
            store_order.shipped_at = now

            shipping.status = SHIPPING_STATUS_IN_TRANSIT
            shipping.tracking_number = tracking_number
            shipping.carrier = carrier
            shipping.tracking_url = url
            shipping.shipped_at = now

        result, notice = await self._run("mark_shipped", principal, order_id, mutate)
        if notice is not None:
            await self._notify(
                "shipping",
                lambda: self.notifier.send_shipping_notification(notice, tracking_number, carrier),
            )
        return result

    async def mark_order_delivered(self, principal: Principal, order_id: str) -> ActionResult:
        """SHIPPED -> DELIVERED across order, store order and shipping record."""

        def mutate(order: DropshipOrder) -> None:
            if order.status != S.SHIPPED:
                raise InvalidTransitionError(f"Cannot mark as delivered. Current status: {order.status.value}")
            store_order = order.store_order
            shipping = store_order.shipping if store_order is not None else None
            if store_order is None or shipping is None:
                raise OrderNotFoundError("Shipping record not found for order")

            now = _now()
            order.status = S.DELIVERED
            order.delivered_at = now

            store_order.status = ORDER_STATUS_DELIVERED
            store_order.delivered_at = now

            shipping.status = SHIPPING_STATUS_DELIVERED
            shipping.delivered_at = now
            shipping.actual_delivery = now

        result, notice = await self._run("mark_delivered", principal, order_id, mutate)
        if notice is not None:
            await self._notify("delivery", lambda: self.notifier.send_delivery_notification(notice))
        return result

    async def report_fulfillment_issue(
        self,
        principal: Principal,
        order_id: str,
        description: str,
    ) -> ActionResult:
        """Move a non-terminal order to ISSUE and alert the admin channel."""
        description = (description or "").strip()
        if len(description) < MIN_ISSUE_LENGTH:
            return ActionResult.fail(MSG_ISSUE_TOO_SHORT)

        def mutate(order: DropshipOrder) -> None:
            if order.status in TERMINAL_STATUSES:
                raise InvalidTransitionError(
                    f"Cannot report an issue. Current status: {order.status.value}"
                )
            order.status = S.ISSUE
            order.issue_description = description

        result, notice = await self._run("report_issue", principal, order_id, mutate)
        if notice is not None:
            await self._notify("issue", lambda: self.notifier.send_issue_notification(notice, description))
        return result

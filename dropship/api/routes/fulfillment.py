"""
Fulfillment Routes
==================

Operator console endpoints for dropship orders. Reads go through
FulfillmentService, writes through FulfillmentStateMachine. Failed actions
answer 400 with the action's error message.
"""
from typing import List, Optional

from fastapi import APIRouter, Query, Response, status

from dropship.api.deps import Fulfillment, Operator, StateMachine
from dropship.api.schemas import (
    IssueRequest,
    PlacedRequest,
    ShippedRequest,
    StatusUpdateRequest,
    TrackingRequest,
)
from dropship.errors import OrderNotFoundError
from dropship.models import (
    ActionResult,
    DropshipOrderView,
    FulfillmentHistoryEvent,
    FulfillmentStats,
    FulfillmentStatus,
    FulfillmentValidation,
    OrderCost,
    PendingOrderFilters,
    SupplierOrderRequest,
)

router = APIRouter()


def _not_found(order_id: str) -> OrderNotFoundError:
    return OrderNotFoundError("Fulfillment order not found", details={"order_id": order_id})


def _respond(result: ActionResult, response: Response) -> ActionResult:
    if not result.success:
        response.status_code = status.HTTP_400_BAD_REQUEST
    return result


# =============================================================================
# Queries
# =============================================================================


@router.get("/orders", response_model=List[DropshipOrderView])
async def list_orders(
    principal: Operator,
    service: Fulfillment,
    status_filter: Optional[List[FulfillmentStatus]] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> List[DropshipOrderView]:
    filters = PendingOrderFilters(limit=limit, offset=offset)
    if status_filter:
        filters.statuses = status_filter
    return await service.get_pending_orders(filters)


@router.get("/orders/attention", response_model=List[DropshipOrderView])
async def orders_requiring_attention(
    principal: Operator,
    service: Fulfillment,
    max_pending_hours: Optional[int] = Query(default=None, ge=1),
) -> List[DropshipOrderView]:
    return await service.get_orders_requiring_attention(max_pending_hours)


@router.get("/stats", response_model=FulfillmentStats)
async def fulfillment_stats(principal: Operator, service: Fulfillment) -> FulfillmentStats:
    return await service.get_fulfillment_stats()


@router.get("/orders/{order_id}", response_model=DropshipOrderView)
async def order_details(order_id: str, principal: Operator, service: Fulfillment) -> DropshipOrderView:
    order = await service.get_fulfillment_details(order_id)
    if order is None:
        raise _not_found(order_id)
    return order


@router.get("/orders/{order_id}/supplier-order", response_model=SupplierOrderRequest)
async def supplier_order(order_id: str, principal: Operator, service: Fulfillment) -> SupplierOrderRequest:
    request = await service.prepare_order_for_supplier(order_id)
    if request is None:
        raise _not_found(order_id)
    return request


@router.get("/orders/{order_id}/cost", response_model=OrderCost)
async def order_cost(order_id: str, principal: Operator, service: Fulfillment) -> OrderCost:
    cost = await service.calculate_order_cost(order_id)
    if cost is None:
        raise _not_found(order_id)
    return cost


@router.get("/orders/{order_id}/validation", response_model=FulfillmentValidation)
async def validate_order(order_id: str, principal: Operator, service: Fulfillment) -> FulfillmentValidation:
    return await service.validate_fulfillment(order_id)


@router.get("/orders/{order_id}/history", response_model=List[FulfillmentHistoryEvent])
async def order_history(
    order_id: str, principal: Operator, service: Fulfillment
) -> List[FulfillmentHistoryEvent]:
    return await service.get_fulfillment_history(order_id)


# =============================================================================
# Actions
# =============================================================================


@router.post("/orders/{order_id}/status", response_model=ActionResult)
async def update_status(
    order_id: str, body: StatusUpdateRequest, principal: Operator, machine: StateMachine, response: Response
) -> ActionResult:
    return _respond(await machine.update_fulfillment_status(principal, order_id, body.status), response)


@router.post("/orders/{order_id}/tracking", response_model=ActionResult)
async def add_tracking(
    order_id: str, body: TrackingRequest, principal: Operator, machine: StateMachine, response: Response
) -> ActionResult:
    result = await machine.add_tracking_info(
        principal, order_id, body.tracking_number, body.carrier, body.tracking_url
    )
    return _respond(result, response)


@router.post("/orders/{order_id}/placed", response_model=ActionResult)
async def mark_placed(
    order_id: str, body: PlacedRequest, principal: Operator, machine: StateMachine, response: Response
) -> ActionResult:
    return _respond(await machine.mark_order_placed(principal, order_id, body.supplier_order_id), response)


@router.post("/orders/{order_id}/shipped", response_model=ActionResult)
async def mark_shipped(
    order_id: str, body: ShippedRequest, principal: Operator, machine: StateMachine, response: Response
) -> ActionResult:
    result = await machine.mark_order_shipped(principal, order_id, body.tracking_number, body.carrier)
    return _respond(result, response)


@router.post("/orders/{order_id}/delivered", response_model=ActionResult)
async def mark_delivered(
    order_id: str, principal: Operator, machine: StateMachine, response: Response
) -> ActionResult:
    return _respond(await machine.mark_order_delivered(principal, order_id), response)


@router.post("/orders/{order_id}/issue", response_model=ActionResult)
async def report_issue(
    order_id: str, body: IssueRequest, principal: Operator, machine: StateMachine, response: Response
) -> ActionResult:
    return _respond(await machine.report_fulfillment_issue(principal, order_id, body.description), response)

"""ORM to pydantic conversions shared by fulfillment services."""
from typing import Any, Dict, Optional

from dropship.db.models import DropshipOrder
from dropship.models import (
    DropshipOrderItemView,
    DropshipOrderView,
    NoticeItem,
    OrderNotice,
    ShippingAddress,
)


def address_from(data: Optional[Dict[str, Any]]) -> ShippingAddress:
    """Build an address snapshot, tolerating camelCase storefront keys."""
    data = data or {}
    return ShippingAddress(
        name=data.get("name") or "",
        line1=data.get("line1") or data.get("addressLine1") or "",
        line2=data.get("line2") or data.get("addressLine2"),
        city=data.get("city") or "",
        state=data.get("state") or "",
        postal_code=data.get("postal_code") or data.get("postalCode") or data.get("zip") or "",
        country=data.get("country") or "US",
        phone=data.get("phone"),
    )


def to_notice(order: DropshipOrder) -> OrderNotice:
    """Notification payload; item names come from the store order lines."""
    names: Dict[str, str] = {}
    order_number = str(order.store_order_id)
    if order.store_order is not None:
        order_number = order.store_order.order_number
        names = {str(item.id): item.name for item in order.store_order.items}
    return OrderNotice(
        dropship_order_id=str(order.id),
        order_number=order_number,
        customer_email=order.customer_email,
        customer_name=order.customer_name,
        items=[
            NoticeItem(name=names.get(item.store_order_item_id, item.supplier_sku), quantity=item.quantity)
            for item in order.items
        ],
        tracking_number=order.tracking_number,
        tracking_carrier=order.tracking_carrier,
    )


def to_order_view(order: DropshipOrder) -> DropshipOrderView:
    return DropshipOrderView(
        id=str(order.id),
        store_order_id=str(order.store_order_id),
        order_number=order.store_order.order_number if order.store_order is not None else None,
        status=order.status,
        customer_email=order.customer_email,
        customer_name=order.customer_name,
        shipping_address=address_from(order.shipping_address),
        supplier_order_id=order.supplier_order_id,
        tracking_number=order.tracking_number,
        tracking_carrier=order.tracking_carrier,
        tracking_url=order.tracking_url,
        product_cost=order.product_cost,
        shipping_cost=order.shipping_cost,
        total_cost=order.total_cost,
        currency=order.currency,
        issue_description=order.issue_description,
        items=[
            DropshipOrderItemView(
                id=str(item.id),
                product_source_id=str(item.product_source_id),
                supplier_product_id=item.product_source.supplier_product_id if item.product_source else None,
                supplier_url=item.product_source.supplier_url if item.product_source else None,
                supplier_sku=item.supplier_sku,
                quantity=item.quantity,
                unit_cost=item.unit_cost,
                total_cost=item.total_cost,
            )
            for item in order.items
        ],
        created_at=order.created_at,
        placed_at=order.placed_at,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
    )

"""Fulfillment domain models."""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class FulfillmentStatus(str, Enum):
    """Dropship order status.

    DELIVERED, CANCELLED and REFUNDED are terminal. Legal transitions live in
    dropship.services.fulfillment.state_machine.TRANSITIONS.
    """
    PENDING = "PENDING"
    PLACED = "PLACED"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    ISSUE = "ISSUE"


class SourceStatus(str, Enum):
    ACTIVE = "ACTIVE"
    UNAVAILABLE = "UNAVAILABLE"
    DISCONTINUED = "DISCONTINUED"


class InventoryStatus(str, Enum):
    IN_STOCK = "IN_STOCK"
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    UNKNOWN = "UNKNOWN"


class OperatorRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
    CUSTOMER = "customer"


class Principal(BaseModel):
    """Authenticated caller as asserted by the upstream gateway."""

    user_id: str
    role: OperatorRole = OperatorRole.CUSTOMER

    @property
    def is_operator(self) -> bool:
        return self.role in (OperatorRole.ADMIN, OperatorRole.STAFF)


class ActionResult(BaseModel):
    """Uniform result of an operator action."""

    success: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "ActionResult":
        return cls(success=True)

    @classmethod
    def fail(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)


class ShippingAddress(BaseModel):
    name: str = ""
    line1: str = ""
    line2: Optional[str] = None
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "US"
    phone: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return all([self.line1, self.city, self.state, self.postal_code])


class StoreOrderSnapshot(BaseModel):
    """Confirmed store order as handed to OrderHandler."""

    order_id: str
    order_number: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)


class StoreOrderLine(BaseModel):
    """One line item of a confirmed store order."""

    order_item_id: str
    product_id: Optional[str] = None
    product_slug: Optional[str] = None
    sku: Optional[str] = None
    name: str = ""
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Decimal("0")


class OrderHandlerResult(BaseModel):
    success: bool
    dropship_order_id: Optional[str] = None
    matched_items: int = 0
    error: Optional[str] = None


class NoticeItem(BaseModel):
    name: str
    quantity: int


class OrderNotice(BaseModel):
    """Order data carried to a NotificationSink."""

    dropship_order_id: str
    order_number: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    items: List[NoticeItem] = Field(default_factory=list)
    tracking_number: Optional[str] = None
    tracking_carrier: Optional[str] = None


class PendingOrderFilters(BaseModel):
    statuses: List[FulfillmentStatus] = Field(
        default_factory=lambda: [FulfillmentStatus.PENDING]
    )
    created_after: Optional[datetime] = None
    created_before: Optional[datetime] = None
    limit: int = Field(default=50, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


class DropshipOrderItemView(BaseModel):
    id: str
    product_source_id: str
    supplier_product_id: Optional[str] = None
    supplier_url: Optional[str] = None
    supplier_sku: str
    quantity: int
    unit_cost: Decimal
    total_cost: Decimal


class DropshipOrderView(BaseModel):
    id: str
    store_order_id: str
    order_number: Optional[str] = None
    status: FulfillmentStatus
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress)
    supplier_order_id: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_carrier: Optional[str] = None
    tracking_url: Optional[str] = None
    product_cost: Decimal = Decimal("0")
    shipping_cost: Decimal = Decimal("0")
    total_cost: Decimal = Decimal("0")
    currency: str = "USD"
    issue_description: Optional[str] = None
    items: List[DropshipOrderItemView] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    placed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class SupplierOrderLine(BaseModel):
    supplier_product_id: str
    supplier_url: str
    supplier_sku: str
    quantity: int


class SupplierOrderRequest(BaseModel):
    """Everything an operator needs to place the order with the supplier."""

    dropship_order_id: str
    shipping_address: ShippingAddress
    items: List[SupplierOrderLine]
    note: str = ""


class OrderCost(BaseModel):
    product_cost: Decimal
    shipping_cost: Decimal
    total: Decimal
    currency: str = "USD"


class FulfillmentValidation(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class FulfillmentHistoryEvent(BaseModel):
    status: FulfillmentStatus
    timestamp: datetime
    description: str


class FulfillmentStats(BaseModel):
    counts: Dict[FulfillmentStatus, int]
    total: int

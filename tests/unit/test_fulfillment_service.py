"""Unit tests for fulfillment queries: validation, cost, history, supplier orders."""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dropship.config import FulfillmentSettings
from dropship.models import FulfillmentStatus, InventoryStatus, SourceStatus
from dropship.services.fulfillment.service import (
    FulfillmentService,
    build_history,
    calculate_cost,
    prepare_supplier_order,
    validate_order,
)
from tests.conftest import FakeSession, make_dropship_order, make_order_item, make_source

S = FulfillmentStatus
REPO_PATH = "dropship.services.fulfillment.service.DropshipOrderRepository"


class TestValidateOrder:
    def test_valid_order(self):
        validation = validate_order(make_dropship_order())
        assert validation.is_valid
        assert validation.errors == []
        assert validation.warnings == []

    @pytest.mark.parametrize("status", [S.CANCELLED, S.DELIVERED, S.REFUNDED])
    def test_finished_orders_cannot_be_fulfilled(self, status):
        validation = validate_order(make_dropship_order(status=status))
        assert not validation.is_valid
        assert f"Order is {status.value.lower()} and cannot be fulfilled" in validation.errors

    def test_no_items(self):
        assert "Order has no dropship items" in validate_order(make_dropship_order(items=[])).errors

    def test_source_problems(self):
        items = [
            make_order_item(source=None, supplier_sku="A1"),
            make_order_item(source=make_source(supplier_product_id="222", status=SourceStatus.DISCONTINUED)),
            make_order_item(source=make_source(supplier_product_id="333"), supplier_sku=""),
        ]
        validation = validate_order(make_dropship_order(items=items))
        assert validation.errors == [
            "Product source missing for item A1",
            "Product 222 is discontinued at the supplier",
            "Supplier SKU missing for product 333",
        ]

    def test_warnings_do_not_block(self):
        items = [
            make_order_item(source=make_source(supplier_product_id="444", status=SourceStatus.UNAVAILABLE)),
            make_order_item(source=make_source(supplier_product_id="555", inventory_status=InventoryStatus.OUT_OF_STOCK)),
        ]
        validation = validate_order(make_dropship_order(items=items, customer_email=None))
        assert validation.is_valid
        assert len(validation.warnings) == 3

    def test_incomplete_address(self):
        order = make_dropship_order(shipping_address={"name": "Jane", "city": "Springfield"})
        assert "Shipping address is incomplete" in validate_order(order).errors

    def test_camel_case_address_is_accepted(self):
        order = make_dropship_order(shipping_address={
            "addressLine1": "1 Main St", "city": "Springfield", "state": "IL", "postalCode": "62701",
        })
        assert validate_order(order).is_valid


class TestCost:
    def test_sums_item_totals_plus_shipping(self):
        items = [make_order_item(quantity=2, unit_cost="5.00"), make_order_item(quantity=1, unit_cost="3.25")]
        cost = calculate_cost(make_dropship_order(items=items, shipping_cost=Decimal("3.49")))
        assert cost.product_cost == Decimal("13.25")
        assert cost.shipping_cost == Decimal("3.49")
        assert cost.total == Decimal("16.74")
        assert cost.currency == "USD"


class TestHistory:
    def test_events_are_ordered(self):
        created = datetime(2026, 1, 10, tzinfo=timezone.utc)
        order = make_dropship_order(
            status=S.DELIVERED,
            created_at=created,
            placed_at=created + timedelta(hours=2),
            supplier_order_id="8123",
            shipped_at=created + timedelta(days=3),
            tracking_number="LX1",
            delivered_at=created + timedelta(days=12),
        )
        events = build_history(order)
        assert [e.status for e in events] == [S.PENDING, S.PLACED, S.SHIPPED, S.DELIVERED]
        assert events[1].description == "Order placed with supplier (8123)"
        assert events[2].description == "Order shipped, tracking LX1"

    def test_issue_event_uses_description(self):
        created = datetime(2026, 1, 10, tzinfo=timezone.utc)
        order = make_dropship_order(
            status=S.ISSUE,
            created_at=created,
            updated_at=created + timedelta(hours=5),
            issue_description="Supplier out of stock",
        )
        events = build_history(order)
        assert events[-1].status == S.ISSUE
        assert events[-1].description == "Supplier out of stock"


class TestSupplierOrder:
    def test_request_contents(self):
        order = make_dropship_order(items=[make_order_item(quantity=3, supplier_sku="12000009")])
        request = prepare_supplier_order(order)

        assert request.dropship_order_id == str(order.id)
        assert request.shipping_address.line1 == "1 Main St"
        assert [(line.supplier_sku, line.quantity) for line in request.items] == [("12000009", 3)]
        assert request.note == "Order ORD-1001. Please do not include invoices or prices in the package."

    def test_falls_back_to_customer_name(self):
        order = make_dropship_order(shipping_address={"line1": "1 Main St"}, customer_name="Jane Doe")
        assert prepare_supplier_order(order).shipping_address.name == "Jane Doe"


class TestFulfillmentService:
    @pytest.fixture
    def service(self):
        return FulfillmentService(FakeSession, FulfillmentSettings())

    @pytest.mark.asyncio
    async def test_missing_order(self, service):
        repo = MagicMock()
        repo.get = AsyncMock(return_value=None)
        with patch(REPO_PATH, return_value=repo):
            assert await service.get_fulfillment_details(str(uuid.uuid4())) is None
            assert await service.get_fulfillment_history(str(uuid.uuid4())) == []
            validation = await service.validate_fulfillment(str(uuid.uuid4()))
        assert validation.errors == ["Fulfillment order not found"]

    @pytest.mark.asyncio
    async def test_malformed_id_skips_database(self, service):
        with patch(REPO_PATH) as repo_cls:
            assert await service.calculate_order_cost("nope") is None
        repo_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_details_view(self, service):
        order = make_dropship_order(status=S.PLACED, supplier_order_id="8123")
        repo = MagicMock()
        repo.get = AsyncMock(return_value=order)
        with patch(REPO_PATH, return_value=repo):
            view = await service.get_fulfillment_details(str(order.id))
        assert view.status == S.PLACED
        assert view.order_number == "ORD-1001"
        assert view.items[0].supplier_url.startswith("https://www.aliexpress.com/item/")

    @pytest.mark.asyncio
    async def test_attention_cutoff(self, service):
        repo = MagicMock()
        repo.list_requiring_attention = AsyncMock(return_value=[make_dropship_order(status=S.ISSUE)])
        with patch(REPO_PATH, return_value=repo):
            views = await service.get_orders_requiring_attention(max_pending_hours=48)
        cutoff = repo.list_requiring_attention.await_args.args[0]
        expected = datetime.now(timezone.utc) - timedelta(hours=48)
        assert abs((cutoff - expected).total_seconds()) < 60
        assert views[0].status == S.ISSUE

    @pytest.mark.asyncio
    async def test_stats(self, service):
        repo = MagicMock()
        repo.count_by_status = AsyncMock(return_value={S.PENDING: 3, S.SHIPPED: 2})
        with patch(REPO_PATH, return_value=repo):
            stats = await service.get_fulfillment_stats()
        assert stats.total == 5
        assert stats.counts[S.PENDING] == 3

"""Pydantic domain models."""
from dropship.models.product import (
    SupplierProduct,
    SupplierVariant,
    ShippingOption,
    SupplierInfo,
)
from dropship.models.stock import (
    StockValidationConfig,
    StockValidationResult,
    VariantStockStatus,
    StockAction,
    ActionPriority,
    RecommendedAction,
)
from dropship.models.images import DownloadedImage, ImageMetadata
from dropship.models.pipeline import ExtractionOptions, ExtractionResult
from dropship.models.pricing import (
    CategoryPricing,
    PriceBreakdown,
    MarginInfo,
    PriceValidation,
    PricePreview,
)
from dropship.models.import_job import (
    ImportJob,
    ImportJobStatus,
    ImportOverrides,
    ImportResult,
    ImportPreview,
)
from dropship.models.fulfillment import (
    FulfillmentStatus,
    SourceStatus,
    InventoryStatus,
    OperatorRole,
    Principal,
    ActionResult,
    ShippingAddress,
    StoreOrderSnapshot,
    StoreOrderLine,
    OrderHandlerResult,
    OrderNotice,
    NoticeItem,
    PendingOrderFilters,
    DropshipOrderView,
    DropshipOrderItemView,
    SupplierOrderLine,
    SupplierOrderRequest,
    OrderCost,
    FulfillmentValidation,
    FulfillmentHistoryEvent,
    FulfillmentStats,
)

__all__ = [
    # Extraction
    "SupplierProduct",
    "SupplierVariant",
    "ShippingOption",
    "SupplierInfo",
    "StockValidationConfig",
    "StockValidationResult",
    "VariantStockStatus",
    "StockAction",
    "ActionPriority",
    "RecommendedAction",
    "DownloadedImage",
    "ImageMetadata",
    "ExtractionOptions",
    "ExtractionResult",
    # Pricing
    "CategoryPricing",
    "PriceBreakdown",
    "MarginInfo",
    "PriceValidation",
    "PricePreview",
    # Import jobs
    "ImportJob",
    "ImportJobStatus",
    "ImportOverrides",
    "ImportResult",
    "ImportPreview",
    # Fulfillment
    "FulfillmentStatus",
    "SourceStatus",
    "InventoryStatus",
    "OperatorRole",
    "Principal",
    "ActionResult",
    "ShippingAddress",
    "StoreOrderSnapshot",
    "StoreOrderLine",
    "OrderHandlerResult",
    "OrderNotice",
    "NoticeItem",
    "PendingOrderFilters",
    "DropshipOrderView",
    "DropshipOrderItemView",
    "SupplierOrderLine",
    "SupplierOrderRequest",
    "OrderCost",
    "FulfillmentValidation",
    "FulfillmentHistoryEvent",
    "FulfillmentStats",
]

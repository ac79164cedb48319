"""Database models for supplier sourcing and dropship fulfillment."""
from dropship.db.models.category import Category
from dropship.db.models.catalog_product import CatalogProduct, CatalogProductStatus
from dropship.db.models.supplier import Supplier
from dropship.db.models.product_source import ProductSource
from dropship.db.models.store_order import StoreOrder, StoreOrderItem, Shipping
from dropship.db.models.dropship_order import DropshipOrder, DropshipOrderItem

__all__ = [
    # Catalog
    "Category",
    "CatalogProduct",
    "CatalogProductStatus",
    "Supplier",
    "ProductSource",
    # Storefront orders (owned by the storefront)
    "StoreOrder",
    "StoreOrderItem",
    "Shipping",
    # Fulfillment
    "DropshipOrder",
    "DropshipOrderItem",
]

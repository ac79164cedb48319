"""Repositories wrapping an AsyncSession."""
from dropship.db.repositories.product_source_repo import (
    ProductSourceRepository,
    sku_slug_prefixes,
    source_match_rank,
    source_matches_line,
)
from dropship.db.repositories.dropship_order_repo import DropshipOrderRepository

__all__ = [
    "ProductSourceRepository",
    "sku_slug_prefixes",
    "source_match_rank",
    "source_matches_line",
    "DropshipOrderRepository",
]

"""
Product Source Repository
=========================

Lookups and writes for product_sources, suppliers and catalog_products.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import Text, or_, select
from sqlalchemy.dialects.postgresql import array
from sqlalchemy.ext.asyncio import AsyncSession

from dropship.db.models import Category, CatalogProduct, CatalogProductStatus, ProductSource, Supplier
from dropship.models import CategoryPricing, InventoryStatus, StoreOrderLine, SupplierInfo

logger = structlog.get_logger(__name__)


def _as_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def sku_slug_prefixes(sku: str) -> List[str]:
    """Every slug a local ``{slug}-{sku_id}`` SKU could have been built from."""
    parts = sku.split("-")
    return ["-".join(parts[:n]) for n in range(1, len(parts))]


def source_match_rank(source: ProductSource, line: StoreOrderLine) -> Optional[Tuple[int, int]]:
    """How strongly ``source`` supplies ``line``; lower sorts first, None is no match.

    An exact variant-mapping key beats the catalog product id or slug, which
    beat a ``{slug}-`` SKU prefix. Among prefix matches the longest slug wins.
    """
    if line.sku and line.sku in (source.variant_mapping or {}):
        return (0, 0)
    if line.product_id and str(source.catalog_product_id) == line.product_id:
        return (1, 0)
    if line.product_slug and source.product_slug == line.product_slug:
        return (1, 0)
    if line.sku and source.product_slug and line.sku.startswith(f"{source.product_slug}-"):
        return (2, -len(source.product_slug))
    return None


def source_matches_line(source: ProductSource, line: StoreOrderLine) -> bool:
    """Does ``source`` supply ``line``?"""
    return source_match_rank(source, line) is not None


class ProductSourceRepository:
    """Repository for product_sources and the records created alongside them."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, source_id: uuid.UUID) -> Optional[ProductSource]:
        return await self._session.get(ProductSource, source_id)

    async def get_by_supplier_product_id(self, supplier_product_id: str) -> Optional[ProductSource]:
        result = await self._session.execute(
            select(ProductSource).where(ProductSource.supplier_product_id == supplier_product_id)
        )
        return result.scalar_one_or_none()

    async def find_candidates(self, lines: Iterable[StoreOrderLine]) -> List[ProductSource]:
        """Sources that could match any of ``lines``, oldest first.

        Variant-mapping matches cannot be expressed portably in SQL, so the
        caller still ranks the candidates with source_match_rank.
        """
        lines = list(lines)
        product_ids = [pid for pid in (_as_uuid(line.product_id) for line in lines) if pid]
        slugs = {line.product_slug for line in lines if line.product_slug}
        for line in lines:
            if line.sku:
                slugs.update(sku_slug_prefixes(line.sku))

        conditions = []
        if product_ids:
            conditions.append(ProductSource.catalog_product_id.in_(product_ids))
        if slugs:
            conditions.append(ProductSource.product_slug.in_(slugs))
        skus = [line.sku for line in lines if line.sku]
        if skus:
            conditions.append(ProductSource.variant_mapping.has_any(array(skus, type_=Text)))
        if not conditions:
            return []

        result = await self._session.execute(
            select(ProductSource)
            .where(or_(*conditions))
            .order_by(ProductSource.created_at, ProductSource.id)
        )
        return list(result.scalars().all())

    async def slug_exists(self, slug: str) -> bool:
        result = await self._session.execute(
            select(CatalogProduct.id).where(CatalogProduct.slug == slug)
        )
        return result.first() is not None

    async def get_category_pricing(
        self,
        category_id: str,
        defaults: CategoryPricing,
    ) -> Optional[CategoryPricing]:
        """Category pricing with NULL columns filled from ``defaults``; None if unknown."""
        category = await self._session.get(Category, category_id)
        if category is None:
            return None
        return CategoryPricing(
            category_id=category.id,
            category_name=category.name,
            markup_factor=category.markup_factor if category.markup_factor is not None else defaults.markup_factor,
            shipping_buffer=(
                category.shipping_buffer if category.shipping_buffer is not None else defaults.shipping_buffer
            ),
            min_price=category.min_price,
            max_price=category.max_price,
        )

    async def upsert_supplier(self, info: SupplierInfo) -> Optional[Supplier]:
        """Create or refresh the supplier row keyed by marketplace store id."""
        if not info.store_id:
            return None
        result = await self._session.execute(select(Supplier).where(Supplier.store_id == info.store_id))
        supplier = result.scalar_one_or_none()
        if supplier is None:
            supplier = Supplier(store_id=info.store_id, name=info.name)
            self._session.add(supplier)
        supplier.name = info.name
        supplier.store_url = info.store_url
        supplier.rating = info.rating
        await self._session.flush()
        return supplier

    async def create_catalog_product(
        self,
        name: str,
        slug: str,
        category_id: Optional[str],
        description: str,
        price: Decimal,
        currency: str,
        images: List[str],
        variants: List[Dict[str, Any]],
        publish: bool = False,
        compare_at_price: Optional[Decimal] = None,
        cost_price: Optional[Decimal] = None,
    ) -> CatalogProduct:
        product = CatalogProduct(
            name=name,
            slug=slug,
            category_id=category_id,
            description=description,
            price=price,
            compare_at_price=compare_at_price,
            cost_price=cost_price,
            currency=currency,
            images=images,
            variants=variants,
            status=CatalogProductStatus.ACTIVE if publish else CatalogProductStatus.DRAFT,
        )
        self._session.add(product)
        await self._session.flush()
        return product

    async def create_source(
        self,
        catalog_product: CatalogProduct,
        supplier: Optional[Supplier],
        supplier_product_id: str,
        supplier_url: str,
        supplier_sku: Optional[str],
        variant_mapping: Dict[str, str],
        original_price: Decimal,
        original_currency: str,
        inventory_status: InventoryStatus,
    ) -> ProductSource:
        source = ProductSource(
            catalog_product_id=catalog_product.id,
            product_slug=catalog_product.slug,
            supplier_id=supplier.id if supplier else None,
            supplier_product_id=supplier_product_id,
            supplier_url=supplier_url,
            supplier_sku=supplier_sku,
            variant_mapping=variant_mapping,
            original_price=original_price,
            original_currency=original_currency,
            inventory_status=inventory_status,
            last_checked_at=datetime.now(timezone.utc),
        )
        self._session.add(source)
        await self._session.flush()
        logger.info(
            "product_source_created",
            product_source_id=str(source.id),
            supplier_product_id=supplier_product_id,
            slug=catalog_product.slug,
        )
        return source

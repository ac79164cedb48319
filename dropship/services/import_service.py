"""
Product Import Service

Turns a supplier listing into a catalog product plus its ProductSource:
preview, synchronous import and arq-backed asynchronous import with
pollable progress.
"""
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import structlog
from arq.connections import ArqRedis
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dropship.config import ImportSettings
from dropship.db.repositories import ProductSourceRepository
from dropship.errors import JobNotFoundError, JobStateError
from dropship.models import (
    ActionResult,
    CategoryPricing,
    ExtractionOptions,
    ImportJob,
    ImportOverrides,
    ImportPreview,
    ImportResult,
    InventoryStatus,
    StockValidationResult,
    SupplierProduct,
)
from dropship.services.extraction import (
    ExtractionPipeline,
    StockValidator,
    extract_product_id,
    is_valid_supplier_url,
    slugify,
)
from dropship.services.extraction.pipeline import failed_validation
from dropship.services.import_jobs import ImportJobTracker
from dropship.services.pricing import PriceCalculator

logger = structlog.get_logger(__name__)

MSG_INVALID_URL = "Invalid supplier product URL"
MSG_ALREADY_IMPORTED = "Product already imported"
MSG_SAVE_FAILED = "Failed to save imported product"
MSG_UNKNOWN_CATEGORY = "Category not found: {category_id}"

# (progress, step) milestones reported to pollers
STEP_STARTING = (10, "Starting import")
STEP_FETCHING = (20, "Fetching product data")
STEP_SAVING = (60, "Saving product")

Progress = Callable[[int, str], Awaitable[None]]


def inventory_status_for(validation: StockValidationResult) -> InventoryStatus:
    if validation.is_completely_out_of_stock:
        return InventoryStatus.OUT_OF_STOCK
    if validation.has_partial_stock:
        return InventoryStatus.LOW_STOCK
    return InventoryStatus.IN_STOCK


def build_variants(
    product: SupplierProduct,
    slug: str,
    validation: StockValidationResult,
    retail_price: Optional[Callable[[Decimal], Decimal]] = None,
) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
    """Catalog variant documents and the local -> supplier SKU mapping.

    Local SKUs are ``{slug}-{supplier sku}`` so order lines can be traced
    back to the source by prefix as well as by mapping. ``retail_price``
    turns a variant's supplier cost into its listed price.
    """
    hidden = set(validation.out_of_stock_variants)
    variants: List[Dict[str, Any]] = []
    mapping: Dict[str, str] = {}
    for variant in product.variants:
        local_sku = f"{slug}-{variant.sku_id}"
        mapping[local_sku] = variant.sku_id
        price = retail_price(variant.price) if retail_price is not None else variant.price
        variants.append({
            "sku": local_sku,
            "name": variant.name,
            "attributes": dict(variant.attributes),
            "price": str(price),
            "cost_price": str(variant.price),
            "stock": variant.stock,
            "image": variant.image,
            "active": variant.sku_id not in hidden,
        })
    return variants, mapping


def preview_warnings(product: SupplierProduct, validation: StockValidationResult) -> List[str]:
    warnings = []
    if validation.has_partial_stock:
        warnings.append("Some variants are out of stock")
    if not product.images:
        warnings.append("No images found for this product")
    if not product.variants:
        warnings.append("No variants found - a default variant will be created")
    return warnings


class ImportService:
    """
    Import supplier listings into the catalog.

    Usage:
        service = ImportService(pipeline, tracker, session_maker, settings)
        preview = await service.preview_import(url)
        result = await service.import_product(url, category_id="toys")
        job_id = await service.start_async_import(url, owner_id="op-1")
    """

    def __init__(
        self,
        pipeline: ExtractionPipeline,
        tracker: ImportJobTracker,
        session_maker: async_sessionmaker[AsyncSession],
        settings: ImportSettings,
        arq_redis: Optional[ArqRedis] = None,
        validator: Optional[StockValidator] = None,
        calculator: Optional[PriceCalculator] = None,
    ) -> None:
        self.pipeline = pipeline
        self.tracker = tracker
        self._session_maker = session_maker
        self.settings = settings
        self.arq_redis = arq_redis
        self.validator = validator or pipeline.validator
        self.calculator = calculator or PriceCalculator()

    async def _already_imported(self, supplier_product_id: str) -> bool:
        async with self._session_maker() as session:
            repo = ProductSourceRepository(session)
            return await repo.get_by_supplier_product_id(supplier_product_id) is not None

    async def _resolve_pricing(self, category_id: Optional[str]) -> Optional[CategoryPricing]:
        """Pricing rules for ``category_id``; defaults without one, None if unknown."""
        defaults = self.calculator.default_pricing()
        if category_id is None:
            return defaults
        async with self._session_maker() as session:
            repo = ProductSourceRepository(session)
            return await repo.get_category_pricing(category_id, defaults)

    async def preview_import(self, url: str, category_id: Optional[str] = None) -> ImportPreview:
        """Scrape and validate without writing anything."""
        pricing = await self._resolve_pricing(category_id)
        if pricing is None:
            return ImportPreview(
                success=False,
                stock_validation=failed_validation(),
                error=MSG_UNKNOWN_CATEGORY.format(category_id=category_id),
            )

        result = await self.pipeline.run(url, ExtractionOptions(download_images=False, validate_stock=True))
        preview = ImportPreview(**result.model_dump())
        if not result.success or result.product is None:
            return preview

        validation = result.stock_validation
        warnings = preview_warnings(result.product, validation)
        try:
            price_preview = self.calculator.preview(result.product.price, pricing)
        except ValueError as e:
            price_preview = None
            warnings.append(str(e))
        else:
            price_check = self.calculator.validate_price(price_preview.retail_price, pricing)
            warnings.extend(price_check.errors)
            warnings.extend(price_check.warnings)
            if self.calculator.is_low_margin(price_preview):
                warnings.append(f"Low margin: {price_preview.margin_percentage}%")

        return preview.model_copy(update={
            "health_score": self.validator.calculate_inventory_health_score(validation),
            "recommended_action": self.validator.get_recommended_action(validation),
            "already_imported": await self._already_imported(result.product.product_id),
            "category_pricing": pricing,
            "pricing": price_preview,
            "warnings": warnings,
        })

    async def import_product(
        self,
        url: str,
        category_id: Optional[str] = None,
        overrides: Optional[ImportOverrides] = None,
        progress: Optional[Progress] = None,
    ) -> ImportResult:
        """Import one listing.

        Never raises for expected failures; the outcome is in the result.
        """
        overrides = overrides or ImportOverrides()
        log = logger.bind(url=url, category_id=category_id)

        if not is_valid_supplier_url(url):
            return ImportResult(success=False, error=MSG_INVALID_URL)

        supplier_product_id = extract_product_id(url)
        if await self._already_imported(supplier_product_id):
            log.info("import_skipped_duplicate", supplier_product_id=supplier_product_id)
            return ImportResult(success=False, error=MSG_ALREADY_IMPORTED)

        pricing = await self._resolve_pricing(category_id)
        if pricing is None:
            return ImportResult(success=False, error=MSG_UNKNOWN_CATEGORY.format(category_id=category_id))

        if progress is not None:
            await progress(*STEP_FETCHING)
        extraction = await self.pipeline.run(
            url,
            ExtractionOptions(download_images=self.settings.download_images, validate_stock=True),
        )
        if not extraction.success or extraction.product is None:
            return ImportResult(success=False, error=extraction.error)

        validation = extraction.stock_validation
        if not validation.is_valid:
            log.info("import_rejected_stock", reason=validation.message)
            return ImportResult(success=False, error=validation.message)

        if progress is not None:
            await progress(*STEP_SAVING)
        try:
            price = (
                overrides.price
                if overrides.price is not None
                else self.calculator.calculate_retail_price(extraction.product.price, pricing)
            )
            compare_at = self.calculator.calculate_compare_at_price(price)
        except ValueError as e:
            log.warning("import_pricing_rejected", error=str(e))
            return ImportResult(success=False, error=str(e))

        return await self._save(
            extraction.product, validation, category_id, overrides, log,
            price=price,
            compare_at_price=compare_at,
            retail_price=lambda cost: self.calculator.calculate_retail_price(cost, pricing),
        )

    async def _save(
        self,
        product: SupplierProduct,
        validation: StockValidationResult,
        category_id: Optional[str],
        overrides: ImportOverrides,
        log: Any,
        price: Decimal,
        compare_at_price: Optional[Decimal] = None,
        retail_price: Optional[Callable[[Decimal], Decimal]] = None,
    ) -> ImportResult:
        name = overrides.title or product.title
        base_slug = overrides.slug or slugify(name)

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    repo = ProductSourceRepository(session)
                    slug = base_slug
                    if await repo.slug_exists(slug):
                        slug = f"{base_slug}-{product.product_id}"
                    variants, mapping = build_variants(product, slug, validation, retail_price)

                    supplier = await repo.upsert_supplier(product.supplier)
                    catalog_product = await repo.create_catalog_product(
                        name=name,
                        slug=slug,
                        category_id=category_id,
                        description=overrides.description or product.description,
                        price=Decimal(price),
                        currency=product.currency,
                        images=list(product.images),
                        variants=variants,
                        publish=overrides.publish,
                        compare_at_price=compare_at_price,
                        cost_price=product.price,
                    )
                    source = await repo.create_source(
                        catalog_product=catalog_product,
                        supplier=supplier,
                        supplier_product_id=product.product_id,
                        supplier_url=product.url,
                        supplier_sku=product.variants[0].sku_id if product.variants else product.product_id,
                        variant_mapping=mapping,
                        original_price=product.price,
                        original_currency=product.currency,
                        inventory_status=inventory_status_for(validation),
                    )
                    result = ImportResult(
                        success=True,
                        product_id=str(catalog_product.id),
                        product_slug=slug,
                        product_source_id=str(source.id),
                        retail_price=Decimal(price),
                    )
        except IntegrityError:
            # Lost a race with a concurrent import of the same listing
            log.warning("import_duplicate_on_save", supplier_product_id=product.product_id)
            return ImportResult(success=False, error=MSG_ALREADY_IMPORTED)
        except SQLAlchemyError as e:
            log.error("import_save_failed", error=str(e), exc_info=True)
            return ImportResult(success=False, error=MSG_SAVE_FAILED)

        log.info(
            "product_imported",
            product_id=result.product_id,
            slug=result.product_slug,
            supplier_product_id=product.product_id,
        )
        return result

    async def start_async_import(
        self,
        url: str,
        owner_id: str,
        category_id: Optional[str] = None,
        overrides: Optional[ImportOverrides] = None,
    ) -> str:
        """Create a pending job and hand it to the worker.

        Returns:
            Job id to poll with get_import_status
        """
        if self.arq_redis is None:
            raise RuntimeError("Async import requires an arq connection")

        job = await self.tracker.create(owner_id=owner_id, url=url, category_id=category_id)
        await self.arq_redis.enqueue_job(
            "import_product_task",
            job.job_id,
            url,
            category_id,
            (overrides or ImportOverrides()).model_dump(mode="json"),
            _job_id=f"import:{job.job_id}",
        )
        logger.info("import_job_enqueued", job_id=job.job_id, owner_id=owner_id)
        return job.job_id

    async def run_import_job(
        self,
        job_id: str,
        url: str,
        category_id: Optional[str] = None,
        overrides: Optional[ImportOverrides] = None,
    ) -> Optional[ImportJob]:
        """Worker side of start_async_import.

        A cancelled job raises JobStateError at its next progress update,
        which ends the run without touching the job again.
        """
        log = logger.bind(job_id=job_id)

        async def report(progress: int, step: str) -> None:
            await self.tracker.mark_processing(job_id, progress, step)

        try:
            await report(*STEP_STARTING)
            result = await self.import_product(url, category_id, overrides, progress=report)
            if result.success:
                job = await self.tracker.mark_completed(job_id, result.model_dump(mode="json"))
            else:
                job = await self.tracker.mark_failed(job_id, result.error or "Import failed")
        except JobStateError as e:
            log.info("import_job_aborted", reason=e.message)
            return await self.tracker.get(job_id)

        log.info("import_job_finished", status=job.status.value)
        return job

    async def get_import_status(self, job_id: str) -> Optional[ImportJob]:
        return await self.tracker.get(job_id)

    async def cancel_import_job(self, job_id: str) -> ActionResult:
        try:
            await self.tracker.cancel(job_id)
        except (JobStateError, JobNotFoundError) as e:
            return ActionResult.fail(e.message)
        return ActionResult.ok()

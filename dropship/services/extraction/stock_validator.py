"""Stock validation policy for scraped supplier products.

Pure functions of the SupplierProduct snapshot; no I/O.
"""
from typing import Iterable, List, Optional

from dropship.models import (
    ActionPriority,
    RecommendedAction,
    StockAction,
    StockValidationConfig,
    StockValidationResult,
    SupplierProduct,
    SupplierVariant,
    VariantStockStatus,
)

MSG_ALL_IN_STOCK = "All variants are in stock"
MSG_COMPLETELY_OUT = "Product is completely out of stock"
MSG_PARTIAL = "{out} of {total} variants out of stock"
MSG_PARTIAL_REJECTED = "Product has out-of-stock variants and partial stock is not allowed"
MSG_TOO_MANY_OUT = "Too many variants out of stock ({out} > {max})"
MSG_LOW_PERCENTAGE = "Only {pct:.0f}% of variants in stock (minimum {min:.0f}%)"
MSG_IN_STOCK = "Product is in stock"
MSG_NO_STOCK_INFO = "Stock information unavailable"
MSG_BELOW_THRESHOLD = "Stock {stock} is below the minimum of {threshold}"

HEALTH_STOCK_NORMALIZATION = 100
LOW_HEALTH_THRESHOLD = 30


class StockValidator:
    """Decides whether and how much of a supplier product is sellable."""

    def __init__(self, config: Optional[StockValidationConfig] = None) -> None:
        self.config = config or StockValidationConfig()

    def is_variant_in_stock(self, variant: SupplierVariant) -> bool:
        """Unknown stock counts as available; zero is never available."""
        if variant.stock is None:
            return True
        if variant.stock == 0:
            return False
        return variant.stock >= self.config.min_stock_threshold

    def validate(self, product: SupplierProduct) -> StockValidationResult:
        if not product.variants:
            return self._validate_single(product)
        return self._validate_variants(product.variants)

    def _validate_single(self, product: SupplierProduct) -> StockValidationResult:
        # Unknown stock fails closed for single-SKU products
        stock = product.stock
        if stock is None:
            return StockValidationResult(
                is_valid=False,
                is_completely_out_of_stock=True,
                message=MSG_NO_STOCK_INFO,
            )
        threshold = max(self.config.min_stock_threshold, 1)
        if stock < threshold:
            return StockValidationResult(
                is_valid=False,
                is_completely_out_of_stock=stock == 0,
                message=(
                    MSG_COMPLETELY_OUT if stock == 0
                    else MSG_BELOW_THRESHOLD.format(stock=stock, threshold=threshold)
                ),
            )
        return StockValidationResult(
            is_valid=True,
            total_available_stock=stock,
            message=MSG_IN_STOCK,
        )

    def _validate_variants(self, variants: Iterable[SupplierVariant]) -> StockValidationResult:
        available: List[str] = []
        out_of_stock: List[str] = []
        total_stock = 0
        for variant in variants:
            if self.is_variant_in_stock(variant):
                available.append(variant.sku_id)
                total_stock += variant.stock or 0
            else:
                out_of_stock.append(variant.sku_id)

        total = len(available) + len(out_of_stock)
        completely_out = not available
        partial = bool(available) and bool(out_of_stock)
        in_stock_pct = len(available) / total * 100 if total else 0.0

        is_valid = True
        message = MSG_ALL_IN_STOCK
        if partial:
            message = MSG_PARTIAL.format(out=len(out_of_stock), total=total)

        max_out = self.config.max_out_of_stock_variants
        if completely_out:
            is_valid = False
            message = MSG_COMPLETELY_OUT
        elif self.config.reject_on_partial_stock and out_of_stock:
            is_valid = False
            message = MSG_PARTIAL_REJECTED
        elif max_out is not None and len(out_of_stock) > max_out:
            is_valid = False
            message = MSG_TOO_MANY_OUT.format(out=len(out_of_stock), max=max_out)
        elif in_stock_pct < self.config.min_in_stock_percentage:
            is_valid = False
            message = MSG_LOW_PERCENTAGE.format(
                pct=in_stock_pct, min=self.config.min_in_stock_percentage
            )

        return StockValidationResult(
            is_valid=is_valid,
            available_variants=available,
            out_of_stock_variants=out_of_stock,
            total_available_stock=total_stock,
            is_completely_out_of_stock=completely_out,
            has_partial_stock=partial,
            message=message,
        )

    # =========================================================================
    # Operator helpers
    # =========================================================================

    def should_reject_product(self, product: SupplierProduct) -> bool:
        return not self.validate(product).is_valid

    def get_variants_to_hide(self, product: SupplierProduct) -> List[str]:
        return self.validate(product).out_of_stock_variants

    def needs_stock_update(
        self,
        product: SupplierProduct,
        previous: StockValidationResult,
    ) -> bool:
        """True when availability changed since ``previous`` was computed."""
        current = self.validate(product)
        return (
            current.is_valid != previous.is_valid
            or set(current.out_of_stock_variants) != set(previous.out_of_stock_variants)
        )

    def get_variant_stock_status(
        self,
        product: SupplierProduct,
        sku_id: str,
    ) -> VariantStockStatus:
        variant = product.get_variant(sku_id)
        if variant is None:
            return VariantStockStatus.UNKNOWN
        if self.is_variant_in_stock(variant):
            return VariantStockStatus.IN_STOCK
        return VariantStockStatus.OUT_OF_STOCK

    @staticmethod
    def calculate_inventory_health_score(result: StockValidationResult) -> int:
        """Score 0-100: 70% variant availability ratio + 30% normalized stock."""
        if result.is_completely_out_of_stock:
            return 0
        total = result.total_variants
        if total == 0:
            return 100
        ratio = len(result.available_variants) / total
        stock_factor = min(result.total_available_stock / HEALTH_STOCK_NORMALIZATION, 1)
        return round(ratio * 70 + stock_factor * 30)

    def get_recommended_action(self, result: StockValidationResult) -> RecommendedAction:
        if result.is_completely_out_of_stock:
            return RecommendedAction(
                action=StockAction.HIDE_PRODUCT,
                priority=ActionPriority.HIGH,
                reason=MSG_COMPLETELY_OUT,
            )
        if result.has_partial_stock:
            health = self.calculate_inventory_health_score(result)
            if health < LOW_HEALTH_THRESHOLD:
                return RecommendedAction(
                    action=StockAction.HIDE_VARIANTS,
                    priority=ActionPriority.MEDIUM,
                    reason=f"Low inventory health ({health}/100), hide out-of-stock variants",
                )
            return RecommendedAction(
                action=StockAction.UPDATE_STOCK,
                priority=ActionPriority.LOW,
                reason=result.message,
            )
        return RecommendedAction(
            action=StockAction.NONE,
            priority=ActionPriority.LOW,
            reason="Stock levels are healthy",
        )

"""
Retail Pricing

Turns a supplier cost into the listed storefront price using category
pricing rules:

    final = floor((cost * markup + shipping_buffer) * (1 + platform_fee)) + .99

clamped to the category's min/max price. All arithmetic is Decimal.
"""
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Optional

from dropship.config import PricingSettings
from dropship.models.pricing import (
    CategoryPricing,
    MarginInfo,
    PriceBreakdown,
    PricePreview,
    PriceValidation,
)

CENTS = Decimal("0.01")
LOW_PRICE_WARNING = Decimal("5")
HIGH_PRICE_WARNING = Decimal("200")
LOW_MARKUP_WARNING = Decimal("2")


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class PriceCalculator:
    """Category-aware retail price calculator."""

    def __init__(self, settings: Optional[PricingSettings] = None) -> None:
        self.settings = settings or PricingSettings()
        self.platform_fee_rate = _dec(self.settings.platform_fee_rate)
        self.round_to = _dec(self.settings.round_to)

    def default_pricing(self) -> CategoryPricing:
        """Pricing for products imported without a category."""
        return CategoryPricing(
            markup_factor=_dec(self.settings.markup_factor),
            shipping_buffer=_dec(self.settings.shipping_buffer),
        )

    def _round(self, value: Decimal) -> Decimal:
        return value.to_integral_value(rounding=ROUND_FLOOR) + self.round_to

    def calculate_breakdown(self, cost_price: Decimal, pricing: CategoryPricing) -> PriceBreakdown:
        """
        Compute each pricing step for ``cost_price``.

        Raises:
            ValueError: Negative cost, or a markup that would sell at a loss
        """
        cost_price = Decimal(cost_price)
        if cost_price < 0:
            raise ValueError("Cost price cannot be negative")
        if pricing.markup_factor < 1:
            raise ValueError("Markup factor must be at least 1.0 to avoid selling at a loss")

        marked_up = cost_price * pricing.markup_factor
        with_buffer = marked_up + pricing.shipping_buffer
        with_fees = with_buffer * (1 + self.platform_fee_rate)

        final = self._round(with_fees)
        if pricing.min_price is not None and final < pricing.min_price:
            final = pricing.min_price
        if pricing.max_price is not None and final > pricing.max_price:
            final = pricing.max_price

        return PriceBreakdown(
            cost_price=cost_price,
            marked_up_price=_money(marked_up),
            with_shipping_buffer=_money(with_buffer),
            with_platform_fees=_money(with_fees),
            final_price=_money(final),
            markup_factor=pricing.markup_factor,
            shipping_buffer=pricing.shipping_buffer,
            platform_fee_rate=self.platform_fee_rate,
        )

    def calculate_retail_price(self, cost_price: Decimal, pricing: CategoryPricing) -> Decimal:
        return self.calculate_breakdown(cost_price, pricing).final_price

    def calculate_compare_at_price(self, retail_price: Decimal) -> Decimal:
        """Strike-through price: retail plus the configured percentage, rounded to .99."""
        percent = _dec(self.settings.compare_at_markup_percent)
        return _money(self._round(Decimal(retail_price) * (1 + percent / 100)))

    def calculate_margin(self, cost_price: Decimal, retail_price: Decimal) -> MarginInfo:
        cost_price = Decimal(cost_price)
        retail_price = Decimal(retail_price)
        margin = retail_price - cost_price
        if cost_price > 0 and retail_price > 0:
            percentage = margin / retail_price * 100
            markup = retail_price / cost_price
        else:
            percentage = Decimal("0")
            markup = Decimal("0")
        return MarginInfo(
            cost_price=cost_price,
            retail_price=retail_price,
            margin=_money(margin),
            margin_percentage=_money(percentage),
            markup_factor=_money(markup),
        )

    def validate_price(self, retail_price: Decimal, pricing: CategoryPricing) -> PriceValidation:
        """Check a (possibly operator-set) price against the category bounds."""
        errors = []
        warnings = []
        adjusted = None
        if pricing.min_price is not None and retail_price < pricing.min_price:
            errors.append(f"Price ${retail_price:.2f} is below minimum ${pricing.min_price:.2f}")
            adjusted = pricing.min_price
        if pricing.max_price is not None and retail_price > pricing.max_price:
            errors.append(f"Price ${retail_price:.2f} is above maximum ${pricing.max_price:.2f}")
            adjusted = pricing.max_price
        if retail_price < LOW_PRICE_WARNING:
            warnings.append("Price is very low. Consider if this covers costs and fees.")
        if retail_price > HIGH_PRICE_WARNING:
            warnings.append("Price is very high. This may affect conversion rates.")
        if pricing.markup_factor < LOW_MARKUP_WARNING:
            warnings.append(
                f"Markup factor of {pricing.markup_factor}x is low. Consider higher markup for better margins."
            )
        return PriceValidation(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            adjusted_price=adjusted,
        )

    def preview(
        self,
        cost_price: Decimal,
        pricing: CategoryPricing,
        retail_override: Optional[Decimal] = None,
    ) -> PricePreview:
        """Breakdown plus margin for the price that would actually be listed."""
        breakdown = self.calculate_breakdown(cost_price, pricing)
        retail = Decimal(retail_override) if retail_override is not None else breakdown.final_price
        margin = self.calculate_margin(cost_price, retail)
        return PricePreview(
            cost_price=Decimal(cost_price),
            retail_price=retail,
            compare_at_price=self.calculate_compare_at_price(retail),
            margin=margin.margin,
            margin_percentage=margin.margin_percentage,
            breakdown=breakdown,
        )

    def is_low_margin(self, preview: PricePreview) -> bool:
        return preview.margin_percentage < _dec(self.settings.low_margin_percent)

"""
Cost-plus pricing engine and catalog repricer.

compute_cost_plus is pure: configuration and per-product input in, full
breakdown out. Arithmetic is plain float so results match prices already
stored by earlier runs to the cent.

Algorithm:
    material   = grams/1000 * per_kg   (mass first), else ml/1000 * per_L
    energy     = watts/1000 * minutes/60 * kwh_rate
    machine    = hourly_rate * minutes/60
    labor      = hourly_rate * (prepare_min + postprocess_min)/60
    cost_base  = material + energy + machine + labor + packaging + shipping
    cost_total = cost_base * (1 + overhead)
    base       = cost_total * (1 + margin)
    price      = base / max(0.0001, 1 - Σ fee_pct), rounded, floored at min_price
"""

import math
from typing import Any, Optional
import structlog

from config import get_supabase_client, get_pricing_config
from exceptions import DatabaseError
from models.pricing import (
    FeeBreakdown,
    PricingBreakdown,
    PricingConfig,
    PricingInput,
    PricingMethod,
    RepriceReport,
    RoundingStrategy,
)
from utils.numbers import is_positive_number

logger = structlog.get_logger(__name__)

MIN_FEE_DENOMINATOR = 0.0001


# ===================
# ENGINE
# ===================

def round_price(value: float, strategy: RoundingStrategy) -> float:
    """
    Apply a rounding strategy.

    - none:      2 decimals, halves away from zero (12.345 → 12.35)
    - up_1:      ceiling (12.01 → 13)
    - up_5:      ceiling to a multiple of 5 (12.01 → 15)
    - nearest_9: ceiling, minus 1 when that lands on a multiple of 10
                 (187.3 → 188, 189.2 → 189, 190 → 189)
    """
    strategy = RoundingStrategy(strategy)

    if strategy == RoundingStrategy.NONE:
        return math.floor(value * 100 + 0.5) / 100
    if strategy == RoundingStrategy.UP_1:
        return float(math.ceil(value))
    if strategy == RoundingStrategy.UP_5:
        return float(math.ceil(value / 5) * 5)
    if strategy == RoundingStrategy.NEAREST_9:
        up = math.ceil(value)
        return float(up - 1 if up % 10 == 0 else up)

    return float(round(value))


def _material_cost(config: PricingConfig, data: PricingInput) -> float:
    material_type = (data.material_type or "PLA").upper()
    per_kg = config.price_per_kg(material_type)
    per_liter = config.price_per_liter(material_type)
    grams = data.material_g or 0.0
    ml = data.material_ml or 0.0

    if grams > 0 and per_kg is not None:
        return (grams / 1000) * per_kg
    if ml > 0 and per_liter is not None:
        return (ml / 1000) * per_liter
    return 0.0


def compute_cost_plus(config: PricingConfig, data: PricingInput) -> PricingBreakdown:
    """
    Compute a cost-plus price.

    Args:
        config: Pricing configuration
        data: Per-product cost drivers

    Returns:
        PricingBreakdown with every intermediate value
    """
    currency = data.currency or config.currency or "UAH"

    material_cost = _material_cost(config, data)

    print_minutes = data.print_time_min or 0.0
    kwh = (config.energy.printer_power_w / 1000) * (print_minutes / 60)
    energy_cost = kwh * config.energy.kwh_rate

    machine_cost = config.machine.hourly_rate * (print_minutes / 60)

    postprocess_min = (
        data.postprocess_min
        if data.postprocess_min is not None
        else config.labor.postprocess_min_default
    )
    labor_minutes = config.labor.prepare_min + postprocess_min
    labor_cost = config.labor.hourly_rate * (labor_minutes / 60)

    # Post-processing time is billed as labor
    postprocess_cost = 0.0

    packaging_cost = data.packaging_cost or 0.0

    shipping_cost = 0.0
    if data.shipping_included and data.shipping_cost is not None:
        shipping_cost = max(0.0, data.shipping_cost)

    cost_base = (
        material_cost
        + energy_cost
        + machine_cost
        + labor_cost
        + postprocess_cost
        + packaging_cost
        + shipping_cost
    )
    overhead_cost = cost_base * config.overhead.percent_of_cost
    cost_total = cost_base + overhead_cost

    margin = (
        data.target_margin_pct
        if data.target_margin_pct is not None
        else config.profit.target_margin_pct
    )
    target_profit = cost_total * margin
    base_before_fees = cost_total + target_profit

    fees = config.fees
    vat = fees.vat_pct if fees.include_vat_in_price else 0.0
    fee_pct = (
        fees.acquiring_pct
        + fees.marketplace_pct
        + fees.single_tax_pct
        + fees.war_tax_pct
        + vat
    )

    price_before_round = base_before_fees / max(MIN_FEE_DENOMINATOR, 1 - fee_pct)
    rounded = round_price(price_before_round, config.rounding.strategy)
    price_final = max(rounded, config.rounding.min_price or 0.0)

    return PricingBreakdown(
        currency=currency,
        material_cost=material_cost,
        energy_cost=energy_cost,
        machine_cost=machine_cost,
        labor_cost=labor_cost,
        postprocess_cost=postprocess_cost,
        packaging_cost=packaging_cost,
        shipping_cost=shipping_cost,
        cost_base=cost_base,
        overhead_cost=overhead_cost,
        cost_total=cost_total,
        margin=margin,
        target_profit=target_profit,
        base_before_fees=base_before_fees,
        fees=FeeBreakdown(
            acquiring=fees.acquiring_pct,
            marketplace=fees.marketplace_pct,
            single_tax=fees.single_tax_pct,
            war_tax=fees.war_tax_pct,
            vat=vat,
            total_pct=fee_pct,
        ),
        price_before_round=price_before_round,
        price_final=price_final,
    )


# ===================
# SERVICE
# ===================

class PricingService:
    """
    Pricing operations that touch the catalog.

    Core methods:
    - quote: Breakdown for ad-hoc input (no writes)
    - price_from_attributes: Breakdown for a stored attribute map
    - reprice_catalog: Recompute every non-manual product
    """

    def __init__(self, config: Optional[PricingConfig] = None):
        self.db = get_supabase_client()
        self.table = "products"
        self.config = config or get_pricing_config()

    def quote(self, data: PricingInput) -> PricingBreakdown:
        """Compute a breakdown without touching the catalog."""
        breakdown = compute_cost_plus(self.config, data)
        logger.debug(
            "price_quoted",
            material_type=data.material_type,
            price_final=breakdown.price_final
        )
        return breakdown

    def price_from_attributes(
        self,
        attributes: Optional[dict[str, Any]],
        currency: Optional[str] = None
    ) -> PricingBreakdown:
        """Compute a breakdown from a product attribute map."""
        data = PricingInput.from_attributes(attributes, currency=currency)
        return compute_cost_plus(self.config, data)

    def reprice_catalog(self, page_size: int = 500) -> RepriceReport:
        """
        Recompute price and breakdown of every product not priced manually.

        A product whose computed price is not a finite positive number
        keeps its stored price.

        Returns:
            RepriceReport with scanned/repriced/skipped counts

        Raises:
            DatabaseError: If reading or writing products fails
        """
        logger.info("reprice_started", page_size=page_size)

        report = RepriceReport()
        offset = 0

        while True:
            try:
                result = (
                    self.db.table(self.table)
                    .select("id, sku, currency, attributes, pricing_method")
                    .neq("pricing_method", PricingMethod.MANUAL.value)
                    .order("id")
                    .range(offset, offset + page_size - 1)
                    .execute()
                )
            except Exception as e:
                logger.error("reprice_select_failed", offset=offset, error=str(e))
                raise DatabaseError("select", str(e), {"table": self.table})

            page = result.data or []
            for product in page:
                report.scanned += 1
                if self._reprice_product(product):
                    report.repriced += 1
                else:
                    report.skipped += 1

            if len(page) < page_size:
                break
            offset += page_size

        logger.info(
            "reprice_complete",
            scanned=report.scanned,
            repriced=report.repriced,
            skipped=report.skipped
        )
        return report

    def _reprice_product(self, product: dict) -> bool:
        breakdown = self.price_from_attributes(
            product.get("attributes"),
            currency=product.get("currency") or self.config.currency
        )

        if not is_positive_number(breakdown.price_final):
            logger.warning(
                "reprice_skipped_invalid_price",
                sku=product.get("sku"),
                price_final=breakdown.price_final
            )
            return False

        try:
            self.db.table(self.table).update({
                "price": breakdown.price_final,
                "pricing": breakdown.model_dump(mode="json"),
                "pricing_method": PricingMethod.COST_PLUS.value,
            }).eq("id", product["id"]).execute()
        except Exception as e:
            logger.error("reprice_update_failed", sku=product.get("sku"), error=str(e))
            raise DatabaseError("update", str(e), {"sku": product.get("sku")})

        return True


# Singleton instance for convenience
_pricing_service: Optional[PricingService] = None

def get_pricing_service() -> PricingService:
    """Get or create PricingService instance."""
    global _pricing_service
    if _pricing_service is None:
        _pricing_service = PricingService()
    return _pricing_service

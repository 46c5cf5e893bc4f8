"""
Cost-plus pricing schemas.

PricingConfig mirrors the pricing configuration document:

    {
      "currency": "UAH",
      "energy": {"kwh_rate": 4.32, "printer_power_w": 120},
      "labor": {"hourly_rate": 200, "prepare_min": 10, "postprocess_min_default": 15},
      "machine": {"hourly_rate": 12},
      "materials": {"PLA_kg": 650, "PETG_kg": 700, "RESIN_L": 1800},
      "overhead": {"percent_of_cost": 0.1},
      "profit": {"target_margin_pct": 0.35},
      "fees": {"acquiring_pct": 0.013, "marketplace_pct": 0, "single_tax_pct": 0.05,
               "war_tax_pct": 0.01, "vat_pct": 0.2, "include_vat_in_price": false},
      "rounding": {"strategy": "nearest_9", "min_price": 49}
    }

Percentages are fractions (0.35 = 35%).
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from models.base import ValueSchema
from utils.numbers import coerce_number


class RoundingStrategy(str, Enum):
    """How the grossed-up price is rounded."""
    NONE = "none"            # 2 decimals
    UP_1 = "up_1"            # ceiling to whole unit
    UP_5 = "up_5"            # ceiling to multiple of 5
    NEAREST_9 = "nearest_9"  # ceiling, then 190 → 189


class PricingMethod(str, Enum):
    """How a product's price was set."""
    MANUAL = "manual"
    COST_PLUS = "cost_plus"


# ===================
# CONFIGURATION
# ===================

class EnergyConfig(BaseModel):
    kwh_rate: float = Field(..., ge=0, description="Price per kWh")
    printer_power_w: float = Field(..., ge=0, description="Average printer draw in watts")


class LaborConfig(BaseModel):
    hourly_rate: float = Field(..., ge=0)
    prepare_min: float = Field(0, ge=0, description="Fixed preparation minutes per item")
    postprocess_min_default: float = Field(0, ge=0, description="Used when the product has no override")


class MachineConfig(BaseModel):
    hourly_rate: float = Field(..., ge=0, description="Depreciation per print hour")


class OverheadConfig(BaseModel):
    percent_of_cost: float = Field(0, ge=0)


class ProfitConfig(BaseModel):
    target_margin_pct: float = Field(..., ge=0)


class FeesConfig(BaseModel):
    acquiring_pct: float = Field(0, ge=0, le=1)
    marketplace_pct: float = Field(0, ge=0, le=1)
    single_tax_pct: float = Field(0, ge=0, le=1)
    war_tax_pct: float = Field(0, ge=0, le=1)
    vat_pct: float = Field(0, ge=0, le=1)
    include_vat_in_price: bool = False


class RoundingConfig(BaseModel):
    strategy: RoundingStrategy = RoundingStrategy.NONE
    min_price: float = Field(0, ge=0, description="Floor applied after rounding")


class PricingConfig(BaseModel):
    """Full pricing configuration document."""

    currency: str = Field("UAH", min_length=3, max_length=3)
    energy: EnergyConfig
    labor: LaborConfig
    machine: MachineConfig
    materials: dict[str, float] = Field(
        default_factory=dict,
        description="Rates keyed '<TYPE>_kg' (per kilogram) or '<TYPE>_L' (per liter)"
    )
    overhead: OverheadConfig = Field(default_factory=OverheadConfig)
    profit: ProfitConfig
    fees: FeesConfig = Field(default_factory=FeesConfig)
    rounding: RoundingConfig = Field(default_factory=RoundingConfig)

    def price_per_kg(self, material_type: str) -> Optional[float]:
        return self.materials.get(f"{material_type}_kg")

    def price_per_liter(self, material_type: str) -> Optional[float]:
        return self.materials.get(f"{material_type}_L")


# ===================
# INPUT / OUTPUT
# ===================

def _is_true(value: Any) -> bool:
    """Only an explicit "true" (any case) or True counts."""
    if value is None:
        return False
    return str(value).strip().lower() == "true"


class PricingInput(ValueSchema):
    """
    Per-product cost drivers.

    None means "not provided"; the engine falls back to 0 or to the
    configured default as appropriate.
    """

    material_type: str = "PLA"
    material_g: Optional[float] = None
    material_ml: Optional[float] = None
    print_time_min: Optional[float] = None
    postprocess_min: Optional[float] = None
    packaging_cost: Optional[float] = None
    shipping_included: bool = False
    shipping_cost: Optional[float] = None
    target_margin_pct: Optional[float] = None
    currency: Optional[str] = None

    @classmethod
    def from_attributes(
        cls,
        attributes: Optional[dict[str, Any]],
        currency: Optional[str] = None
    ) -> "PricingInput":
        """
        Build pricing input from a product attribute map.

        Numeric fields go through locale-tolerant coercion; anything that
        does not parse is treated as not provided.
        """
        attrs = attributes or {}
        material_type = str(attrs.get("material_type") or "PLA").strip().upper() or "PLA"
        return cls(
            material_type=material_type,
            material_g=coerce_number(attrs.get("material_g")),
            material_ml=coerce_number(attrs.get("material_ml")),
            print_time_min=coerce_number(attrs.get("print_time_min")),
            postprocess_min=coerce_number(attrs.get("postprocess_min")),
            packaging_cost=coerce_number(attrs.get("packaging_cost")),
            shipping_included=_is_true(attrs.get("shipping_included")),
            shipping_cost=coerce_number(attrs.get("shipping_cost")),
            target_margin_pct=coerce_number(attrs.get("target_margin_pct")),
            currency=currency,
        )


class FeeBreakdown(ValueSchema):
    """Fee percentages applied when grossing up the price."""
    acquiring: float
    marketplace: float
    single_tax: float
    war_tax: float
    vat: float
    total_pct: float


class PricingBreakdown(ValueSchema):
    """
    Full audit trail of a cost-plus price.

    Persisted as products.pricing; only price_final feeds products.price.
    """

    currency: str

    material_cost: float
    energy_cost: float
    machine_cost: float
    labor_cost: float
    postprocess_cost: float
    packaging_cost: float
    shipping_cost: float

    cost_base: float
    overhead_cost: float
    cost_total: float

    margin: float
    target_profit: float
    base_before_fees: float

    fees: FeeBreakdown

    price_before_round: float
    price_final: float
    method: Literal["cost_plus"] = "cost_plus"


class RepriceReport(BaseModel):
    """Result of a full-catalog repricing run."""
    scanned: int = 0
    repriced: int = 0
    skipped: int = 0

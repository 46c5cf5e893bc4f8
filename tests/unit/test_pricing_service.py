"""
Unit tests for the cost-plus pricing engine and PricingService.

Run: pytest tests/unit/test_pricing_service.py -v
"""

import json
from pathlib import Path
import pytest

from config.pricing import load_pricing_config
from exceptions import DatabaseError, PricingConfigError
from models.pricing import PricingInput, RoundingStrategy
from services.pricing_service import PricingService, compute_cost_plus, round_price

from tests.factories import ProductFactory

BUNDLED_CONFIG = Path(__file__).resolve().parents[2] / "data" / "pricing.json"


# ===================
# ROUNDING
# ===================

class TestRoundPrice:
    """Tests for round_price()"""

    @pytest.mark.parametrize("value,expected", [
        (187.3, 188),
        (189.2, 189),
        (190, 189),
        (190.01, 191),
        (199.5, 199),
    ])
    def test_nearest_9(self, value, expected):
        assert round_price(value, RoundingStrategy.NEAREST_9) == expected

    @pytest.mark.parametrize("value,expected", [
        (125.9, 130),
        (125, 125),
        (0.1, 5),
    ])
    def test_up_5(self, value, expected):
        assert round_price(value, RoundingStrategy.UP_5) == expected

    def test_up_1(self):
        assert round_price(12.01, RoundingStrategy.UP_1) == 13
        assert round_price(12, RoundingStrategy.UP_1) == 12

    def test_none_rounds_half_up_to_cents(self):
        assert round_price(10.006, RoundingStrategy.NONE) == 10.01
        assert round_price(10.004, "none") == 10.0


# ===================
# ENGINE
# ===================

class TestComputeCostPlus:
    """Tests for compute_cost_plus()"""

    def test_breakdown(self, pricing_config):
        """50 g PLA, 120 min print."""
        breakdown = compute_cost_plus(
            pricing_config,
            PricingInput(material_g=50, print_time_min=120)
        )

        assert breakdown.material_cost == pytest.approx(30)
        assert breakdown.energy_cost == pytest.approx(1)
        assert breakdown.machine_cost == pytest.approx(20)
        assert breakdown.labor_cost == pytest.approx(30)
        assert breakdown.cost_base == pytest.approx(81)
        assert breakdown.cost_total == pytest.approx(89.1)
        assert breakdown.base_before_fees == pytest.approx(115.83)
        assert breakdown.fees.total_pct == pytest.approx(0.08)
        assert breakdown.fees.vat == 0
        assert breakdown.price_before_round == pytest.approx(125.902, abs=1e-3)
        assert breakdown.price_final == 130
        assert breakdown.currency == "UAH"
        assert breakdown.method == "cost_plus"

    def test_mass_wins_over_volume(self, pricing_config):
        breakdown = compute_cost_plus(
            pricing_config,
            PricingInput(material_type="PLA", material_g=100, material_ml=500)
        )

        assert breakdown.material_cost == pytest.approx(60)

    def test_volume_when_no_mass_rate(self, pricing_config):
        breakdown = compute_cost_plus(
            pricing_config,
            PricingInput(material_type="RESIN", material_g=100, material_ml=50)
        )

        assert breakdown.material_cost == pytest.approx(100)

    def test_unknown_material_costs_nothing(self, pricing_config):
        breakdown = compute_cost_plus(pricing_config, PricingInput(material_type="WOOD", material_g=100))

        assert breakdown.material_cost == 0

    def test_vat_included_when_configured(self, pricing_config):
        config = pricing_config.model_copy(update={
            "fees": pricing_config.fees.model_copy(update={"include_vat_in_price": True})
        })

        breakdown = compute_cost_plus(config, PricingInput(material_g=50, print_time_min=120))

        assert breakdown.fees.vat == pytest.approx(0.2)
        assert breakdown.fees.total_pct == pytest.approx(0.28)
        assert breakdown.price_before_round == pytest.approx(115.83 / 0.72)

    def test_min_price_floor(self, pricing_config):
        """Tiny items still cost at least min_price."""
        config = pricing_config.model_copy(update={
            "labor": pricing_config.labor.model_copy(update={"hourly_rate": 0}),
            "rounding": pricing_config.rounding.model_copy(update={"min_price": 49}),
        })

        breakdown = compute_cost_plus(config, PricingInput(material_g=1))

        assert breakdown.price_final == 49

    def test_shipping_only_when_included(self, pricing_config):
        excluded = compute_cost_plus(pricing_config, PricingInput(shipping_cost=80))
        included = compute_cost_plus(
            pricing_config,
            PricingInput(shipping_included=True, shipping_cost=80)
        )

        assert excluded.shipping_cost == 0
        assert included.shipping_cost == 80

    def test_product_margin_override(self, pricing_config):
        breakdown = compute_cost_plus(
            pricing_config,
            PricingInput(material_g=50, print_time_min=120, target_margin_pct=0)
        )

        assert breakdown.margin == 0
        assert breakdown.base_before_fees == pytest.approx(89.1)

    def test_fees_near_100_percent_do_not_divide_by_zero(self, pricing_config):
        config = pricing_config.model_copy(update={
            "fees": pricing_config.fees.model_copy(update={"marketplace_pct": 0.92})
        })

        breakdown = compute_cost_plus(config, PricingInput(material_g=50))

        assert breakdown.price_final > 0


class TestPricingInputFromAttributes:
    """Tests for PricingInput.from_attributes()"""

    def test_coerces_attribute_values(self):
        data = PricingInput.from_attributes({
            "material_type": "petg",
            "material_g": "50,5",
            "print_time_min": 90,
            "postprocess_min": "n/a",
            "shipping_included": "TRUE",
        })

        assert data.material_type == "PETG"
        assert data.material_g == 50.5
        assert data.print_time_min == 90
        assert data.postprocess_min is None
        assert data.shipping_included is True

    def test_defaults(self):
        data = PricingInput.from_attributes(None)

        assert data.material_type == "PLA"
        assert data.shipping_included is False


# ===================
# CONFIG
# ===================

class TestLoadPricingConfig:
    """Tests for load_pricing_config()"""

    def test_loads_bundled_config(self):
        config = load_pricing_config(BUNDLED_CONFIG)

        assert config.currency == "UAH"
        assert config.rounding.strategy == RoundingStrategy.NEAREST_9
        assert config.price_per_kg("PLA") == 650

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "pricing.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(PricingConfigError):
            load_pricing_config(path)

    def test_schema_violation(self, tmp_path):
        path = tmp_path / "pricing.json"
        path.write_text(json.dumps({"currency": "UAH"}), encoding="utf-8")

        with pytest.raises(PricingConfigError):
            load_pricing_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(PricingConfigError):
            load_pricing_config(tmp_path / "missing.json")


# ===================
# SERVICE
# ===================

class TestPricingServiceReprice:
    """Tests for PricingService.reprice_catalog()"""

    def test_reprices_cost_plus_products_only(self, mock_db, mock_supabase, pricing_config):
        # Arrange
        mock_supabase.set_table_data("products", [
            ProductFactory.create_cost_plus(id=1, sku="A", price=1),
            ProductFactory.create(id=2, sku="B", price=49.99, attributes={"material_g": 50}),
        ])
        service = PricingService(pricing_config)

        # Act
        report = service.reprice_catalog()

        # Assert
        assert report.scanned == 1
        assert report.repriced == 1
        products = {p["sku"]: p for p in mock_supabase.rows("products")}
        assert products["A"]["price"] == 130
        assert products["A"]["pricing"]["price_final"] == 130
        assert products["A"]["pricing_method"] == "cost_plus"
        assert products["B"]["price"] == 49.99
        assert products["B"]["pricing"] is None

    def test_pages_through_catalog(self, mock_db, mock_supabase, pricing_config):
        mock_supabase.set_table_data("products", [
            ProductFactory.create_cost_plus(id=i, sku=f"S{i}") for i in range(1, 6)
        ])

        report = PricingService(pricing_config).reprice_catalog(page_size=2)

        assert report.scanned == 5
        assert report.repriced == 5

    def test_database_error(self, mock_db, mock_supabase, pricing_config):
        mock_supabase.fail("products", "select")

        with pytest.raises(DatabaseError):
            PricingService(pricing_config).reprice_catalog()


class TestPricingServiceQuote:
    """Tests for PricingService.quote()"""

    def test_quote_does_not_write(self, mock_db, mock_supabase, pricing_config):
        breakdown = PricingService(pricing_config).quote(PricingInput(material_g=50, print_time_min=120))

        assert breakdown.price_final == 130
        assert mock_supabase.calls == []

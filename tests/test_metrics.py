"""Tests for the channel metrics calculator."""

import math

import pytest

from budget_genie.config import BudgetGenieConfig, MetricsConfig, set_config
from budget_genie.contracts import (
    BuyingModel,
    CPMConfig,
    Channel,
    ChannelFamily,
    GlobalMultipliers,
    Tier,
)
from budget_genie.engine import metrics as metrics_module
from budget_genie.engine.metrics import (
    blended_metrics,
    category_totals,
    compute_metrics,
    with_metrics,
)
from conftest import make_channel


class TestFunnels:
    """Test the per-model funnels with default rates (CTR 1%, CR 2.5%, value 150)."""

    def test_cpm_funnel(self):
        m = compute_metrics(make_channel("cpm", model="CPM", price=10.0), 1000)

        assert m.impressions == pytest.approx(100_000)
        assert m.clicks == pytest.approx(1000)
        assert m.conversions == pytest.approx(25)
        assert m.cpa == pytest.approx(40)
        assert m.revenue == pytest.approx(3750)
        assert m.roas == pytest.approx(3.75)

    def test_cpc_funnel_back_derives_impressions(self):
        m = compute_metrics(make_channel("cpc", model="CPC", price=2.0), 1000)

        assert m.clicks == pytest.approx(500)
        assert m.conversions == pytest.approx(12.5)
        assert m.impressions == pytest.approx(50_000)
        assert m.cpa == pytest.approx(80)

    def test_cpa_funnel(self):
        m = compute_metrics(make_channel("cpa", model="CPA", price=50.0), 1000)

        assert m.conversions == pytest.approx(20)
        assert m.clicks == pytest.approx(800)
        assert m.impressions == pytest.approx(80_000)
        assert m.revenue == pytest.approx(3000)
        assert m.roas == pytest.approx(3.0)

    def test_rev_share_funnel(self):
        ch = make_channel("rs", model="REV_SHARE", price=0.0, rev_share_pct=20)
        m = compute_metrics(ch, 3000)

        # 20% of 150 per conversion
        assert m.conversions == pytest.approx(100)
        assert m.revenue == pytest.approx(15_000)
        assert m.roas == pytest.approx(5.0)

    def test_hybrid_funnel(self):
        ch = make_channel("hy", model="HYBRID", price=20.0, rev_share_pct=20)
        m = compute_metrics(ch, 1000)

        assert m.conversions == pytest.approx(20)
        assert m.cpa == pytest.approx(50)

    def test_flat_fee_spends_its_price(self):
        """Flat fee spend is the fee, whatever spend is passed."""
        ch = make_channel("ff", model="FLAT_FEE", price=2000.0)
        m = compute_metrics(ch, 500)

        assert m.spend == pytest.approx(2000)
        assert m.clicks == pytest.approx(1000)
        assert m.conversions == pytest.approx(25)
        assert m.cpa == pytest.approx(80)

    def test_retainer_uses_traffic_per_unit(self):
        ch = make_channel("seo", model="RETAINER", price=4000.0, traffic_per_unit=4000)
        m = compute_metrics(ch, 0)

        assert m.spend == pytest.approx(4000)
        assert m.clicks == pytest.approx(4000)
        assert m.conversions == pytest.approx(100)

    def test_unit_based_funnel(self):
        ch = make_channel("nl", model="UNIT_BASED", price=100.0, reach_per_unit=10_000)
        m = compute_metrics(ch, 1000)

        assert m.impressions == pytest.approx(100_000)
        assert m.conversions == pytest.approx(25)

    def test_manual_input(self):
        ch = make_channel("man", model="MANUAL_INPUT", price=0.0, conversions=10, revenue=5000)
        m = compute_metrics(ch, 1000)

        assert m.conversions == pytest.approx(10)
        assert m.cpa == pytest.approx(100)
        assert m.roas == pytest.approx(5.0)

    def test_estimated_roas_drives_revenue(self):
        ch = make_channel("cpm", model="CPM", price=10.0, estimated_roas=4.0)
        m = compute_metrics(ch, 1000)

        assert m.revenue == pytest.approx(4000)

    def test_saturation_ceiling_halves_efficiency(self):
        ch = make_channel("cpm", model="CPM", price=10.0, estimated_roas=4.0, saturation_ceiling=1000)
        m = compute_metrics(ch, 1000)

        assert m.revenue == pytest.approx(2000)


class TestMultipliersAndOverrides:
    """Test global multipliers and per-channel overrides."""

    def test_spend_multiplier(self):
        ch = make_channel("cpm", price=10.0)
        m = compute_metrics(ch, 1000, GlobalMultipliers(spend_multiplier=2.0))

        assert m.spend == pytest.approx(2000)
        assert m.impressions == pytest.approx(200_000)

    def test_ctr_bump(self):
        ch = make_channel("cpm", price=10.0)
        m = compute_metrics(ch, 1000, GlobalMultipliers(ctr_bump=0.5))

        assert m.ctr == pytest.approx(1.5)
        assert m.clicks == pytest.approx(1500)

    def test_negative_ctr_bump_floors_at_zero(self):
        ch = make_channel("cpm", price=10.0)
        m = compute_metrics(ch, 1000, GlobalMultipliers(ctr_bump=-5))

        assert m.ctr == 0
        assert m.clicks == 0
        assert m.cpa is None

    def test_global_cpm_override(self):
        ch = make_channel("cpm", price=10.0)
        m = compute_metrics(ch, 1000, GlobalMultipliers(cpm_override=20))

        assert m.impressions == pytest.approx(50_000)

    def test_channel_override_beats_global(self):
        ch = make_channel("cpm", price=10.0, overrides={"cpm": 5.0, "cpa": 99.0})
        m = compute_metrics(ch, 1000, GlobalMultipliers(cpm_override=20))

        assert m.impressions == pytest.approx(200_000)
        assert m.cpa == pytest.approx(99)

    def test_player_value(self):
        ch = make_channel("cpa", model="CPA", price=50.0)
        m = compute_metrics(ch, 1000, GlobalMultipliers(player_value=300))

        assert m.revenue == pytest.approx(6000)

    def test_player_value_default_from_config(self):
        set_config(BudgetGenieConfig(metrics=MetricsConfig(default_player_value=300)))
        ch = make_channel("cpa", model="CPA", price=50.0)
        m = compute_metrics(ch, 5000)

        assert m.conversions == pytest.approx(100)
        assert m.revenue == pytest.approx(30_000)
        assert GlobalMultipliers().player_value == 300


class TestSafety:
    """Test that the calculator never raises or divides by zero."""

    def test_zero_spend(self):
        """Zero spend gives no CPA and finite ROAS."""
        for model in ("CPM", "CPC", "CPA", "CPL", "HYBRID", "UNIT_BASED"):
            m = compute_metrics(make_channel("x", model=model, price=10.0), 0)

            assert m.cpa is None
            assert m.impressions == 0
            assert math.isfinite(m.roas)

    def test_zero_price(self):
        for model in ("CPM", "CPC", "CPA", "REV_SHARE", "UNIT_BASED"):
            m = compute_metrics(make_channel("x", model=model, price=0.0), 1000)

            assert all(math.isfinite(v) for v in (m.impressions, m.clicks, m.conversions, m.roas))

    def test_garbage_numbers_coerced(self):
        ch = make_channel("x", price="not-a-number", ctr=float("nan"), conversion_rate=float("inf"))

        assert ch.type_config.price == 0
        assert ch.type_config.ctr == 0
        assert ch.type_config.conversion_rate == 0
        assert compute_metrics(ch, 1000).conversions == 0

    def test_negative_config_values_clamped(self):
        """Negative rates and prices never turn into negative volumes or revenue."""
        ch = make_channel("bad", 50, conversion_rate=-5.0, aov=-150.0, overrides={"roas": -2.0})

        assert ch.type_config.conversion_rate == 0
        assert ch.type_config.aov == 0
        assert ch.type_config.overrides.roas == 0

        m = compute_metrics(ch, 5000)
        assert m.conversions == 0
        assert m.revenue == 0
        assert m.roas == 0

    def test_negative_price_clamped(self):
        for model in ("CPM", "CPC", "CPA", "UNIT_BASED"):
            m = compute_metrics(make_channel("x", model=model, price=-10.0), 1000)

            assert m.impressions >= 0
            assert m.conversions >= 0
            assert m.revenue >= 0

    def test_unvalidated_negative_rates_clamped(self):
        """Configs built without validation are clamped at metrics time."""
        raw = CPMConfig.model_construct(price=10.0, conversion_rate=-5.0, estimated_roas=-7.5)
        ch = make_channel("bad").model_copy(update={"type_config": raw})

        m = compute_metrics(ch, 5000)

        assert m.impressions == pytest.approx(500_000)
        assert m.conversions == 0
        assert m.revenue == 0
        assert m.roas == 0
        assert m.conversion_rate == 0

    def test_funnel_error_returns_zero_metrics(self, monkeypatch):
        def broken(channel, spend, rates):
            raise RuntimeError("boom")

        monkeypatch.setitem(metrics_module._FUNNELS, BuyingModel.CPM, broken)
        m = compute_metrics(make_channel("x"), 1000)

        assert m.spend == 0
        assert m.cpa is None


class TestChannelRecord:
    """Test channel validation and inference."""

    def test_infers_family_and_model_from_name(self):
        ch = Channel(id="x", name="Partner Network RevShare")

        assert ch.family == ChannelFamily.AFFILIATE
        assert ch.buying_model == BuyingModel.REV_SHARE

    def test_flat_fee_defaults_to_fixed_tier(self):
        ch = Channel(id="x", name="Influencer Pack")

        assert ch.buying_model == BuyingModel.FLAT_FEE
        assert ch.tier == Tier.FIXED

    def test_camel_case_input(self):
        ch = Channel.model_validate({
            "id": "g",
            "name": "Google",
            "allocationPct": 40,
            "isActive": False,
            "typeConfig": {"buyingModel": "CPC", "price": 2, "conversionRate": 3},
        })

        assert ch.allocation_pct == 40
        assert not ch.is_active
        assert ch.buying_model == BuyingModel.CPC
        assert ch.type_config.conversion_rate == 3

    def test_allocation_clamped(self):
        assert make_channel("x", 150).allocation_pct == 100
        assert make_channel("x", -5).allocation_pct == 0


class TestAggregation:
    """Test warnings and plan-level totals."""

    def test_target_warnings(self):
        row = with_metrics(
            make_channel("x", model="CPA", price=80.0),
            1000,
            GlobalMultipliers(cpa_target=50, roas_target=5),
        )

        assert row.above_cpa_target
        assert row.below_roas_target
        assert len(row.warnings) == 2

    def test_blended_skips_inactive(self):
        rows = [
            with_metrics(make_channel("a", price=10.0), 1000),
            with_metrics(make_channel("b", price=10.0, active=False), 1000),
        ]
        blended = blended_metrics(rows)

        assert blended.total_spend == pytest.approx(1000)
        assert blended.total_conversions == pytest.approx(25)
        assert blended.blended_cpa == pytest.approx(40)

    def test_blended_without_conversions(self):
        blended = blended_metrics([with_metrics(make_channel("a"), 0)])

        assert blended.blended_cpa is None
        assert blended.blended_roas == 0

    def test_category_totals(self):
        rows = [
            with_metrics(make_channel("a", 60, category="Paid Search"), 600),
            with_metrics(make_channel("b", 40, category="Paid Search"), 400),
        ]
        totals = category_totals(rows)

        assert totals["Paid Search"]["spend"] == pytest.approx(1000)
        assert totals["Paid Search"]["percentage"] == pytest.approx(100)

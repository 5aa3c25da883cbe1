"""Tests for reports and scenario planning."""

import pandas as pd
import pytest

from budget_genie.config import BudgetGenieConfig, ScenarioConfig, StorageConfig, set_config
from budget_genie.plan import MediaPlan
from budget_genie.reporting import (
    ChannelReportSchema,
    category_frame,
    channel_report,
    export_csv,
    summary_frame,
)
from budget_genie.scenarios import (
    compare_scenarios,
    compare_strategies,
    compute_efficiency_frontier,
    create_budget_scenarios,
)
from conftest import make_channel


class TestChannelReport:
    """Test the per-channel report frame."""

    def test_one_row_per_channel(self, sample_plan):
        df = channel_report(sample_plan)

        assert list(df["channel_id"]) == [ch.id for ch in sample_plan.channels]
        assert df["allocation_pct"].sum() == pytest.approx(100)

    def test_values(self, sample_plan):
        df = channel_report(sample_plan).set_index("channel_id")

        assert df.loc["google-search", "spend"] == pytest.approx(40_000)
        assert df.loc["google-search", "conversions"] == pytest.approx(500)
        assert df.loc["seo-retainer", "spend"] == pytest.approx(5000)
        assert df.loc["seo-retainer", "buying_model"] == "RETAINER"

    def test_schema_validates(self, sample_plan):
        df = channel_report(sample_plan)

        ChannelReportSchema.validate(df)

    def test_missing_cpa_is_nan(self):
        plan = MediaPlan(total_budget=0, channels=[make_channel("a", 100)])
        df = channel_report(plan)

        assert pd.isna(df.loc[0, "cpa"])

    def test_negative_config_does_not_break_report(self):
        """One channel with a negative conversion rate still validates."""
        plan = MediaPlan(
            total_budget=10_000,
            channels=[make_channel("bad", 50, conversion_rate=-5.0), make_channel("ok", 50)],
        )
        df = channel_report(plan).set_index("channel_id")

        assert df.loc["bad", "conversions"] == 0
        assert df.loc["bad", "revenue"] == 0
        assert df.loc["ok", "conversions"] > 0
        assert (df[["conversions", "revenue", "roas"]] >= 0).all().all()

    def test_warnings_column(self, sample_plan):
        df = channel_report(sample_plan.with_multipliers(cpa_target=50)).set_index("channel_id")

        # CPA 60 and CPA 80 against a target of 50
        assert "exceeds target" in df.loc["affiliate-cpa", "warnings"]
        assert "CPA 80" in df.loc["google-search", "warnings"]


class TestSummary:
    """Test plan totals."""

    def test_summary_frame(self, sample_plan):
        summary = summary_frame(sample_plan).iloc[0]

        assert summary["plan"] == "Q3 Launch"
        assert summary["active_channels"] == 4
        assert summary["total_spend"] == pytest.approx(95_000)
        assert summary["allocation_total"] == pytest.approx(100)

    def test_category_frame_sorted_by_spend(self, sample_plan):
        df = category_frame(sample_plan)

        assert df.iloc[0]["category"] == "Paid Search"
        assert list(df["spend"]) == sorted(df["spend"], reverse=True)


class TestExport:
    """Test CSV export."""

    def test_export_to_path(self, sample_plan, tmp_path):
        path = export_csv(sample_plan, tmp_path / "out" / "plan.csv")

        df = pd.read_csv(path)
        assert len(df) == 4
        assert "roas" in df.columns

    def test_export_default_location(self, sample_plan, tmp_path):
        set_config(BudgetGenieConfig(storage=StorageConfig(outputs_path=tmp_path / "outputs")))
        path = export_csv(sample_plan)

        assert path == tmp_path / "outputs" / "q3_launch.csv"
        assert path.exists()


class TestScenarios:
    """Test what-if scenario generation."""

    def test_budget_scenarios(self, sample_plan):
        scenarios = create_budget_scenarios(sample_plan)

        assert [s.name for s in scenarios][:2] == ["Current", "Budget (70%)"]
        assert len(scenarios) == 6
        assert scenarios[1].total_budget == pytest.approx(70_000)

    def test_budget_scenarios_from_config(self, sample_plan):
        set_config(BudgetGenieConfig(scenarios=ScenarioConfig(budget_multipliers=[0.5, 2.0])))
        scenarios = create_budget_scenarios(sample_plan)

        assert [s.total_budget for s in scenarios] == [100_000, 50_000, 200_000]

    def test_more_budget_more_revenue(self, sample_plan):
        scenarios = create_budget_scenarios(sample_plan, budget_multipliers=[0.5, 1.5])

        assert scenarios[2].expected_revenue > scenarios[1].expected_revenue

    def test_optimized_scenarios(self, sample_plan):
        plan = sample_plan.with_multipliers(cpa_target=50)
        scenarios = create_budget_scenarios(plan, budget_multipliers=[1.0], optimize=True)

        assert scenarios[1].name == "Optimized (100%)"
        assert sum(scenarios[1].allocation.values()) == pytest.approx(100)

    def test_compare_strategies(self, sample_plan):
        scenarios = compare_strategies(sample_plan, ["balanced", "affiliate_dominant"])

        assert [s.name for s in scenarios] == ["Current", "balanced", "affiliate_dominant"]
        assert scenarios[1].allocation["google-search"] == pytest.approx(25)

    def test_compare_scenarios_frame(self, sample_plan):
        df = compare_scenarios(create_budget_scenarios(sample_plan, budget_multipliers=[1.0]))

        assert len(df) == 2
        assert "google-search_pct" in df.columns
        assert df["revenue_vs_base"].iloc[0] == pytest.approx(0)

    def test_efficiency_frontier(self, sample_plan):
        df = compute_efficiency_frontier(sample_plan, (50_000, 150_000), n_points=5)

        assert list(df["budget"]) == pytest.approx([50_000, 75_000, 100_000, 125_000, 150_000])
        assert "marginal_roas" in df.columns
        assert df["revenue"].is_monotonic_increasing

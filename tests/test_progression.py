"""Tests for multi-month budget progression."""

from datetime import date

import pytest

from budget_genie.config import BudgetGenieConfig, ProgressionConfig, set_config
from budget_genie.exceptions import UnknownStrategyError
from budget_genie.plan import MediaPlan
from budget_genie.progression import (
    MonthPlan,
    PlanningGoal,
    ProgressionPattern,
    ProgressionSummary,
    apply_pattern,
    build_months,
    month_label,
    month_metrics,
    plan_metrics,
    progression_budgets,
    rank_patterns,
    score_summary,
)
from conftest import make_channel


@pytest.fixture
def profit_plan():
    """A 5000 retainer with no revenue plus a CPA channel returning 2x its spend."""
    return MediaPlan(
        total_budget=10_000,
        channels=[
            make_channel("seo", 10, model="RETAINER", price=5000.0, aov=0.0),
            make_channel("cpa", 90, model="CPA", price=50.0, aov=100.0),
        ],
    )


@pytest.fixture
def three_months():
    return [
        MonthPlan(index=0, label="m0", budget=5000),
        MonthPlan(index=1, label="m1", budget=10_000),
        MonthPlan(index=2, label="m2", budget=20_000),
    ]


class TestProgressionBudgets:
    """Test the budget curve of every pattern."""

    def test_linear(self):
        budgets = progression_budgets("linear", 50_000, 6)

        assert budgets == [50_000, 55_000, 60_000, 65_000, 70_000, 75_000]

    def test_exponential(self):
        budgets = progression_budgets(ProgressionPattern.EXPONENTIAL, 50_000, 6)

        assert budgets[:4] == [50_000, 55_000, 60_500, 66_550]
        assert budgets[5] == 80_526

    def test_u_shaped(self):
        """Full budget at both ends, the configured dip in the middle."""
        budgets = progression_budgets("u-shaped", 50_000, 5)

        assert budgets == [50_000, 38_750, 35_000, 38_750, 50_000]

    def test_u_shaped_single_month(self):
        assert progression_budgets("u-shaped", 50_000, 1) == [50_000]

    def test_inverse_u(self):
        """Grows until a third of the way in, then declines."""
        budgets = progression_budgets("inverse-u", 50_000, 6)

        assert budgets == [50_000, 55_000, 60_000, 54_000, 48_000, 42_000]

    def test_inverse_u_never_negative(self):
        budgets = progression_budgets("inverse-u", 50_000, 6, decline_rate=50)

        assert budgets == [50_000, 55_000, 60_000, 30_000, 0, 0]

    def test_seasonal(self):
        budgets = progression_budgets("seasonal", 50_000, 6)

        assert budgets == [50_000, 75_000, 50_000, 50_000, 75_000, 50_000]

    def test_seasonal_custom_peaks(self):
        budgets = progression_budgets("seasonal", 10_000, 4, peak_months=[0, 3], peak_multiplier=2)

        assert budgets == [20_000, 10_000, 10_000, 20_000]

    def test_step(self):
        budgets = progression_budgets("step", 50_000, 7)

        assert budgets == [50_000] * 3 + [75_000] * 3 + [100_000]

    def test_aggressive_launch(self):
        """Launch burst decays back to the base budget by the stabilize month."""
        budgets = progression_budgets("aggressive-launch", 50_000, 5)

        assert budgets == [125_000, 100_000, 75_000, 50_000, 50_000]

    def test_flat(self):
        assert progression_budgets("flat", 50_000, 4) == [50_000] * 4

    def test_growth_rate_override(self):
        budgets = progression_budgets("linear", 10_000, 3, growth_rate=50)

        assert budgets == [10_000, 15_000, 20_000]

    def test_params_from_config(self):
        set_config(BudgetGenieConfig(progression=ProgressionConfig(growth_rate=20)))

        assert progression_budgets("linear", 10_000, 3) == [10_000, 12_000, 14_000]

    @pytest.mark.parametrize("pattern", [p.value for p in ProgressionPattern])
    def test_whole_and_non_negative(self, pattern):
        budgets = progression_budgets(pattern, 33_333.33, 9, growth_rate=-30)

        assert len(budgets) == 9
        assert all(b >= 0 for b in budgets)
        assert all(b == int(b) for b in budgets)

    def test_zero_months(self):
        assert progression_budgets("linear", 50_000, 0) == []

    def test_unknown_pattern(self):
        with pytest.raises(UnknownStrategyError) as exc:
            progression_budgets("zigzag", 50_000, 3)
        assert "aggressive-launch" in exc.value.available


class TestMonths:
    """Test month generation and re-budgeting."""

    def test_build_months_with_soft_launch(self):
        months = build_months("flat", start=date(2025, 3, 1))

        assert len(months) == 7
        assert months[0].is_soft_launch
        assert months[0].label == "March 2025 (Soft Launch)"
        assert months[1].label == "April 2025"
        assert months[-1].label == "September 2025"
        assert all(m.budget == 50_000 for m in months)

    def test_build_months_without_soft_launch(self):
        months = build_months("linear", start=date(2025, 1, 1), include_soft_launch=False, planning_months=4)

        assert [m.budget for m in months] == [50_000, 55_000, 60_000, 65_000]
        assert not any(m.is_soft_launch for m in months)

    def test_planning_months_clamped(self):
        assert len(build_months(planning_months=20, include_soft_launch=False)) == 12
        assert len(build_months(planning_months=1, include_soft_launch=False)) == 3

    def test_label_rolls_over_year(self):
        assert month_label(date(2025, 11, 1), 2) == "January 2026"

    def test_apply_pattern_resets_multipliers(self, three_months):
        months = [MonthPlan(index=m.index, label=m.label, budget=m.budget, budget_multiplier=2.0) for m in three_months]
        updated = apply_pattern(months, "step", base_budget=8000, step_size=1)

        assert [m.budget for m in updated] == [8000, 12_000, 16_000]
        assert all(m.budget_multiplier == 1.0 for m in updated)
        assert [m.label for m in updated] == ["m0", "m1", "m2"]
        assert months[0].budget_multiplier == 2.0


class TestMonthMetrics:
    """Test evaluating the plan at one month's budget."""

    def test_month_metrics(self, profit_plan):
        m = month_metrics(profit_plan, MonthPlan(index=0, label="m0", budget=10_000))

        # retainer 5000 plus 90% of 10000 on CPA
        assert m.spend == pytest.approx(14_000)
        assert m.conversions == pytest.approx(180 + 25)
        assert m.revenue == pytest.approx(18_000)

    def test_budget_multiplier(self, profit_plan):
        m = month_metrics(profit_plan, MonthPlan(index=0, label="m0", budget=10_000, budget_multiplier=2.0))

        assert m.budget == 20_000
        assert m.spend == pytest.approx(23_000)

    def test_month_spend_multiplier_overrides_plan(self, profit_plan):
        month = MonthPlan(index=0, label="m0", budget=10_000, spend_multiplier=0.5)
        m = month_metrics(profit_plan, month)

        assert m.spend == pytest.approx(5000 + 4500)
        assert profit_plan.multipliers.spend_multiplier == 1.0

    def test_channel_allocations_untouched(self, profit_plan):
        month_metrics(profit_plan, MonthPlan(index=0, label="m0", budget=99_000))

        assert profit_plan.total_budget == 10_000
        assert profit_plan.channel("cpa").allocation_pct == 90


class TestPlanMetrics:
    """Test rolling months up into plan totals."""

    def test_profit_and_break_even(self, profit_plan, three_months):
        summary = plan_metrics(profit_plan, three_months)

        assert [m.net_profit for m in summary.months] == pytest.approx([-1850, 1300, 7600])
        assert [m.cumulative_profit for m in summary.months] == pytest.approx([-1850, -550, 7050])
        assert summary.break_even_month == 2

    def test_totals(self, profit_plan, three_months):
        summary = plan_metrics(profit_plan, three_months)

        assert summary.total_budget == pytest.approx(46_500)
        assert summary.total_revenue == pytest.approx(63_000)
        assert summary.operating_costs == pytest.approx(9450)
        assert summary.net_profit == pytest.approx(7050)
        assert summary.total_conversions == pytest.approx(630 + 75)
        assert summary.avg_monthly_budget == pytest.approx(15_500)
        assert summary.avg_cpa == pytest.approx(46_500 / 705)
        assert summary.avg_roas == pytest.approx(63_000 / 46_500)

    def test_operating_cost_pct(self, profit_plan, three_months):
        summary = plan_metrics(profit_plan, three_months, operating_cost_pct=0)

        assert summary.operating_costs == 0
        assert summary.net_profit == pytest.approx(63_000 - 46_500)
        assert summary.break_even_month == 1

    def test_never_breaks_even(self, three_months):
        plan = MediaPlan(channels=[make_channel("seo", 100, model="RETAINER", price=5000.0, aov=0.0)])
        summary = plan_metrics(plan, three_months)

        assert summary.break_even_month is None
        assert summary.net_profit == pytest.approx(-15_000)

    def test_no_months(self, profit_plan):
        summary = plan_metrics(profit_plan, [])

        assert summary.months == []
        assert summary.avg_cpa is None
        assert summary.avg_roas == 0

    def test_to_frame(self, profit_plan, three_months):
        df = plan_metrics(profit_plan, three_months).to_frame()

        assert list(df["label"]) == ["m0", "m1", "m2"]
        assert "cumulative_profit" in df.columns


class TestPatternRanking:
    """Test scoring candidate patterns against a goal."""

    def test_rank_by_revenue(self, profit_plan):
        months = build_months(start=date(2025, 3, 1), base_monthly_budget=10_000)
        results = rank_patterns(profit_plan, months, PlanningGoal.MAXIMIZE_REVENUE)

        assert [r.pattern for r in results] == [
            ProgressionPattern.AGGRESSIVE_LAUNCH,
            ProgressionPattern.STEP,
            ProgressionPattern.EXPONENTIAL,
        ]
        assert results[0].summary.pattern == "aggressive-launch"
        assert results[0].score >= results[1].score >= results[2].score
        assert all(r.confidence <= 95 for r in results)

    def test_rank_explicit_patterns(self, profit_plan, three_months):
        results = rank_patterns(profit_plan, three_months, "maximize-profit", patterns=["flat", "linear"], top=5)

        assert len(results) == 2
        assert "ROAS" in results[0].reasoning

    def test_score_breakeven(self):
        assert score_summary(ProgressionSummary(months=[], break_even_month=2), "breakeven-fastest") == 100
        assert score_summary(ProgressionSummary(months=[]), "breakeven-fastest") == 0

    def test_score_cac_without_conversions(self):
        assert score_summary(ProgressionSummary(months=[]), "minimize-cac") == 0

    def test_unknown_goal(self, profit_plan, three_months):
        with pytest.raises(UnknownStrategyError):
            rank_patterns(profit_plan, three_months, "get-rich")

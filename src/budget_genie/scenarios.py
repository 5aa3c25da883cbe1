"""
Scenario planning utilities for media plans.

Create and compare what-if variants of a plan (different budget levels,
different strategies) to support strategic planning.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from loguru import logger

from budget_genie.config import get_config
from budget_genie.engine.strategies import StrategyId
from budget_genie.plan import MediaPlan


@dataclass
class BudgetScenario:
    """
    A plan variant for comparison.
    """

    name: str
    description: str
    total_budget: float
    allocation: dict[str, float]
    spend: dict[str, float]
    expected_conversions: float
    expected_revenue: float
    expected_roas: float
    blended_cpa: float | None = None

    @classmethod
    def from_plan(cls, plan: MediaPlan, name: str, description: str) -> "BudgetScenario":
        blended = plan.blended()
        return cls(
            name=name,
            description=description,
            total_budget=plan.total_budget,
            allocation={ch.id: ch.allocation_pct for ch in plan.active_channels},
            spend=plan.spend(),
            expected_conversions=blended.total_conversions,
            expected_revenue=blended.total_revenue,
            expected_roas=blended.blended_roas,
            blended_cpa=blended.blended_cpa,
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "total_budget": self.total_budget,
            "allocation": self.allocation,
            "spend": self.spend,
            "expected_conversions": self.expected_conversions,
            "expected_revenue": self.expected_revenue,
            "expected_roas": self.expected_roas,
            "blended_cpa": self.blended_cpa,
        }


def create_budget_scenarios(
    plan: MediaPlan,
    budget_multipliers: list[float] | None = None,
    optimize: bool = False,
) -> list[BudgetScenario]:
    """
    Create scenarios at different budget levels.

    Args:
        plan: Current plan (becomes the "Current" scenario)
        budget_multipliers: Multipliers of the current budget (config default)
        optimize: Run one target-optimizer pass on every variant

    Returns:
        List of BudgetScenario objects, "Current" first
    """
    if budget_multipliers is None:
        budget_multipliers = get_config().scenarios.budget_multipliers

    scenarios = [BudgetScenario.from_plan(plan, "Current", "Current allocation")]

    for mult in budget_multipliers:
        variant = plan.with_budget(plan.total_budget * mult)
        label = "Optimized" if optimize else "Budget"
        if optimize:
            variant, _ = variant.optimize()

        scenarios.append(BudgetScenario.from_plan(
            variant,
            name=f"{label} ({mult:.0%})",
            description=f"{label} allocation at {mult:.0%} of current budget",
        ))

    logger.info(f"Created {len(scenarios)} budget scenarios around {plan.total_budget:,.0f}")
    return scenarios


def compare_strategies(
    plan: MediaPlan,
    strategy_ids: list[StrategyId | str] | None = None,
) -> list[BudgetScenario]:
    """
    Apply every strategy to the current plan and collect the outcomes.
    """
    strategy_ids = strategy_ids or list(StrategyId)
    scenarios = [BudgetScenario.from_plan(plan, "Current", "Current allocation")]

    for sid in strategy_ids:
        sid = StrategyId(sid)
        variant = plan.apply_strategy(sid)
        scenarios.append(BudgetScenario.from_plan(
            variant,
            name=sid.value,
            description=f"Strategy '{sid.value}' at current budget",
        ))

    return scenarios


def compare_scenarios(
    scenarios: list[BudgetScenario],
) -> pd.DataFrame:
    """
    Create a comparison table of scenarios.

    Args:
        scenarios: List of BudgetScenario objects

    Returns:
        DataFrame comparing all scenarios
    """
    records = []

    all_channels = set()
    for s in scenarios:
        all_channels.update(s.allocation.keys())

    for scenario in scenarios:
        record = {
            "scenario": scenario.name,
            "description": scenario.description,
            "total_budget": scenario.total_budget,
            "expected_conversions": scenario.expected_conversions,
            "expected_revenue": scenario.expected_revenue,
            "expected_roas": scenario.expected_roas,
            "blended_cpa": scenario.blended_cpa,
        }

        for channel in sorted(all_channels):
            record[f"{channel}_pct"] = scenario.allocation.get(channel, 0.0)

        records.append(record)

    df = pd.DataFrame(records)

    if len(df) > 0:
        base_revenue = df["expected_revenue"].iloc[0]
        if base_revenue > 0:
            df["revenue_vs_base"] = (df["expected_revenue"] - base_revenue) / base_revenue * 100
        else:
            df["revenue_vs_base"] = 0.0

    return df


def compute_efficiency_frontier(
    plan: MediaPlan,
    budget_range: tuple[float, float] | None = None,
    n_points: int | None = None,
) -> pd.DataFrame:
    """
    Revenue and ROAS of the current weighting across a budget range.

    Args:
        plan: Plan whose weighting is scaled
        budget_range: (min_budget, max_budget); defaults to 50%-150% of current
        n_points: Number of points (config default)

    Returns:
        DataFrame with budget, conversions, revenue, roas and per-channel spend
    """
    if budget_range is None:
        budget_range = (plan.total_budget * 0.5, plan.total_budget * 1.5)
    if n_points is None:
        n_points = get_config().scenarios.frontier_points

    budgets = np.linspace(budget_range[0], budget_range[1], n_points)

    records = []

    for budget in budgets:
        variant = plan.with_budget(float(budget))
        blended = variant.blended()

        record = {
            "budget": variant.total_budget,
            "conversions": blended.total_conversions,
            "revenue": blended.total_revenue,
            "roas": blended.blended_roas,
            "blended_cpa": blended.blended_cpa,
        }

        for channel, spend in variant.spend().items():
            record[f"{channel}_spend"] = spend

        records.append(record)

    df = pd.DataFrame(records)
    if len(df) > 1:
        df["marginal_roas"] = np.gradient(df["revenue"].to_numpy(), df["budget"].to_numpy())
    return df

"""
Multi-month budget progression for media plans.

Spreads a base monthly budget over a planning horizon following a
growth pattern (linear ramp, launch burst, seasonal peaks...), evaluates
every month against a media plan and rolls the months up into plan
totals with operating costs, net profit and the break-even month.

Example:
    >>> months = build_months("aggressive-launch", start=date(2025, 3, 1))
    >>> summary = plan_metrics(plan, months)
    >>> summary.break_even_month
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd
from loguru import logger

from budget_genie.config import ProgressionConfig, get_config
from budget_genie.engine.distributor import SpendMode
from budget_genie.exceptions import UnknownStrategyError
from budget_genie.plan import MediaPlan


class ProgressionPattern(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    U_SHAPED = "u-shaped"
    INVERSE_U = "inverse-u"
    SEASONAL = "seasonal"
    STEP = "step"
    AGGRESSIVE_LAUNCH = "aggressive-launch"
    FLAT = "flat"


class PlanningGoal(str, Enum):
    MAXIMIZE_ROAS = "maximize-roas"
    MINIMIZE_CAC = "minimize-cac"
    MAXIMIZE_REVENUE = "maximize-revenue"
    MAXIMIZE_PROFIT = "maximize-profit"
    BREAKEVEN_FASTEST = "breakeven-fastest"
    BALANCED = "balanced"


# Patterns tried by rank_patterns when none are given
DEFAULT_CANDIDATES = (
    ProgressionPattern.LINEAR,
    ProgressionPattern.EXPONENTIAL,
    ProgressionPattern.AGGRESSIVE_LAUNCH,
    ProgressionPattern.FLAT,
    ProgressionPattern.STEP,
)

MIN_PLANNING_MONTHS = 3
MAX_PLANNING_MONTHS = 12


def _resolve(enum_cls: type[Enum], value: Any) -> Any:
    try:
        return enum_cls(getattr(value, "value", value))
    except ValueError:
        raise UnknownStrategyError(str(value), [e.value for e in enum_cls]) from None


def _params(params: ProgressionConfig | None, overrides: dict[str, Any]) -> ProgressionConfig:
    params = params or get_config().progression
    if not overrides:
        return params
    return ProgressionConfig.model_validate({**params.model_dump(), **overrides})


# ---------------------------------------------------------------------------
# Budget curves
# ---------------------------------------------------------------------------

def _factors(pattern: ProgressionPattern, months: int, params: ProgressionConfig) -> np.ndarray:
    i = np.arange(months, dtype=float)
    growth = params.growth_rate / 100

    if pattern == ProgressionPattern.LINEAR:
        return 1 + growth * i

    if pattern == ProgressionPattern.EXPONENTIAL:
        return (1 + growth) ** i

    if pattern == ProgressionPattern.U_SHAPED:
        mid = (months - 1) / 2
        if mid <= 0:
            return np.ones(months)
        return 1 - params.dip_factor * (1 - ((i - mid) / mid) ** 2)

    if pattern == ProgressionPattern.INVERSE_U:
        peak = params.peak_month if params.peak_month is not None else months // 3
        peak_factor = 1 + growth * peak
        falling = peak_factor * (1 - params.decline_rate / 100 * (i - peak))
        return np.where(i <= peak, 1 + growth * i, falling)

    if pattern == ProgressionPattern.SEASONAL:
        return np.where(np.isin(i, params.peak_months), params.peak_multiplier, 1.0)

    if pattern == ProgressionPattern.STEP:
        steps = np.floor(i / max(1, params.step_size))
        return 1 + params.step_increase / 100 * steps

    if pattern == ProgressionPattern.AGGRESSIVE_LAUNCH:
        launch = params.launch_multiplier
        stabilize = max(1, params.stabilize_month)
        decay = (launch - 1) * (1 - i / stabilize)
        return np.select([i == 0, i < stabilize], [launch, 1 + decay], default=1.0)

    return np.ones(months)


def progression_budgets(
    pattern: ProgressionPattern | str,
    base_budget: float,
    months: int,
    params: ProgressionConfig | None = None,
    **overrides: Any,
) -> list[float]:
    """
    Monthly budgets following ``pattern``.

    Args:
        pattern: Progression pattern id
        base_budget: Budget of an unscaled month
        months: Number of months (soft launch included)
        params: Pattern parameters (global config when omitted)
        **overrides: Individual parameters, e.g. ``growth_rate=20``

    Returns:
        One whole-currency budget per month, never below 0
    """
    pattern = _resolve(ProgressionPattern, pattern)
    params = _params(params, overrides)
    if months <= 0:
        return []

    budgets = base_budget * _factors(pattern, months, params)
    # half-up rounding to whole currency units
    budgets = np.maximum(0.0, np.floor(budgets + 0.5))
    return budgets.tolist()


# ---------------------------------------------------------------------------
# Months
# ---------------------------------------------------------------------------

@dataclass
class MonthPlan:
    """
    One month of a multi-month plan.

    ``None`` scaling fields fall back to the media plan's multipliers.
    """

    index: int
    label: str
    budget: float
    is_soft_launch: bool = False
    budget_multiplier: float = 1.0
    spend_multiplier: float | None = None
    cpm_override: float | None = None
    ctr_bump: float | None = None

    @property
    def effective_budget(self) -> float:
        return max(0.0, self.budget * self.budget_multiplier)

    def multiplier_overrides(self) -> dict[str, float]:
        values = {
            "spend_multiplier": self.spend_multiplier,
            "cpm_override": self.cpm_override,
            "ctr_bump": self.ctr_bump,
        }
        return {k: v for k, v in values.items() if v is not None}


def month_label(start: date, offset: int, is_soft_launch: bool = False) -> str:
    """``"March 2025"``, with a suffix for the soft-launch month."""
    year, month = divmod(start.month - 1 + offset, 12)
    label = date(start.year + year, month + 1, 1).strftime("%B %Y")
    return f"{label} (Soft Launch)" if is_soft_launch else label


def build_months(
    pattern: ProgressionPattern | str = ProgressionPattern.LINEAR,
    start: date | None = None,
    params: ProgressionConfig | None = None,
    **overrides: Any,
) -> list[MonthPlan]:
    """
    Generate the planning horizon with budgets following ``pattern``.

    The planning length is clamped to 3-12 months; a soft-launch month
    is prepended when ``include_soft_launch`` is set.
    """
    params = _params(params, overrides)
    start = start or date.today().replace(day=1)

    planning = min(MAX_PLANNING_MONTHS, max(MIN_PLANNING_MONTHS, params.planning_months))
    total = planning + (1 if params.include_soft_launch else 0)
    budgets = progression_budgets(pattern, params.base_monthly_budget, total, params)

    months = []
    for i, budget in enumerate(budgets):
        soft = params.include_soft_launch and i == 0
        months.append(MonthPlan(index=i, label=month_label(start, i, soft), budget=budget, is_soft_launch=soft))

    logger.info(f"Generated {total} months with the '{ProgressionPattern(pattern).value}' pattern")
    return months


def apply_pattern(
    months: list[MonthPlan],
    pattern: ProgressionPattern | str,
    base_budget: float | None = None,
    params: ProgressionConfig | None = None,
    **overrides: Any,
) -> list[MonthPlan]:
    """Re-budget existing months with a pattern; budget multipliers reset to 1."""
    params = _params(params, overrides)
    base = params.base_monthly_budget if base_budget is None else base_budget
    budgets = progression_budgets(pattern, base, len(months), params)
    return [replace(m, budget=b, budget_multiplier=1.0) for m, b in zip(months, budgets)]


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

@dataclass
class MonthMetrics:
    """Funnel totals and profit for one month."""

    index: int
    label: str
    budget: float
    spend: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    conversions: float = 0.0
    revenue: float = 0.0
    cpa: float | None = None
    roas: float = 0.0
    operating_costs: float = 0.0
    net_profit: float = 0.0
    cumulative_profit: float = 0.0

    def to_dict(self) -> dict:
        return {
            "month": self.index,
            "label": self.label,
            "budget": self.budget,
            "spend": self.spend,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "conversions": self.conversions,
            "revenue": self.revenue,
            "cpa": self.cpa,
            "roas": self.roas,
            "operating_costs": self.operating_costs,
            "net_profit": self.net_profit,
            "cumulative_profit": self.cumulative_profit,
        }


def month_metrics(
    plan: MediaPlan,
    month: MonthPlan,
    spend_mode: SpendMode | str | None = None,
) -> MonthMetrics:
    """
    Evaluate ``plan`` at one month's budget.

    The month's scaling fields override the plan multipliers; channel
    allocations are used as they are.
    """
    month_plan = plan.with_budget(month.effective_budget, redistribute=False)
    overrides = month.multiplier_overrides()
    if overrides:
        month_plan = month_plan.with_multipliers(**overrides)

    blended = month_plan.blended(spend_mode)
    return MonthMetrics(
        index=month.index,
        label=month.label,
        budget=month_plan.total_budget,
        spend=blended.total_spend,
        impressions=blended.total_impressions,
        clicks=blended.total_clicks,
        conversions=blended.total_conversions,
        revenue=blended.total_revenue,
        cpa=blended.blended_cpa,
        roas=blended.blended_roas,
    )


@dataclass
class ProgressionSummary:
    """Month-by-month metrics plus plan totals."""

    months: list[MonthMetrics]
    total_budget: float = 0.0
    total_conversions: float = 0.0
    total_revenue: float = 0.0
    operating_costs: float = 0.0
    net_profit: float = 0.0
    avg_monthly_budget: float = 0.0
    avg_cpa: float | None = None
    avg_roas: float = 0.0
    break_even_month: int | None = None
    pattern: str | None = None

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([m.to_dict() for m in self.months])

    def to_dict(self) -> dict:
        return {
            "pattern": self.pattern,
            "total_budget": self.total_budget,
            "total_conversions": self.total_conversions,
            "total_revenue": self.total_revenue,
            "operating_costs": self.operating_costs,
            "net_profit": self.net_profit,
            "avg_monthly_budget": self.avg_monthly_budget,
            "avg_cpa": self.avg_cpa,
            "avg_roas": self.avg_roas,
            "break_even_month": self.break_even_month,
        }


def plan_metrics(
    plan: MediaPlan,
    months: list[MonthPlan],
    spend_mode: SpendMode | str | None = None,
    operating_cost_pct: float | None = None,
) -> ProgressionSummary:
    """
    Roll every month up into plan totals.

    Operating costs are a share of revenue; the break-even month is the
    first whose cumulative net profit is not negative.

    Args:
        plan: Media plan providing channels, allocations and multipliers
        months: Months to evaluate, in order
        spend_mode: Spend resolution (config default when omitted)
        operating_cost_pct: Operating costs in % of revenue (config default)

    Returns:
        ProgressionSummary; ``total_budget`` is the spend actually deployed
    """
    if operating_cost_pct is None:
        operating_cost_pct = get_config().progression.operating_cost_pct

    rows = [month_metrics(plan, month, spend_mode) for month in months]
    if not rows:
        return ProgressionSummary(months=[])

    spend = np.array([r.spend for r in rows])
    revenue = np.array([r.revenue for r in rows])
    operating = revenue * operating_cost_pct / 100
    profit = revenue - spend - operating
    cumulative = np.cumsum(profit)

    for row, op, net, cum in zip(rows, operating, profit, cumulative):
        row.operating_costs = float(op)
        row.net_profit = float(net)
        row.cumulative_profit = float(cum)

    reached = np.flatnonzero(cumulative >= 0)
    total_budget = float(spend.sum())
    total_revenue = float(revenue.sum())
    total_operating = float(operating.sum())
    total_conversions = float(sum(r.conversions for r in rows))

    return ProgressionSummary(
        months=rows,
        total_budget=total_budget,
        total_conversions=total_conversions,
        total_revenue=total_revenue,
        operating_costs=total_operating,
        net_profit=total_revenue - total_budget - total_operating,
        avg_monthly_budget=total_budget / len(rows),
        avg_cpa=total_budget / total_conversions if total_conversions > 0 else None,
        avg_roas=total_revenue / total_budget if total_budget > 0 else 0.0,
        break_even_month=int(reached[0]) if reached.size else None,
    )


# ---------------------------------------------------------------------------
# Pattern ranking
# ---------------------------------------------------------------------------

@dataclass
class PatternResult:
    """One candidate pattern scored against a planning goal."""

    pattern: ProgressionPattern
    score: float
    summary: ProgressionSummary
    reasoning: str
    confidence: float


def score_summary(summary: ProgressionSummary, goal: PlanningGoal | str) -> float:
    """Score a rolled-up plan; higher is better for every goal."""
    goal = _resolve(PlanningGoal, goal)

    if goal == PlanningGoal.MAXIMIZE_ROAS:
        return summary.avg_roas * 100
    if goal == PlanningGoal.MINIMIZE_CAC:
        return 100 / summary.avg_cpa if summary.avg_cpa else 0.0
    if goal == PlanningGoal.MAXIMIZE_REVENUE:
        return summary.total_revenue / 10_000
    if goal == PlanningGoal.MAXIMIZE_PROFIT:
        return summary.net_profit / 1000
    if goal == PlanningGoal.BREAKEVEN_FASTEST:
        if summary.break_even_month is None:
            return 0.0
        return (MAX_PLANNING_MONTHS - summary.break_even_month) * 10
    return summary.avg_roas * 20 + summary.net_profit / 5000


def rank_patterns(
    plan: MediaPlan,
    months: list[MonthPlan],
    goal: PlanningGoal | str = PlanningGoal.MAXIMIZE_ROAS,
    patterns: list[ProgressionPattern | str] | None = None,
    base_budget: float | None = None,
    top: int = 3,
    spend_mode: SpendMode | str | None = None,
) -> list[PatternResult]:
    """
    Re-budget ``months`` with each candidate pattern and rank by ``goal``.

    Returns:
        The ``top`` best results, highest score first
    """
    goal = _resolve(PlanningGoal, goal)
    candidates = [_resolve(ProgressionPattern, p) for p in (patterns or DEFAULT_CANDIDATES)]

    results = []
    for pattern in candidates:
        summary = plan_metrics(plan, apply_pattern(months, pattern, base_budget), spend_mode)
        summary.pattern = pattern.value
        score = score_summary(summary, goal)
        results.append(PatternResult(
            pattern=pattern,
            score=score,
            summary=summary,
            reasoning=f"{pattern.value.replace('-', ' ')} pattern achieves {summary.avg_roas:.2f}x ROAS",
            confidence=min(95.0, 60 + score / 10),
        ))

    results.sort(key=lambda r: r.score, reverse=True)
    logger.info(f"Ranked {len(results)} patterns for '{goal.value}'")
    return results[:top]

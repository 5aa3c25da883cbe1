"""
Command-line interface for Budget-Genie.

Provides commands for:
  - Inspecting a plan and its metrics
  - Normalizing allocations and changing the budget
  - Applying strategies / presets and running the target optimizer
  - Budget and strategy scenario comparison
  - Multi-month budget progression
  - CSV export
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import pandas as pd
import typer
from loguru import logger

app = typer.Typer(
    name="budget-genie",
    help="Budget-Genie -- media budget allocation and normalization engine",
    add_completion=False,
)

PLAN_ARG = typer.Argument(..., exists=True, dir_okay=False, help="Plan file (YAML or JSON)")
CONFIG_OPT = typer.Option(None, "--config", "-c", help="Path to config.yaml")
OUTPUT_OPT = typer.Option(None, "--output", "-o", help="Write the updated plan here (default: in place)")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for every command."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def _load(plan_path: Path, config_path: Optional[Path]):
    from budget_genie.config import load_config
    from budget_genie.exceptions import BudgetGenieError
    from budget_genie.plan import MediaPlan

    load_config(config_path)
    try:
        return MediaPlan.from_file(plan_path)
    except BudgetGenieError as e:
        typer.echo(f"Error [{e.code}]: {e}", err=True)
        raise typer.Exit(1)


def _save(plan, plan_path: Path, output: Optional[Path]) -> Path:
    target = output or plan_path
    if target.suffix.lower() in (".yaml", ".yml"):
        plan.to_yaml(target)
    else:
        plan.to_json(target)
    typer.echo(f"Plan written to {target}")
    return target


def _print_frame(df: pd.DataFrame) -> None:
    with pd.option_context("display.width", 200, "display.max_columns", 30):
        typer.echo(df.to_string(index=False, float_format=lambda v: f"{v:,.2f}"))


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------

@app.command()
def show(
    plan_path: Path = PLAN_ARG,
    config_path: Optional[Path] = CONFIG_OPT,
    spend_mode: Optional[str] = typer.Option(
        None, "--spend-mode", help="Spend resolution: total, tiered, variable_pool",
    ),
):
    """Show channel allocations, metrics and plan totals."""
    from budget_genie.reporting import channel_report, summary_frame

    plan = _load(plan_path, config_path)

    typer.echo(f"{plan.name}  budget={plan.total_budget:,.2f}")
    report = channel_report(plan, spend_mode)
    _print_frame(report[["channel_id", "buying_model", "allocation_pct", "spend", "conversions", "cpa", "roas"]])

    summary = summary_frame(plan, spend_mode).iloc[0]
    cpa = summary["blended_cpa"]
    typer.echo(
        f"Total spend {summary['total_spend']:,.2f}  "
        f"conversions {summary['total_conversions']:,.1f}  "
        f"revenue {summary['total_revenue']:,.2f}  "
        f"ROAS {summary['blended_roas']:.2f}x  "
        f"CPA {'n/a' if pd.isna(cpa) else f'{cpa:,.2f}'}"
    )

    for row in plan.channels_with_metrics(spend_mode):
        for warning in row.warnings:
            typer.echo(f"  ! {row.id}: {warning}")


# ---------------------------------------------------------------------------
# normalize / set-budget
# ---------------------------------------------------------------------------

@app.command()
def normalize(
    plan_path: Path = PLAN_ARG,
    config_path: Optional[Path] = CONFIG_OPT,
    output: Optional[Path] = OUTPUT_OPT,
):
    """Rescale unlocked allocations so active channels sum to 100%."""
    plan = _load(plan_path, config_path)
    before = sum(ch.allocation_pct for ch in plan.active_channels)
    plan = plan.normalized()
    after = sum(ch.allocation_pct for ch in plan.active_channels)

    typer.echo(f"Allocation total {before:.2f}% -> {after:.2f}%")
    _save(plan, plan_path, output)


@app.command("set-budget")
def set_budget(
    plan_path: Path = PLAN_ARG,
    budget: float = typer.Option(..., "--budget", "-b", help="New total budget"),
    config_path: Optional[Path] = CONFIG_OPT,
    output: Optional[Path] = OUTPUT_OPT,
):
    """Change the total budget and redistribute by tier."""
    from budget_genie.engine.distributor import distribute

    plan = _load(plan_path, config_path)
    plan = plan.with_budget(budget)

    distribution = distribute(plan.total_budget, plan.channels)
    typer.echo(
        f"Budget {plan.total_budget:,.2f}: fixed {distribution.fixed_cost_total:,.2f}, "
        f"variable pool {distribution.variable_pool:,.2f}"
    )
    if distribution.over_budget:
        typer.echo("Warning: fixed costs exceed the total budget", err=True)
    _save(plan, plan_path, output)


# ---------------------------------------------------------------------------
# apply-strategy / optimize
# ---------------------------------------------------------------------------

@app.command("apply-strategy")
def apply_strategy(
    plan_path: Path = PLAN_ARG,
    strategy: str = typer.Option(..., "--strategy", "-s", help="Strategy or preset id"),
    config_path: Optional[Path] = CONFIG_OPT,
    output: Optional[Path] = OUTPUT_OPT,
):
    """Replace unlocked allocations using a strategy or metric preset."""
    from budget_genie.engine.presets import PresetId
    from budget_genie.exceptions import UnknownStrategyError

    plan = _load(plan_path, config_path)
    try:
        if strategy in {p.value for p in PresetId}:
            plan = plan.apply_preset(strategy)
        else:
            plan = plan.apply_strategy(strategy)
    except UnknownStrategyError as e:
        typer.echo(f"Error [{e.code}]: {e}", err=True)
        raise typer.Exit(1)

    for ch in plan.active_channels:
        typer.echo(f"  {ch.id}: {ch.allocation_pct:.2f}%{' (locked)' if ch.locked else ''}")
    _save(plan, plan_path, output)


@app.command()
def optimize(
    plan_path: Path = PLAN_ARG,
    cpa_target: Optional[float] = typer.Option(None, "--cpa-target", help="Override the CPA target"),
    roas_target: Optional[float] = typer.Option(None, "--roas-target", help="Override the ROAS target"),
    passes: int = typer.Option(1, "--passes", "-n", min=1, help="Number of optimizer passes"),
    config_path: Optional[Path] = CONFIG_OPT,
    output: Optional[Path] = OUTPUT_OPT,
):
    """Nudge allocations toward the CPA / ROAS targets."""
    plan = _load(plan_path, config_path)

    changes = {}
    if cpa_target is not None:
        changes["cpa_target"] = cpa_target
    if roas_target is not None:
        changes["roas_target"] = roas_target
    if changes:
        plan = plan.with_multipliers(**changes)

    if not plan.multipliers.has_targets:
        typer.echo("No CPA or ROAS target set; nothing to optimize")
        raise typer.Exit(0)

    for i in range(passes):
        plan, outcome = plan.optimize()
        typer.echo(f"Pass {i + 1}: {outcome.message}")
        if outcome.slashed_ids:
            typer.echo(f"  slashed: {', '.join(outcome.slashed_ids)}")
        if outcome.boosted_ids:
            typer.echo(f"  boosted: {', '.join(outcome.boosted_ids)}")
        if outcome.is_noop:
            break

    _save(plan, plan_path, output)


# ---------------------------------------------------------------------------
# scenarios
# ---------------------------------------------------------------------------

@app.command()
def scenarios(
    plan_path: Path = PLAN_ARG,
    config_path: Optional[Path] = CONFIG_OPT,
    by_strategy: bool = typer.Option(False, "--strategies", help="Compare strategies instead of budgets"),
    optimize_variants: bool = typer.Option(False, "--optimize", help="Optimize each budget variant"),
):
    """Compare what-if scenarios for a plan."""
    from budget_genie.scenarios import compare_scenarios, compare_strategies, create_budget_scenarios

    plan = _load(plan_path, config_path)

    if by_strategy:
        results = compare_strategies(plan)
    else:
        results = create_budget_scenarios(plan, optimize=optimize_variants)

    df = compare_scenarios(results)
    _print_frame(df[["scenario", "total_budget", "expected_conversions", "expected_revenue", "expected_roas"]])


# ---------------------------------------------------------------------------
# progression
# ---------------------------------------------------------------------------

@app.command()
def progression(
    plan_path: Path = PLAN_ARG,
    pattern: str = typer.Option("linear", "--pattern", "-p", help="Budget progression pattern"),
    months: Optional[int] = typer.Option(None, "--months", "-m", help="Planning months (3-12)"),
    base_budget: Optional[float] = typer.Option(None, "--base-budget", help="Base monthly budget"),
    growth_rate: Optional[float] = typer.Option(None, "--growth-rate", help="Growth in % per month"),
    soft_launch: Optional[bool] = typer.Option(None, "--soft-launch/--no-soft-launch"),
    goal: Optional[str] = typer.Option(None, "--rank", help="Rank candidate patterns by this goal"),
    config_path: Optional[Path] = CONFIG_OPT,
):
    """Project the plan over several months following a budget pattern."""
    from budget_genie.exceptions import UnknownStrategyError
    from budget_genie.progression import build_months, plan_metrics, rank_patterns

    plan = _load(plan_path, config_path)

    overrides = {}
    for key, value in (
        ("planning_months", months),
        ("base_monthly_budget", base_budget),
        ("growth_rate", growth_rate),
        ("include_soft_launch", soft_launch),
    ):
        if value is not None:
            overrides[key] = value

    try:
        month_plans = build_months(pattern, **overrides)
        summary = plan_metrics(plan, month_plans)
        ranking = rank_patterns(plan, month_plans, goal, base_budget=base_budget) if goal else []
    except UnknownStrategyError as e:
        typer.echo(f"Error [{e.code}]: {e}", err=True)
        raise typer.Exit(1)

    _print_frame(summary.to_frame()[["label", "budget", "spend", "conversions", "revenue", "net_profit", "cumulative_profit"]])
    break_even = summary.break_even_month
    typer.echo(
        f"Total spend {summary.total_budget:,.2f}  "
        f"revenue {summary.total_revenue:,.2f}  "
        f"net profit {summary.net_profit:,.2f}  "
        f"ROAS {summary.avg_roas:.2f}x  "
        f"break-even {'never' if break_even is None else month_plans[break_even].label}"
    )

    for i, result in enumerate(ranking, start=1):
        typer.echo(f"  {i}. {result.pattern.value:<18} score {result.score:,.1f}  {result.reasoning}")


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------

@app.command()
def export(
    plan_path: Path = PLAN_ARG,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="CSV destination"),
    config_path: Optional[Path] = CONFIG_OPT,
    spend_mode: Optional[str] = typer.Option(None, "--spend-mode"),
):
    """Export the channel report to CSV."""
    from budget_genie.reporting import export_csv

    plan = _load(plan_path, config_path)
    path = export_csv(plan, output, spend_mode)
    typer.echo(f"Report written to {path}")


# ---------------------------------------------------------------------------
# strategies
# ---------------------------------------------------------------------------

@app.command()
def strategies():
    """List available strategies and presets."""
    from budget_genie.engine.presets import PresetId
    from budget_genie.engine.strategies import STRATEGIES

    typer.echo("Strategies:")
    for strategy in STRATEGIES.values():
        typer.echo(f"  {strategy.id.value:<20} {strategy.description}")
    typer.echo("Presets:")
    typer.echo("  " + ", ".join(p.value for p in PresetId))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()

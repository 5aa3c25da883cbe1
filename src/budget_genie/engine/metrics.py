"""
Channel metrics calculator.

Turns a channel configuration plus a spend figure into funnel metrics
(impressions -> clicks -> conversions -> revenue).  Each buying model has
its own funnel; dispatch goes through ``_FUNNELS`` keyed on the model tag.

The calculator never raises.  Zero divisors yield 0 (or ``None`` for CPA),
and any failure inside a funnel is logged and replaced by zero metrics so
one malformed channel cannot break plan-level aggregation.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from budget_genie.config import MetricsConfig, get_config
from budget_genie.contracts import (
    BlendedMetrics,
    BuyingModel,
    Channel,
    ChannelWithMetrics,
    GlobalMultipliers,
    Metrics,
)


# Models whose revenue follows the deal terms rather than an estimated ROAS
DEAL_ECONOMICS_MODELS = frozenset({BuyingModel.CPA, BuyingModel.REV_SHARE, BuyingModel.HYBRID})


@dataclass
class _Funnel:
    spend: float
    impressions: float = 0.0
    clicks: float = 0.0
    conversions: float = 0.0
    revenue: float | None = None


@dataclass
class _Rates:
    cpm: float
    ctr: float
    cr: float
    value_per_conversion: float
    traffic: float


def _finite(value: float | None) -> float:
    if value is None or not math.isfinite(value):
        return 0.0
    return value


def _volume(value: float | None) -> float:
    """Finite and never below zero."""
    return max(0.0, _finite(value))


def _div(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def _back_derive(fn: _Funnel, rates: _Rates) -> None:
    """Fill clicks/impressions upward from conversions using CR and CTR."""
    if not fn.clicks:
        fn.clicks = _div(fn.conversions, rates.cr / 100)
    fn.impressions = _div(fn.clicks, rates.ctr / 100)


# ---------------------------------------------------------------------------
# Per-model funnels
# ---------------------------------------------------------------------------

def _cpm_funnel(channel: Channel, spend: float, rates: _Rates) -> _Funnel:
    fn = _Funnel(spend=spend)
    fn.impressions = _div(spend, rates.cpm) * 1000
    fn.clicks = fn.impressions * rates.ctr / 100
    fn.conversions = fn.clicks * rates.cr / 100
    return fn


def _cpc_funnel(channel: Channel, spend: float, rates: _Rates) -> _Funnel:
    fn = _Funnel(spend=spend)
    fn.clicks = _div(spend, channel.type_config.price)
    fn.conversions = fn.clicks * rates.cr / 100
    _back_derive(fn, rates)
    return fn


def _cpa_funnel(channel: Channel, spend: float, rates: _Rates) -> _Funnel:
    fn = _Funnel(spend=spend)
    fn.conversions = _div(spend, channel.type_config.price)
    _back_derive(fn, rates)
    return fn


def _cpl_funnel(channel: Channel, spend: float, rates: _Rates) -> _Funnel:
    fn = _Funnel(spend=spend)
    # leads are reported as clicks; CR turns leads into conversions
    fn.clicks = _div(spend, channel.type_config.price)
    fn.conversions = fn.clicks * rates.cr / 100
    _back_derive(fn, rates)
    return fn


def _rev_share_funnel(channel: Channel, spend: float, rates: _Rates) -> _Funnel:
    cfg = channel.type_config
    cost_per_conversion = rates.value_per_conversion * cfg.rev_share_pct / 100
    fn = _Funnel(spend=spend)
    fn.conversions = _div(spend, cost_per_conversion)
    _back_derive(fn, rates)
    return fn


def _hybrid_funnel(channel: Channel, spend: float, rates: _Rates) -> _Funnel:
    cfg = channel.type_config
    cost_per_conversion = cfg.price + rates.value_per_conversion * cfg.rev_share_pct / 100
    fn = _Funnel(spend=spend)
    fn.conversions = _div(spend, cost_per_conversion)
    _back_derive(fn, rates)
    return fn


def _fixed_fee_funnel(channel: Channel, spend: float, rates: _Rates) -> _Funnel:
    fn = _Funnel(spend=channel.type_config.price)
    fn.clicks = rates.traffic
    fn.conversions = fn.clicks * rates.cr / 100
    fn.impressions = _div(fn.clicks, rates.ctr / 100)
    return fn


def _unit_based_funnel(channel: Channel, spend: float, rates: _Rates) -> _Funnel:
    cfg = channel.type_config
    fn = _Funnel(spend=spend)
    units = _div(spend, cfg.price)
    fn.impressions = units * cfg.reach_per_unit
    fn.clicks = fn.impressions * rates.ctr / 100
    fn.conversions = fn.clicks * rates.cr / 100
    return fn


def _manual_funnel(channel: Channel, spend: float, rates: _Rates) -> _Funnel:
    cfg = channel.type_config
    return _Funnel(
        spend=spend,
        impressions=cfg.impressions,
        clicks=cfg.clicks,
        conversions=cfg.conversions,
        revenue=cfg.revenue,
    )


_FUNNELS: dict[BuyingModel, Callable[[Channel, float, _Rates], _Funnel]] = {
    BuyingModel.CPM: _cpm_funnel,
    BuyingModel.CPC: _cpc_funnel,
    BuyingModel.CPA: _cpa_funnel,
    BuyingModel.CPL: _cpl_funnel,
    BuyingModel.REV_SHARE: _rev_share_funnel,
    BuyingModel.HYBRID: _hybrid_funnel,
    BuyingModel.FLAT_FEE: _fixed_fee_funnel,
    BuyingModel.RETAINER: _fixed_fee_funnel,
    BuyingModel.UNIT_BASED: _unit_based_funnel,
    BuyingModel.MANUAL_INPUT: _manual_funnel,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def zero_metrics() -> Metrics:
    """Metrics object used when a channel cannot be evaluated."""
    return Metrics()


def _resolve_rates(
    channel: Channel,
    multipliers: GlobalMultipliers,
    defaults: MetricsConfig,
) -> _Rates:
    cfg = channel.type_config
    overrides = cfg.overrides

    cpm = overrides.cpm
    if cpm is None:
        cpm = multipliers.cpm_override if multipliers.cpm_override is not None else cfg.price

    base_ctr = overrides.ctr if overrides.ctr is not None else cfg.ctr
    if base_ctr is None:
        base_ctr = defaults.default_ctr
    ctr = max(0.0, base_ctr + multipliers.ctr_bump)

    cr = overrides.conversion_rate if overrides.conversion_rate is not None else cfg.conversion_rate
    if cr is None:
        cr = defaults.default_conversion_rate

    value = cfg.aov if cfg.aov is not None else multipliers.player_value

    traffic = getattr(cfg, "traffic_per_unit", None)
    if traffic is None:
        traffic = defaults.default_traffic_per_unit

    return _Rates(cpm=cpm, ctr=ctr, cr=cr, value_per_conversion=value, traffic=traffic)


def _revenue(channel: Channel, fn: _Funnel, rates: _Rates) -> float:
    cfg = channel.type_config

    if cfg.overrides.roas is not None:
        revenue = fn.spend * cfg.overrides.roas
    elif fn.revenue is not None:
        revenue = fn.revenue
    elif channel.buying_model in DEAL_ECONOMICS_MODELS or cfg.estimated_roas is None:
        revenue = fn.conversions * rates.value_per_conversion
    else:
        revenue = fn.spend * cfg.estimated_roas

    # Diminishing returns: efficiency halves when spend reaches the ceiling
    ceiling = cfg.saturation_ceiling
    if ceiling and ceiling > 0 and fn.spend > 0:
        revenue *= 1 / (1 + fn.spend / ceiling)

    return revenue


def compute_metrics(
    channel: Channel,
    spend: float,
    multipliers: GlobalMultipliers | None = None,
    defaults: MetricsConfig | None = None,
) -> Metrics:
    """
    Derive funnel metrics for ``channel`` at ``spend``.

    Allocation-driven spend is scaled by ``spend_multiplier``; flat-fee
    and retainer channels always spend their configured fee.

    Args:
        channel: Channel record
        spend: Spend assigned to the channel (currency units)
        multipliers: Global adjustments (defaults when omitted)
        defaults: Funnel defaults (global config when omitted)

    Returns:
        Metrics with every value finite and non-negative; ``cpa`` is None
        without conversions
    """
    multipliers = multipliers or GlobalMultipliers()
    defaults = defaults or get_config().metrics

    try:
        rates = _resolve_rates(channel, multipliers, defaults)
        effective_spend = _volume(spend * multipliers.spend_multiplier)

        fn = _FUNNELS[channel.buying_model](channel, effective_spend, rates)
        fn.spend = _volume(fn.spend)
        fn.impressions = _volume(fn.impressions)
        fn.clicks = _volume(fn.clicks)
        fn.conversions = _volume(fn.conversions)

        revenue = _volume(_revenue(channel, fn, rates))

        cpa = channel.type_config.overrides.cpa
        if cpa is None and fn.conversions > 0:
            cpa = _volume(fn.spend / fn.conversions)

        return Metrics(
            spend=fn.spend,
            impressions=fn.impressions,
            clicks=fn.clicks,
            conversions=fn.conversions,
            cpa=cpa,
            revenue=revenue,
            roas=_volume(_div(revenue, fn.spend)),
            cpm=_volume(rates.cpm),
            ctr=_volume(rates.ctr),
            conversion_rate=_volume(rates.cr),
        )
    except Exception:
        logger.exception(f"Error calculating metrics for channel {channel.id}; using zero metrics")
        return zero_metrics()


def with_metrics(
    channel: Channel,
    spend: float,
    multipliers: GlobalMultipliers | None = None,
) -> ChannelWithMetrics:
    """Attach metrics and target warnings to a channel."""
    multipliers = multipliers or GlobalMultipliers()
    metrics = compute_metrics(channel, spend, multipliers)

    cpa_target = multipliers.cpa_target
    roas_target = multipliers.roas_target
    above_cpa = bool(cpa_target and metrics.cpa is not None and metrics.cpa > cpa_target)
    below_roas = bool(roas_target and metrics.roas < roas_target)

    warnings = []
    if above_cpa:
        warnings.append(f"CPA {metrics.cpa:.0f} exceeds target {cpa_target:g}")
    if below_roas:
        warnings.append(f"ROAS {metrics.roas:.1f}x below target {roas_target:g}x")

    return ChannelWithMetrics(
        channel=channel,
        metrics=metrics,
        above_cpa_target=above_cpa,
        below_roas_target=below_roas,
        warnings=warnings,
    )


def blended_metrics(rows: Iterable[ChannelWithMetrics]) -> BlendedMetrics:
    """Aggregate channel rows into plan totals (inactive channels excluded)."""
    spend = impressions = clicks = conversions = revenue = 0.0

    for row in rows:
        if not row.channel.is_active:
            continue
        m = row.metrics
        spend += m.spend
        impressions += m.impressions
        clicks += m.clicks
        conversions += m.conversions
        revenue += m.revenue

    return BlendedMetrics(
        total_spend=spend,
        total_impressions=impressions,
        total_clicks=clicks,
        total_conversions=conversions,
        total_revenue=revenue,
        blended_cpa=spend / conversions if conversions > 0 else None,
        blended_roas=revenue / spend if spend > 0 else 0.0,
    )


def category_totals(rows: Iterable[ChannelWithMetrics]) -> dict[str, dict[str, float]]:
    """Spend and allocation share per category, for the category charts."""
    totals: dict[str, dict[str, float]] = {}

    for row in rows:
        if not row.channel.is_active:
            continue
        bucket = totals.setdefault(row.channel.category.value, {"spend": 0.0, "percentage": 0.0})
        bucket["spend"] += row.metrics.spend
        bucket["percentage"] += row.channel.allocation_pct

    return totals

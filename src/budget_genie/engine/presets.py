"""
Metric-driven allocation presets.

Unlike the weight-table strategies, these presets look at each channel's
current metrics (ROAS, CPA, CPM, conversions) and propose a new split.
Every preset returns ``{channel_id: pct}`` over the rows it is given;
callers normalize the result before storing it.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from enum import Enum

from budget_genie.contracts import ChannelWithMetrics
from budget_genie.exceptions import UnknownStrategyError


class PresetId(str, Enum):
    ROAS_WEIGHTED = "roas_weighted"
    VISIBILITY = "visibility"
    CONSERVATIVE = "conservative"
    EXPERIMENTAL = "experimental"
    PARETO = "pareto"
    LOW_CPA = "low_cpa"
    SCORED = "scored"


def _even_split(rows: Sequence[ChannelWithMetrics]) -> dict[str, float]:
    if not rows:
        return {}
    share = 100 / len(rows)
    return {row.id: share for row in rows}


def _split_groups(
    winners: Sequence[ChannelWithMetrics],
    others: Sequence[ChannelWithMetrics],
    winner_total: float,
) -> dict[str, float]:
    """Give ``winner_total`` % evenly to winners and the rest evenly to others."""
    if not others:
        winner_total = 100.0
    allocations = {row.id: winner_total / len(winners) for row in winners}
    if others:
        other_share = (100 - winner_total) / len(others)
        allocations.update({row.id: other_share for row in others})
    return allocations


def roas_weighted_allocation(rows: Sequence[ChannelWithMetrics]) -> dict[str, float]:
    """Budget proportional to ROAS; channels at or below 1.0x get nothing."""
    viable = [row for row in rows if row.metrics.roas > 1.0]
    if not viable:
        return _even_split(rows)

    total_roas = sum(row.metrics.roas for row in viable)
    return {
        row.id: (row.metrics.roas / total_roas * 100 if row.metrics.roas > 1.0 else 0.0)
        for row in rows
    }


def visibility_allocation(rows: Sequence[ChannelWithMetrics]) -> dict[str, float]:
    """80% to the cheapest quarter of channels by effective CPM."""
    if not rows:
        return {}

    ranked = sorted(rows, key=lambda row: row.metrics.cpm or row.channel.type_config.price or 100)
    winner_count = max(1, math.ceil(len(ranked) * 0.25))
    return _split_groups(ranked[:winner_count], ranked[winner_count:], 80.0)


def conservative_allocation(rows: Sequence[ChannelWithMetrics]) -> dict[str, float]:
    """70% to flat-fee / retainer / fixed-tier channels, 30% to the rest."""
    safe = [row for row in rows if row.channel.is_fixed_fee or row.channel.is_fixed_tier]
    risky = [row for row in rows if row not in safe]
    if not safe:
        return _even_split(rows)
    return _split_groups(safe, risky, 70.0)


def experimental_allocation(rows: Sequence[ChannelWithMetrics]) -> dict[str, float]:
    """20% to untested channels, 80% to established ones by ROAS."""
    experimental = [row for row in rows if row.metrics.spend == 0 or row.metrics.conversions == 0]
    established = [row for row in rows if row not in experimental]

    if not experimental:
        return _even_split(rows)
    if not established:
        return _even_split(experimental)

    allocations = {row.id: 20.0 / len(experimental) for row in experimental}
    total_roas = sum(row.metrics.roas for row in established)
    for row in established:
        if total_roas > 0:
            allocations[row.id] = row.metrics.roas / total_roas * 80.0
        else:
            allocations[row.id] = 80.0 / len(established)
    return allocations


def pareto_allocation(rows: Sequence[ChannelWithMetrics]) -> dict[str, float]:
    """Top 20% of channels by conversions get 80% of the budget."""
    if not rows:
        return {}

    ranked = sorted(rows, key=lambda row: row.metrics.conversions, reverse=True)
    top_count = max(1, math.ceil(len(ranked) * 0.2))
    return _split_groups(ranked[:top_count], ranked[top_count:], 80.0)


def low_cpa_allocation(rows: Sequence[ChannelWithMetrics]) -> dict[str, float]:
    """Inverse-CPA weighting; channels without a CPA share 10%."""
    scored = [row for row in rows if row.metrics.cpa is not None and row.metrics.cpa > 0]
    others = [row for row in rows if row not in scored]

    if not scored:
        return _even_split(rows)

    pool = 90.0 if others else 100.0
    total_score = sum(1 / row.metrics.cpa for row in scored)

    allocations = {row.id: (1 / row.metrics.cpa) / total_score * pool for row in scored}
    if others:
        allocations.update({row.id: (100 - pool) / len(others) for row in others})
    return allocations


def scored_allocation(
    rows: Sequence[ChannelWithMetrics],
    cpa_target: float | None = None,
    roas_target: float | None = None,
) -> dict[str, float]:
    """
    Weight channels by distance to the CPA / ROAS targets.

    Score starts at 1 and is multiplied by sqrt(target_cpa / cpa) and
    sqrt(roas / target_roas).  Fixed-fee channels never score below 0.8
    and every score is clamped to [0.1, 10] to avoid starvation or
    monopoly.
    """
    scores: dict[str, float] = {}

    for row in rows:
        score = 1.0
        m = row.metrics

        if cpa_target and m.cpa:
            score *= math.sqrt(cpa_target / max(0.01, m.cpa))

        if roas_target:
            score *= math.sqrt(max(0.0, m.roas) / max(0.01, roas_target))

        if row.channel.is_fixed_fee or row.channel.is_fixed_tier:
            score = max(0.8, score)

        scores[row.id] = max(0.1, min(10.0, score))

    total = sum(scores.values())
    if total <= 0:
        return {}
    return {cid: s / total * 100 for cid, s in scores.items()}


_PRESETS: dict[PresetId, Callable[..., dict[str, float]]] = {
    PresetId.ROAS_WEIGHTED: roas_weighted_allocation,
    PresetId.VISIBILITY: visibility_allocation,
    PresetId.CONSERVATIVE: conservative_allocation,
    PresetId.EXPERIMENTAL: experimental_allocation,
    PresetId.PARETO: pareto_allocation,
    PresetId.LOW_CPA: low_cpa_allocation,
}


def assign_by_preset(
    rows: Sequence[ChannelWithMetrics],
    preset_id: PresetId | str,
    cpa_target: float | None = None,
    roas_target: float | None = None,
) -> dict[str, float]:
    """Dispatch to a preset by id."""
    try:
        preset = PresetId(preset_id)
    except ValueError:
        raise UnknownStrategyError(str(preset_id), [p.value for p in PresetId]) from None

    if preset == PresetId.SCORED:
        return scored_allocation(rows, cpa_target, roas_target)
    return _PRESETS[preset](rows)

"""
Strategy weight assigner.

Builds a complete allocation proposal from a named strategy, ignoring
current allocations.  Each strategy is a sparse weight table whose keys
are matched against a channel's category (exact), family (exact) or as
keywords contained in the channel id / name (case-insensitive).
Channels nothing matches keep the neutral weight of 1.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from budget_genie.contracts import Channel
from budget_genie.exceptions import UnknownStrategyError


class StrategyId(str, Enum):
    BALANCED = "balanced"
    AFFILIATE_DOMINANT = "affiliate_dominant"
    INFLUENCER_DOMINANT = "influencer_dominant"
    HYBRID_GROWTH = "hybrid_growth"
    SEO_FOUNDATION = "seo_foundation"
    CONVERSION_MAX = "conversion_max"
    PROGRAMMATIC_BLITZ = "programmatic_blitz"
    RETENTION_LTV = "retention_ltv"


@dataclass(frozen=True)
class Strategy:
    id: StrategyId
    description: str
    weights: dict[str, float] = field(default_factory=dict)


STRATEGIES: dict[StrategyId, Strategy] = {
    s.id: s
    for s in [
        Strategy(
            StrategyId.BALANCED,
            "Equal distribution across all active channels",
        ),
        Strategy(
            StrategyId.AFFILIATE_DOMINANT,
            "Heavy focus on Affiliate and CPA channels for secure ROI",
            {
                "Affiliate": 8,
                "cpa": 8,
                "Display/Programmatic": 1,
                "Paid Social": 1,
                "SEO/Content": 1,
            },
        ),
        Strategy(
            StrategyId.INFLUENCER_DOMINANT,
            "Maximize brand awareness via Influencers and Display",
            {
                "Paid Social": 8,
                "display": 5,
                "programmatic": 5,
                "Display/Programmatic": 2,
            },
        ),
        Strategy(
            StrategyId.HYBRID_GROWTH,
            "Balanced mix of Influencer reach and Affiliate performance",
            {
                "Paid Social": 6,
                "Affiliate": 6,
                "Display/Programmatic": 3,
                "SEO/Content": 2,
            },
        ),
        Strategy(
            StrategyId.SEO_FOUNDATION,
            "Prioritize long-term authority and sustainable organic traffic",
            {
                "SEO/Content": 8,
                "content": 10,
                "backlinks": 9,
                "tech": 8,
                "audit": 8,
                "display": 1,
                "Display/Programmatic": 1,
            },
        ),
        Strategy(
            StrategyId.CONVERSION_MAX,
            "Maximize immediate ROAS by targeting high-intent users",
            {
                "retargeting": 10,
                "push": 10,
                "cpa": 5,
                "brand": 0.1,
                "awareness": 0.1,
                "display": 1,
            },
        ),
        Strategy(
            StrategyId.PROGRAMMATIC_BLITZ,
            "Aggressive scaling using controllable programmatic channels",
            {
                "native": 8,
                "display": 8,
                "push": 8,
                "Affiliate": 1,
                "SEO/Content": 1,
            },
        ),
        Strategy(
            StrategyId.RETENTION_LTV,
            "Re-engage existing traffic to boost lifetime value",
            {
                "retargeting": 10,
                "email": 10,
                "push": 10,
                "content": 4,
            },
        ),
    ]
}


def get_strategy(strategy_id: StrategyId | str) -> Strategy:
    try:
        return STRATEGIES[StrategyId(strategy_id)]
    except ValueError:
        raise UnknownStrategyError(str(strategy_id), [s.value for s in StrategyId]) from None


def channel_weight(channel: Channel, weights: dict[str, float]) -> float:
    """Weight of one channel under a strategy table."""
    weight = 1.0

    category = channel.category.value
    if category in weights:
        weight = weights[category]

    family = channel.family.value
    if family in weights:
        weight = max(weight, weights[family])

    channel_id = channel.id.lower()
    name = channel.name.lower()
    for key, value in weights.items():
        needle = key.lower()
        if needle in channel_id or needle in name:
            weight = max(weight, value)

    return weight


def assign_by_strategy(
    channels: Sequence[Channel],
    strategy_id: StrategyId | str,
) -> dict[str, float]:
    """
    Compute a full replacement allocation map for ``strategy_id``.

    Args:
        channels: Channels to allocate across (callers decide which)
        strategy_id: Strategy identifier

    Returns:
        Channel id -> percentage, summing to ~100 (empty for no channels)
    """
    strategy = get_strategy(strategy_id)

    weights = {ch.id: channel_weight(ch, strategy.weights) for ch in channels}
    total_weight = sum(weights.values())

    if total_weight <= 0:
        return {}

    logger.info(f"Applying strategy '{strategy.id.value}' to {len(weights)} channels")
    return {cid: w / total_weight * 100 for cid, w in weights.items()}

"""
Tiered budget distributor.

Splits a total budget into a fixed-cost reservation and a variable pool:

1. Fixed-tier channels are paid first; their spend is always their price.
2. The rest of the budget (the variable pool) is shared across variable
   channels in proportion to their current allocation, so a budget change
   keeps the relative weighting intact.

Results are percentages of the total budget.  They are not forced to
sum to exactly 100; run them through the normalizer for that.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

from budget_genie.contracts import Channel


class SpendMode(str, Enum):
    """How allocation percentages translate into spend."""

    TOTAL = "total"                  # pct of the total budget
    TIERED = "tiered"                # fixed tier at price, variable via distribute()
    VARIABLE_POOL = "variable_pool"  # fixed at price, variable pct of the remaining pool


@dataclass
class Distribution:
    """
    Output of a tiered distribution run.
    """

    allocations: dict[str, float] = field(default_factory=dict)
    spend: dict[str, float] = field(default_factory=dict)

    total_budget: float = 0.0
    fixed_cost_total: float = 0.0
    variable_pool: float = 0.0

    @property
    def over_budget(self) -> bool:
        """True when fixed costs alone exceed the total budget."""
        return self.fixed_cost_total > self.total_budget

    @property
    def allocation_total(self) -> float:
        return sum(self.allocations.values())

    def to_dict(self) -> dict:
        return {
            "allocations": self.allocations,
            "spend": self.spend,
            "total_budget": self.total_budget,
            "fixed_cost_total": self.fixed_cost_total,
            "variable_pool": self.variable_pool,
            "over_budget": self.over_budget,
        }


def _is_fixed(channel: Channel, include_fixed_fee: bool) -> bool:
    return channel.is_fixed_tier or (include_fixed_fee and channel.is_fixed_fee)


def fixed_cost_total(channels: Iterable[Channel], include_fixed_fee: bool = False) -> float:
    """Sum of prices of active fixed channels."""
    return sum(
        max(0.0, ch.fixed_cost)
        for ch in channels
        if ch.is_active and _is_fixed(ch, include_fixed_fee)
    )


def distribute(total_budget: float, channels: Sequence[Channel]) -> Distribution:
    """
    Distribute ``total_budget`` across active channels by tier.

    Inactive channels are left out of the result so their stored
    allocation survives as a ghost value.

    Args:
        total_budget: Total budget (negative values are treated as 0)
        channels: Ordered channel list

    Returns:
        Distribution with per-channel percentages and spend
    """
    total_budget = max(0.0, total_budget)
    active = [ch for ch in channels if ch.is_active]
    fixed = [ch for ch in active if ch.is_fixed_tier]
    variable = [ch for ch in active if not ch.is_fixed_tier]

    fixed_total = fixed_cost_total(active)
    pool = max(0.0, total_budget - fixed_total)

    result = Distribution(
        total_budget=total_budget,
        fixed_cost_total=fixed_total,
        variable_pool=pool,
    )

    if fixed_total > total_budget:
        logger.warning(
            f"Budget overflow: fixed costs {fixed_total:,.2f} exceed total budget {total_budget:,.2f}"
        )

    for ch in fixed:
        cost = max(0.0, ch.fixed_cost)
        result.spend[ch.id] = cost
        # Can exceed 100 when the budget is smaller than the fee
        result.allocations[ch.id] = cost / total_budget * 100 if total_budget > 0 else 0.0

    variable_weight = sum(ch.allocation_pct for ch in variable)
    for ch in variable:
        if variable_weight > 0:
            share = ch.allocation_pct / variable_weight
        else:
            share = 1 / len(variable)

        spend = pool * share
        result.spend[ch.id] = spend
        result.allocations[ch.id] = spend / total_budget * 100 if total_budget > 0 else 0.0

    return result


def resolve_spend(
    channels: Sequence[Channel],
    total_budget: float,
    mode: SpendMode | str = SpendMode.TOTAL,
) -> dict[str, float]:
    """
    Spend each channel receives under ``mode``.

    Inactive channels always resolve to 0.
    """
    mode = SpendMode(mode)
    total_budget = max(0.0, total_budget)
    spend = {ch.id: 0.0 for ch in channels}

    if mode == SpendMode.TIERED:
        spend.update(distribute(total_budget, channels).spend)
        return spend

    if mode == SpendMode.VARIABLE_POOL:
        pool = max(0.0, total_budget - fixed_cost_total(channels, include_fixed_fee=True))
        for ch in channels:
            if not ch.is_active:
                continue
            if _is_fixed(ch, include_fixed_fee=True):
                spend[ch.id] = max(0.0, ch.fixed_cost)
            else:
                spend[ch.id] = pool * ch.allocation_pct / 100
        return spend

    for ch in channels:
        if ch.is_active:
            spend[ch.id] = ch.allocation_pct / 100 * total_budget
    return spend


def apply_allocations(
    channels: Sequence[Channel],
    allocations: Mapping[str, float],
) -> list[Channel]:
    """
    Write an allocation map back onto channels.

    Values are clamped to [0, 100]; channels missing from the map and ids
    that match no channel are left alone.
    """
    return [
        ch.with_allocation(allocations[ch.id]) if ch.id in allocations else ch
        for ch in channels
    ]

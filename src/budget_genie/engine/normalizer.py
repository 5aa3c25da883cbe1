"""
Allocation normalizer.

Keeps the allocation percentages of active channels summing to exactly
100.00 in two phases:

1. Proportional scaling: unlocked channels are rescaled to fill whatever
   the locked channels leave of the 100% pool.
2. Largest-remainder correction: the scaled values are truncated to
   ``precision`` decimals and the units lost to truncation are handed
   back, one 0.01 at a time, to the channels whose truncated fraction
   was largest.

Rounding each value independently does not preserve the sum; the
remainder step does, deterministically.

Locked channels are never touched (not even truncated) and inactive
channels keep their stored "ghost" percentage for later reactivation.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from loguru import logger

from budget_genie.config import get_config
from budget_genie.contracts import Channel

# Absorbs float noise such as 33.33 * 100 == 3332.9999999999995 before flooring
_EPSILON = 1e-6


def _largest_remainder(values: Sequence[float], target_units: int, scale: int) -> list[int]:
    """Integer units (value * scale) that sum to ``target_units``."""
    raw = [v * scale for v in values]
    units = [math.floor(r + _EPSILON) for r in raw]
    fractions = [r - u for r, u in zip(raw, units)]
    shortfall = target_units - sum(units)
    n = len(units)

    if shortfall > 0:
        # Stable sort: ties keep their original order
        order = sorted(range(n), key=lambda i: fractions[i], reverse=True)
        # Cycling through the list when shortfall > n is the same as
        # giving everyone shortfall // n and the leaders one extra unit
        base, extra = divmod(shortfall, n)
        for rank, i in enumerate(order):
            units[i] += base + (1 if rank < extra else 0)

    elif shortfall < 0:
        order = sorted(range(n), key=lambda i: fractions[i])
        while shortfall < 0 and any(units):
            for i in order:
                if shortfall == 0:
                    break
                if units[i] > 0:
                    units[i] -= 1
                    shortfall += 1

    return units


def normalize_allocations(
    channels: Sequence[Channel],
    precision: int | None = None,
    target_total: float | None = None,
) -> list[Channel]:
    """
    Rescale active unlocked channels so active allocations sum to 100.

    Args:
        channels: Ordered channel list
        precision: Decimal places kept (config default: 2)
        target_total: Sum to reach (config default: 100)

    Returns:
        New channel list in the original order
    """
    cfg = get_config().normalization
    precision = cfg.precision if precision is None else precision
    target_total = cfg.target_total if target_total is None else target_total
    scale = 10 ** precision

    unlocked_idx = [i for i, ch in enumerate(channels) if ch.is_active and not ch.locked]
    if not unlocked_idx:
        return list(channels)

    locked_total = sum(ch.allocation_pct for ch in channels if ch.is_active and ch.locked)
    remaining = max(0.0, target_total - locked_total)

    unlocked_total = sum(channels[i].allocation_pct for i in unlocked_idx)
    scalar = remaining / unlocked_total if unlocked_total > 0 else 0.0

    scaled = [channels[i].allocation_pct * scalar for i in unlocked_idx]
    units = _largest_remainder(scaled, round(remaining * scale), scale)

    logger.debug(
        f"Normalized {len(unlocked_idx)} unlocked channels "
        f"(locked total {locked_total:.2f}, scalar {scalar:.6f})"
    )

    result = list(channels)
    for i, u in zip(unlocked_idx, units):
        result[i] = channels[i].with_allocation(round(u / scale, precision))

    return result


def allocation_total(channels: Sequence[Channel]) -> float:
    """Sum of allocation percentages across active channels."""
    return sum(ch.allocation_pct for ch in channels if ch.is_active)


def is_normalized(channels: Sequence[Channel], tolerance: float | None = None) -> bool:
    cfg = get_config().normalization
    tolerance = cfg.tolerance if tolerance is None else tolerance
    return abs(allocation_total(channels) - cfg.target_total) <= tolerance

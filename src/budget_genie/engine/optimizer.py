"""
Target optimizer.

Nudges allocations toward the plan's performance targets in one pass:

  - CPA above the CPA target  -> allocation cut by 30% ("slashed")
  - ROAS above the ROAS target -> allocation raised by 30% ("boosted")

then renormalizes so active channels sum to 100 again.  This is a
heuristic, not a converging solver: running it again moves the plan a
further step, and deciding how many steps to take is up to the caller.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger

from budget_genie.config import get_config
from budget_genie.contracts import Channel, GlobalMultipliers
from budget_genie.engine.distributor import SpendMode, resolve_spend
from budget_genie.engine.metrics import compute_metrics
from budget_genie.engine.normalizer import normalize_allocations


@dataclass
class OptimizationOutcome:
    """
    Result of one optimizer pass.
    """

    channels: list[Channel] = field(default_factory=list)
    slashed_ids: list[str] = field(default_factory=list)
    boosted_ids: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        """True when nothing was adjusted ("nothing to optimize")."""
        return not self.slashed_ids and not self.boosted_ids

    @property
    def message(self) -> str:
        if self.is_noop:
            return "No action needed: every channel is within its targets"
        return (
            f"Slashed {len(self.slashed_ids)} channel(s), "
            f"boosted {len(self.boosted_ids)} channel(s)"
        )

    def to_dict(self) -> dict:
        return {
            "slashed_ids": self.slashed_ids,
            "boosted_ids": self.boosted_ids,
            "is_noop": self.is_noop,
            "message": self.message,
        }


class TargetOptimizer:
    """
    Single-pass punish/reward optimizer over CPA and ROAS targets.

    Locked, inactive, fixed-tier and fixed-fee (flat fee, retainer)
    channels are never adjusted.

    Example:
        >>> optimizer = TargetOptimizer()
        >>> outcome = optimizer.optimize(channels, 50000, GlobalMultipliers(cpa_target=50))
        >>> outcome.slashed_ids
        ['paid-native']
    """

    def __init__(
        self,
        punish_factor: float | None = None,
        reward_factor: float | None = None,
        spend_mode: SpendMode | str | None = None,
    ):
        """
        Initialize optimizer.

        Args:
            punish_factor: Multiplier for channels over the CPA target (config default 0.7)
            reward_factor: Multiplier for channels over the ROAS target (config default 1.3)
            spend_mode: How spend is derived for the metrics pass (config default)
        """
        cfg = get_config().optimizer
        self.punish_factor = cfg.punish_factor if punish_factor is None else punish_factor
        self.reward_factor = cfg.reward_factor if reward_factor is None else reward_factor
        self.spend_mode = SpendMode(spend_mode or cfg.spend_mode)

    @staticmethod
    def is_adjustable(channel: Channel) -> bool:
        return (
            channel.is_active
            and not channel.locked
            and not channel.is_fixed_tier
            and not channel.is_fixed_fee
        )

    def optimize(
        self,
        channels: Sequence[Channel],
        total_budget: float,
        multipliers: GlobalMultipliers,
    ) -> OptimizationOutcome:
        """
        Run one punish/reward pass.

        Args:
            channels: Current channel list
            total_budget: Total plan budget
            multipliers: Global multipliers carrying the targets

        Returns:
            OptimizationOutcome; ``is_noop`` when nothing changed
        """
        cpa_target = multipliers.cpa_target
        roas_target = multipliers.roas_target

        if not cpa_target and not roas_target:
            return OptimizationOutcome(channels=list(channels))

        spend = resolve_spend(channels, total_budget, self.spend_mode)

        slashed: list[str] = []
        boosted: list[str] = []
        modified: list[Channel] = []

        for ch in channels:
            if not self.is_adjustable(ch) or ch.allocation_pct <= 0:
                modified.append(ch)
                continue

            metrics = compute_metrics(ch, spend[ch.id], multipliers)
            new_pct = ch.allocation_pct

            if cpa_target and metrics.cpa is not None and metrics.cpa > cpa_target:
                new_pct *= self.punish_factor
                slashed.append(ch.id)

            if roas_target and metrics.roas > roas_target:
                new_pct *= self.reward_factor
                boosted.append(ch.id)

            modified.append(ch.with_allocation(new_pct) if new_pct != ch.allocation_pct else ch)

        if not slashed and not boosted:
            logger.info("Target optimization: no channel outside its targets")
            return OptimizationOutcome(channels=list(channels))

        outcome = OptimizationOutcome(
            channels=normalize_allocations(modified),
            slashed_ids=slashed,
            boosted_ids=boosted,
        )
        logger.info(f"Target optimization complete. {outcome.message}")
        return outcome


def optimize_to_targets(
    channels: Sequence[Channel],
    total_budget: float,
    multipliers: GlobalMultipliers,
) -> OptimizationOutcome:
    """
    Convenience function for a single optimizer pass with config defaults.
    """
    return TargetOptimizer().optimize(channels, total_budget, multipliers)

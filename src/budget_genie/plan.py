"""
Media plan state and transitions.

A ``MediaPlan`` is one immutable snapshot of the planner's state: the
total budget, the ordered channel list and the global multipliers.
Every user action (budget change, slider drag, lock toggle, strategy
application...) is a method returning a new plan; the engine functions
do the numeric work.

``PlanHistory`` keeps a bounded undo/redo stack of snapshots.

Example:
    >>> plan = MediaPlan.from_file("plan.yaml")
    >>> plan = plan.with_budget(80_000).apply_strategy("hybrid_growth")
    >>> plan, outcome = plan.with_multipliers(cpa_target=60).optimize()
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from budget_genie.config import get_config
from budget_genie.contracts import (
    BlendedMetrics,
    Channel,
    ChannelCategory,
    ChannelWithMetrics,
    GlobalMultipliers,
)
from budget_genie.engine.distributor import (
    SpendMode,
    apply_allocations,
    distribute,
    resolve_spend,
)
from budget_genie.engine.metrics import blended_metrics, category_totals, with_metrics
from budget_genie.engine.normalizer import is_normalized, normalize_allocations
from budget_genie.engine.optimizer import OptimizationOutcome, TargetOptimizer
from budget_genie.engine.presets import PresetId, assign_by_preset
from budget_genie.engine.strategies import StrategyId, assign_by_strategy
from budget_genie.exceptions import ChannelNotFoundError, PlanValidationError


def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "channel"


class MediaPlan(BaseModel):
    """Snapshot of a media plan."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = "Untitled plan"
    total_budget: float = Field(
        default_factory=lambda: get_config().plan.default_budget,
        ge=0,
        validation_alias=AliasChoices("total_budget", "totalBudget"),
    )
    channels: list[Channel] = Field(default_factory=list)
    multipliers: GlobalMultipliers = Field(
        default_factory=GlobalMultipliers,
        validation_alias=AliasChoices("multipliers", "globalMultipliers"),
    )

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def channel(self, channel_id: str) -> Channel:
        for ch in self.channels:
            if ch.id == channel_id:
                return ch
        raise ChannelNotFoundError(channel_id)

    def _replace_channel(self, channel_id: str, **update: Any) -> "MediaPlan":
        target = self.channel(channel_id)
        updated = target.model_copy(update=update)
        return self._with_channels([updated if ch.id == channel_id else ch for ch in self.channels])

    def _with_channels(self, channels: list[Channel]) -> "MediaPlan":
        return self.model_copy(update={"channels": channels})

    @property
    def active_channels(self) -> list[Channel]:
        return [ch for ch in self.channels if ch.is_active]

    @property
    def is_normalized(self) -> bool:
        return is_normalized(self.channels)

    # ------------------------------------------------------------------
    # Budget & allocation
    # ------------------------------------------------------------------

    def with_budget(self, budget: float, redistribute: bool = True) -> "MediaPlan":
        """
        Change the total budget.

        Args:
            budget: New total budget (clamped to the configured bounds)
            redistribute: Re-run the tiered distributor and normalize

        Returns:
            New plan
        """
        bounds = get_config().plan
        budget = min(bounds.max_budget, max(bounds.min_budget, budget))
        plan = self.model_copy(update={"total_budget": budget})

        if not redistribute:
            return plan

        distribution = distribute(budget, plan.channels)
        channels = normalize_allocations(apply_allocations(plan.channels, distribution.allocations))
        logger.info(
            f"Budget set to {budget:,.2f} (fixed {distribution.fixed_cost_total:,.2f}, "
            f"pool {distribution.variable_pool:,.2f})"
        )
        return plan._with_channels(channels)

    def with_allocation(self, channel_id: str, pct: float) -> "MediaPlan":
        """Slider drag: set one channel's percentage without normalizing."""
        target = self.channel(channel_id)
        return self._with_channels(
            [target.with_allocation(pct) if ch.id == channel_id else ch for ch in self.channels]
        )

    def with_allocations(self, allocations: Mapping[str, float]) -> "MediaPlan":
        return self._with_channels(apply_allocations(self.channels, allocations))

    def normalized(self) -> "MediaPlan":
        return self._with_channels(normalize_allocations(self.channels))

    # ------------------------------------------------------------------
    # Channel list edits
    # ------------------------------------------------------------------

    def _new_channel_id(self, name: str) -> str:
        existing = {ch.id for ch in self.channels}
        base = _slugify(name)
        candidate, n = base, 2
        while candidate in existing:
            candidate = f"{base}-{n}"
            n += 1
        return candidate

    def add_channel(
        self,
        name: str,
        category: ChannelCategory | str = ChannelCategory.OTHER,
        **fields: Any,
    ) -> "MediaPlan":
        """
        Append a channel seeded with the configured allocation.

        Other unlocked channels are rescaled so the plan still sums to
        100; family and buying model are inferred from the name unless
        given in ``fields``.  A requested ``id`` is kept unless it is
        already taken, in which case it gets a numeric suffix.
        """
        seed = get_config().plan.seed_allocation_pct
        requested_id = fields.pop("id", None)
        data: dict[str, Any] = {
            "name": name,
            "category": category,
            "type_config": {"price": 5.0},
            **fields,
        }
        data["id"] = self._new_channel_id(str(requested_id or name))
        data["allocation_pct"] = seed
        # Held locked while the others are rescaled around its seed value
        data["locked"] = True
        channel = Channel.model_validate(data)

        channels = normalize_allocations([*self.channels, channel])
        channels[-1] = channels[-1].model_copy(update={"locked": bool(fields.get("locked", False))})
        if not is_normalized(channels):
            channels = normalize_allocations(channels)

        logger.info(f"Added channel '{channel.id}' ({channel.buying_model.value}) at {seed:g}%")
        return self._with_channels(channels)

    def remove_channel(self, channel_id: str) -> "MediaPlan":
        """Delete a channel and renormalize; the last channel cannot be removed."""
        self.channel(channel_id)
        remaining = [ch for ch in self.channels if ch.id != channel_id]
        if not remaining:
            logger.warning(f"Refusing to remove '{channel_id}': a plan needs at least one channel")
            return self
        return self._with_channels(normalize_allocations(remaining))

    def toggle_lock(self, channel_id: str) -> "MediaPlan":
        return self._replace_channel(channel_id, locked=not self.channel(channel_id).locked)

    def set_active(self, channel_id: str, active: bool) -> "MediaPlan":
        """
        Activate or deactivate a channel.

        The stored percentage is kept as a ghost value; the remaining
        active channels are renormalized around it.
        """
        plan = self._replace_channel(channel_id, is_active=active)
        return plan.normalized()

    def update_type_config(self, channel_id: str, **changes: Any) -> "MediaPlan":
        """Patch buying-model parameters (a new ``buying_model`` switches variant)."""
        target = self.channel(channel_id)
        data = target.type_config.model_dump(by_alias=False)
        data.update(changes)
        if "buying_model" in changes:
            data["buying_model"] = str(getattr(changes["buying_model"], "value", changes["buying_model"]))
        updated = Channel.model_validate({**target.model_dump(exclude={"type_config"}), "type_config": data})
        return self._with_channels([updated if ch.id == channel_id else ch for ch in self.channels])

    # ------------------------------------------------------------------
    # Multipliers
    # ------------------------------------------------------------------

    def with_multipliers(self, **changes: Any) -> "MediaPlan":
        data = self.multipliers.model_dump()
        data.update(changes)
        return self.model_copy(update={"multipliers": GlobalMultipliers.model_validate(data)})

    def reset_multipliers(self) -> "MediaPlan":
        return self.model_copy(update={"multipliers": GlobalMultipliers()})

    # ------------------------------------------------------------------
    # Strategies, presets & optimization
    # ------------------------------------------------------------------

    def _assign_unlocked(self, allocations: Mapping[str, float]) -> "MediaPlan":
        """Write a proposal onto active unlocked channels and normalize."""
        movable = {ch.id for ch in self.channels if ch.is_active and not ch.locked}
        proposal = {cid: pct for cid, pct in allocations.items() if cid in movable}
        if not proposal:
            return self
        return self.with_allocations(proposal).normalized()

    def apply_strategy(self, strategy_id: StrategyId | str) -> "MediaPlan":
        """Replace unlocked allocations with a strategy's weighting."""
        candidates = [ch for ch in self.channels if ch.is_active and not ch.locked]
        return self._assign_unlocked(assign_by_strategy(candidates, strategy_id))

    def apply_preset(self, preset_id: PresetId | str) -> "MediaPlan":
        """Replace unlocked allocations with a metric-driven preset."""
        rows = [
            row for row in self.channels_with_metrics()
            if row.channel.is_active and not row.channel.locked
        ]
        allocations = assign_by_preset(
            rows,
            preset_id,
            cpa_target=self.multipliers.cpa_target,
            roas_target=self.multipliers.roas_target,
        )
        logger.info(f"Applying preset '{preset_id}' to {len(rows)} channels")
        return self._assign_unlocked(allocations)

    def optimize(self, optimizer: TargetOptimizer | None = None) -> tuple["MediaPlan", OptimizationOutcome]:
        """One punish/reward pass toward the multipliers' targets."""
        optimizer = optimizer or TargetOptimizer()
        outcome = optimizer.optimize(self.channels, self.total_budget, self.multipliers)
        if outcome.is_noop:
            return self, outcome
        return self._with_channels(outcome.channels), outcome

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def spend(self, spend_mode: SpendMode | str | None = None) -> dict[str, float]:
        mode = spend_mode or get_config().optimizer.spend_mode
        return resolve_spend(self.channels, self.total_budget, mode)

    def channels_with_metrics(self, spend_mode: SpendMode | str | None = None) -> list[ChannelWithMetrics]:
        spend = self.spend(spend_mode)
        return [with_metrics(ch, spend[ch.id], self.multipliers) for ch in self.channels]

    def blended(self, spend_mode: SpendMode | str | None = None) -> BlendedMetrics:
        return blended_metrics(self.channels_with_metrics(spend_mode))

    def category_totals(self, spend_mode: SpendMode | str | None = None) -> dict[str, dict[str, float]]:
        return category_totals(self.channels_with_metrics(spend_mode))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], source: str = "") -> "MediaPlan":
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise PlanValidationError(f"Invalid plan {source}: {e}", source=source) from e

    @classmethod
    def from_file(cls, path: Path | str) -> "MediaPlan":
        """Load a plan from YAML (``.yaml``/``.yml``) or JSON."""
        path = Path(path)
        try:
            with open(path) as f:
                if path.suffix.lower() in (".yaml", ".yml"):
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise PlanValidationError(f"Cannot read plan file {path}: {e}", source=str(path)) from e

        if not isinstance(data, dict):
            raise PlanValidationError(f"Plan file {path} must contain a mapping", source=str(path))

        plan = cls.from_dict(data, source=str(path))
        logger.info(f"Loaded plan '{plan.name}' with {len(plan.channels)} channels from {path}")
        return plan

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def to_yaml(self, path: Path | str) -> None:
        with open(Path(path), "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def to_json(self, path: Path | str) -> None:
        with open(Path(path), "w") as f:
            json.dump(self.to_dict(), f, indent=2)


class PlanHistory:
    """
    Bounded undo/redo stack of plan snapshots.

    ``record`` pushes the new present and clears the redo stack; the
    oldest snapshot is dropped once ``limit`` is reached.
    """

    def __init__(self, initial: MediaPlan, limit: int | None = None):
        self.limit = limit if limit is not None else get_config().plan.history_limit
        self._past: list[MediaPlan] = []
        self._future: list[MediaPlan] = []
        self.present = initial

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    def record(self, plan: MediaPlan) -> MediaPlan:
        if plan == self.present:
            return plan
        self._past.append(self.present)
        if len(self._past) > self.limit:
            self._past.pop(0)
        self._future.clear()
        self.present = plan
        return plan

    def undo(self) -> MediaPlan:
        if not self._past:
            return self.present
        self._future.append(self.present)
        self.present = self._past.pop()
        return self.present

    def redo(self) -> MediaPlan:
        if not self._future:
            return self.present
        self._past.append(self.present)
        self.present = self._future.pop()
        return self.present

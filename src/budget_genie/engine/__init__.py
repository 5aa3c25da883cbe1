"""
Allocation engine for Budget-Genie.

Pure functions over immutable channel snapshots: metrics calculation,
tiered distribution, largest-remainder normalization, target
optimization and strategy / preset weighting.
"""

from budget_genie.engine.distributor import (
    Distribution,
    SpendMode,
    apply_allocations,
    distribute,
    resolve_spend,
)
from budget_genie.engine.metrics import (
    blended_metrics,
    compute_metrics,
    with_metrics,
)
from budget_genie.engine.normalizer import (
    is_normalized,
    normalize_allocations,
)
from budget_genie.engine.optimizer import (
    OptimizationOutcome,
    TargetOptimizer,
    optimize_to_targets,
)
from budget_genie.engine.presets import PresetId, assign_by_preset
from budget_genie.engine.strategies import (
    STRATEGIES,
    StrategyId,
    assign_by_strategy,
)

__all__ = [
    "Distribution",
    "SpendMode",
    "apply_allocations",
    "distribute",
    "resolve_spend",
    "blended_metrics",
    "compute_metrics",
    "with_metrics",
    "is_normalized",
    "normalize_allocations",
    "OptimizationOutcome",
    "TargetOptimizer",
    "optimize_to_targets",
    "PresetId",
    "assign_by_preset",
    "STRATEGIES",
    "StrategyId",
    "assign_by_strategy",
]

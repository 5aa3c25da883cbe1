"""
Configuration management for Budget-Genie.

Centralised configuration with YAML loading and sensible defaults.
The config drives the engine constants: funnel defaults for the
metrics calculator, normalization precision, optimizer factors,
plan bounds, scenario grids and multi-month progression patterns.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Section configs
# ---------------------------------------------------------------------------

class StorageConfig(BaseModel):
    """Filesystem paths for exported reports."""

    outputs_path: Path = Field(default=Path("data/outputs"))


class MetricsConfig(BaseModel):
    """Funnel defaults used when a channel config leaves a field empty."""

    default_ctr: float = Field(default=1.0, description="Click-through rate in %")
    default_conversion_rate: float = Field(default=2.5, description="Conversion rate in %")
    default_traffic_per_unit: float = Field(default=1000.0, description="Visits bought by a flat fee")
    default_player_value: float = Field(default=150.0, ge=0, description="Value per conversion")


class NormalizationConfig(BaseModel):
    """Largest-remainder normalization settings."""

    precision: int = Field(default=2, ge=0, le=6, description="Decimal places kept")
    target_total: float = Field(default=100.0)
    tolerance: float = Field(default=0.01)


class OptimizerConfig(BaseModel):
    """Target optimizer settings."""

    punish_factor: float = Field(default=0.7, description="Multiplier for channels above the CPA target")
    reward_factor: float = Field(default=1.3, description="Multiplier for channels above the ROAS target")
    spend_mode: str = Field(default="total", description="Spend resolution: total, tiered, variable_pool")


class PlanConfig(BaseModel):
    """Plan-level bounds and defaults."""

    default_budget: float = Field(default=50000.0)
    min_budget: float = Field(default=0.0)
    max_budget: float = Field(default=10_000_000.0)
    seed_allocation_pct: float = Field(default=5.0, description="Allocation given to a new channel")
    history_limit: int = Field(default=50)


class ScenarioConfig(BaseModel):
    """What-if scenario grid."""

    budget_multipliers: list[float] = Field(default_factory=lambda: [0.7, 0.85, 1.0, 1.15, 1.3])
    frontier_points: int = Field(default=20)


class ProgressionConfig(BaseModel):
    """Multi-month budget progression defaults and pattern parameters."""

    base_monthly_budget: float = Field(default=50000.0)
    planning_months: int = Field(default=6, description="Months after the soft launch (clamped to 3-12)")
    include_soft_launch: bool = Field(default=True)
    growth_rate: float = Field(default=10.0, description="Growth in % per month")
    dip_factor: float = Field(default=0.3, description="Mid-plan dip of the u-shaped pattern")
    peak_month: int | None = Field(default=None, description="Inverse-u peak (default: a third in)")
    decline_rate: float = Field(default=10.0, description="Inverse-u decline in % per month after the peak")
    peak_months: list[int] = Field(default_factory=lambda: [1, 4])
    peak_multiplier: float = Field(default=1.5)
    step_size: int = Field(default=3, description="Months per step")
    step_increase: float = Field(default=50.0, description="Increase in % per step")
    launch_multiplier: float = Field(default=2.5)
    stabilize_month: int = Field(default=3)
    operating_cost_pct: float = Field(default=15.0, description="Operating costs as % of revenue")


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

class BudgetGenieConfig(BaseModel):
    """Root configuration for Budget-Genie."""

    project_name: str = Field(default="Budget-Genie")
    environment: str = Field(default="development")

    storage: StorageConfig = Field(default_factory=StorageConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    plan: PlanConfig = Field(default_factory=PlanConfig)
    scenarios: ScenarioConfig = Field(default_factory=ScenarioConfig)
    progression: ProgressionConfig = Field(default_factory=ProgressionConfig)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "BudgetGenieConfig":
        """Load config from a YAML file."""
        with open(Path(path)) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Write config to a YAML file."""
        with open(Path(path), "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False)

    def to_flat_dict(self) -> dict[str, Any]:
        return self.model_dump()

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.storage.outputs_path.mkdir(parents=True, exist_ok=True)


# ---------------------------------------------------------------------------
# Global singleton
# ---------------------------------------------------------------------------

_config: BudgetGenieConfig | None = None


def get_config() -> BudgetGenieConfig:
    """Return the global config instance (creates default if needed)."""
    global _config
    if _config is None:
        _config = BudgetGenieConfig()
    return _config


def set_config(config: BudgetGenieConfig | None) -> None:
    """Override the global config instance (None resets to defaults)."""
    global _config
    _config = config


def load_config(path: Path | str | None = None) -> BudgetGenieConfig:
    """
    Load config from file, falling back to standard locations, then defaults.
    """
    global _config

    if path is not None:
        _config = BudgetGenieConfig.from_yaml(path)
    else:
        for candidate in [Path("config.yaml"), Path("config/config.yaml")]:
            if candidate.exists():
                _config = BudgetGenieConfig.from_yaml(candidate)
                break
        else:
            _config = BudgetGenieConfig()

    return _config

"""
Tabular reports for a media plan.

Channel rows and plan totals are flattened into pandas DataFrames for
display and CSV export.  The channel report is validated against a
pandera schema so downstream consumers can rely on its columns.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pandas as pd
import pandera as pa
from loguru import logger
from pandera.typing import Series

from budget_genie.config import get_config
from budget_genie.engine.distributor import SpendMode


class ChannelReportSchema(pa.DataFrameModel):
    """
    Schema for the per-channel report.

    Example:
        channel_id | name        | category    | buying_model | allocation_pct | spend  | ...
        google     | Google Ads  | Paid Search | CPC          | 40.0           | 20000  | ...
    """

    channel_id: Series[str] = pa.Field(unique=True, str_length={"min_value": 1})
    name: Series[str]
    category: Series[str]
    buying_model: Series[str]
    tier: Series[str]
    allocation_pct: Series[float] = pa.Field(ge=0, le=100, coerce=True)
    locked: Series[bool]
    is_active: Series[bool]
    spend: Series[float] = pa.Field(ge=0, coerce=True)
    impressions: Series[float] = pa.Field(ge=0, coerce=True)
    clicks: Series[float] = pa.Field(ge=0, coerce=True)
    conversions: Series[float] = pa.Field(ge=0, coerce=True)
    cpa: Optional[Series[float]] = pa.Field(ge=0, nullable=True, coerce=True)
    revenue: Series[float] = pa.Field(ge=0, coerce=True)
    roas: Series[float] = pa.Field(ge=0, coerce=True)

    class Config:
        strict = False
        coerce = True


REPORT_COLUMNS = list(ChannelReportSchema.to_schema().columns)


def channel_report(plan, spend_mode: SpendMode | str | None = None) -> pd.DataFrame:
    """
    One row per channel with its allocation and derived metrics.

    Args:
        plan: MediaPlan to report on
        spend_mode: Spend resolution (config default when omitted)

    Returns:
        Validated DataFrame in plan order
    """
    records = []
    for row in plan.channels_with_metrics(spend_mode):
        ch, m = row.channel, row.metrics
        records.append({
            "channel_id": ch.id,
            "name": ch.name,
            "category": ch.category.value,
            "buying_model": ch.buying_model.value,
            "tier": ch.tier.value,
            "allocation_pct": ch.allocation_pct,
            "locked": ch.locked,
            "is_active": ch.is_active,
            "spend": m.spend,
            "impressions": m.impressions,
            "clicks": m.clicks,
            "conversions": m.conversions,
            "cpa": m.cpa,
            "revenue": m.revenue,
            "roas": m.roas,
            "warnings": "; ".join(row.warnings),
        })

    df = pd.DataFrame(records, columns=[*REPORT_COLUMNS, "warnings"])
    return ChannelReportSchema.validate(df)


def summary_frame(plan, spend_mode: SpendMode | str | None = None) -> pd.DataFrame:
    """Single-row frame with the plan's blended metrics."""
    blended = plan.blended(spend_mode)
    record = {
        "plan": plan.name,
        "total_budget": plan.total_budget,
        "active_channels": len(plan.active_channels),
        "allocation_total": sum(ch.allocation_pct for ch in plan.active_channels),
        **blended.model_dump(),
    }
    return pd.DataFrame([record])


def category_frame(plan, spend_mode: SpendMode | str | None = None) -> pd.DataFrame:
    """Spend and allocation share per category, largest spend first."""
    totals = plan.category_totals(spend_mode)
    df = pd.DataFrame(
        [{"category": cat, **vals} for cat, vals in totals.items()],
        columns=["category", "spend", "percentage"],
    )
    return df.sort_values("spend", ascending=False).reset_index(drop=True)


def export_csv(
    plan,
    path: Path | str | None = None,
    spend_mode: SpendMode | str | None = None,
) -> Path:
    """
    Write the channel report to CSV.

    Args:
        plan: MediaPlan to export
        path: Output file (defaults to ``<outputs_path>/<plan name>.csv``)
        spend_mode: Spend resolution

    Returns:
        Path written
    """
    if path is None:
        cfg = get_config()
        cfg.ensure_directories()
        slug = "".join(c if c.isalnum() else "_" for c in plan.name.lower()).strip("_") or "plan"
        path = cfg.storage.outputs_path / f"{slug}.csv"

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    df = channel_report(plan, spend_mode)
    df.to_csv(path, index=False)
    logger.info(f"Exported {len(df)} channels to {path}")
    return path

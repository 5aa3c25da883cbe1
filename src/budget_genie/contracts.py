"""
Canonical data contracts for Budget-Genie.

These Pydantic models define every record that crosses the engine
boundary: channel configurations, global multipliers and the derived
metrics handed to the rendering / export layers.

Design principles:
  - Records are frozen snapshots.  Mutations produce new objects via
    ``model_copy``; nothing in the engine edits a record in place.
  - Field names are snake_case, but the camelCase names produced by the
    import pipeline (``allocationPct``, ``typeConfig``...) are accepted.
  - Buying-model parameters are a tagged variant discriminated on
    ``buying_model`` so each model carries only the fields it uses.
  - Malformed numbers never fail validation.  They are coerced to 0 and
    logged, so one bad record cannot sink a whole plan.
"""

from __future__ import annotations

import math
import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from loguru import logger
from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from budget_genie.config import get_config


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ChannelCategory(str, Enum):
    PAID_SEARCH = "Paid Search"
    PAID_SOCIAL = "Paid Social"
    DISPLAY_PROGRAMMATIC = "Display/Programmatic"
    AFFILIATE = "Affiliate"
    SEO_CONTENT = "SEO/Content"
    OFFLINE_TV = "Offline/TV"
    EMAIL_SMS = "Email/SMS"
    OTHER = "Other"


class ChannelFamily(str, Enum):
    PAID_MEDIA = "paid_media"
    AFFILIATE = "affiliate"
    INFLUENCER = "influencer"
    SEO_CONTENT = "seo_content"
    PR_BRAND = "pr_brand"
    EMAIL_CRM = "email_crm"


class BuyingModel(str, Enum):
    CPM = "CPM"
    CPC = "CPC"
    CPA = "CPA"
    REV_SHARE = "REV_SHARE"
    HYBRID = "HYBRID"
    FLAT_FEE = "FLAT_FEE"
    RETAINER = "RETAINER"
    UNIT_BASED = "UNIT_BASED"
    CPL = "CPL"
    MANUAL_INPUT = "MANUAL_INPUT"


class Tier(str, Enum):
    FIXED = "fixed"
    SCALABLE = "scalable"
    CAPPED = "capped"


FIXED_FEE_MODELS = frozenset({BuyingModel.FLAT_FEE, BuyingModel.RETAINER})

FAMILY_DEFAULT_MODEL: dict[ChannelFamily, BuyingModel] = {
    ChannelFamily.PAID_MEDIA: BuyingModel.CPM,
    ChannelFamily.AFFILIATE: BuyingModel.CPA,
    ChannelFamily.INFLUENCER: BuyingModel.FLAT_FEE,
    ChannelFamily.SEO_CONTENT: BuyingModel.RETAINER,
    ChannelFamily.PR_BRAND: BuyingModel.FLAT_FEE,
    ChannelFamily.EMAIL_CRM: BuyingModel.CPM,
}


# ---------------------------------------------------------------------------
# Numeric coercion
# ---------------------------------------------------------------------------

def coerce_number(value: Any, default: float | None = 0.0) -> float | None:
    """Turn arbitrary input into a finite float; garbage becomes 0."""
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Coercing malformed numeric value {value!r} to 0")
        return 0.0
    if not math.isfinite(number):
        logger.warning(f"Coercing non-finite value {value!r} to 0")
        return 0.0
    return number


def coerce_non_negative(value: Any, default: float | None = 0.0) -> float | None:
    """Like ``coerce_number`` but negative prices, rates and volumes become 0."""
    number = coerce_number(value, default)
    if number is not None and number < 0:
        logger.warning(f"Coercing negative value {value!r} to 0")
        return 0.0
    return number


def clamp_pct(value: float) -> float:
    return min(100.0, max(0.0, value))


Amount = Annotated[float, BeforeValidator(lambda v: coerce_number(v, 0.0))]
OptionalAmount = Annotated[float | None, BeforeValidator(lambda v: coerce_number(v, None))]
NonNegativeAmount = Annotated[float, BeforeValidator(lambda v: coerce_non_negative(v, 0.0))]
OptionalNonNegativeAmount = Annotated[float | None, BeforeValidator(lambda v: coerce_non_negative(v, None))]


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Buying-model parameter variants
# ---------------------------------------------------------------------------

class MetricOverrides(_Record):
    """Per-channel values that replace the computed ones when set."""

    cpm: OptionalNonNegativeAmount = None
    ctr: OptionalNonNegativeAmount = None
    conversion_rate: OptionalNonNegativeAmount = None
    cpa: OptionalNonNegativeAmount = None
    roas: OptionalNonNegativeAmount = None


class _TypeConfigBase(_Record):
    # price acts as CPM, CPC, target CPA, cost per lead, base CPA,
    # monthly fee or unit cost depending on the buying model
    price: NonNegativeAmount = 0.0
    ctr: OptionalNonNegativeAmount = None
    conversion_rate: OptionalNonNegativeAmount = None
    aov: OptionalNonNegativeAmount = None
    estimated_roas: OptionalNonNegativeAmount = None
    saturation_ceiling: OptionalNonNegativeAmount = None
    overrides: MetricOverrides = Field(default_factory=MetricOverrides)

    @property
    def fixed_cost(self) -> float:
        return self.price


class CPMConfig(_TypeConfigBase):
    buying_model: Literal["CPM"] = Field(default="CPM", alias="buying_model")


class CPCConfig(_TypeConfigBase):
    buying_model: Literal["CPC"] = Field(default="CPC", alias="buying_model")


class CPAConfig(_TypeConfigBase):
    buying_model: Literal["CPA"] = Field(default="CPA", alias="buying_model")


class CPLConfig(_TypeConfigBase):
    buying_model: Literal["CPL"] = Field(default="CPL", alias="buying_model")


class RevShareConfig(_TypeConfigBase):
    buying_model: Literal["REV_SHARE"] = Field(default="REV_SHARE", alias="buying_model")
    rev_share_pct: NonNegativeAmount = 0.0


class HybridConfig(_TypeConfigBase):
    """Base CPA (``price``) plus a revenue share on every conversion."""

    buying_model: Literal["HYBRID"] = Field(default="HYBRID", alias="buying_model")
    rev_share_pct: NonNegativeAmount = 0.0


class FlatFeeConfig(_TypeConfigBase):
    buying_model: Literal["FLAT_FEE"] = Field(default="FLAT_FEE", alias="buying_model")
    traffic_per_unit: OptionalNonNegativeAmount = None


class RetainerConfig(_TypeConfigBase):
    buying_model: Literal["RETAINER"] = Field(default="RETAINER", alias="buying_model")
    traffic_per_unit: OptionalNonNegativeAmount = None


class UnitBasedConfig(_TypeConfigBase):
    """``price`` is the cost of one unit (a newsletter slot, a banner week...)."""

    buying_model: Literal["UNIT_BASED"] = Field(default="UNIT_BASED", alias="buying_model")
    reach_per_unit: NonNegativeAmount = 0.0


class ManualInputConfig(_TypeConfigBase):
    """Volumes typed in by the planner; nothing is derived from spend."""

    buying_model: Literal["MANUAL_INPUT"] = Field(default="MANUAL_INPUT", alias="buying_model")
    impressions: NonNegativeAmount = 0.0
    clicks: NonNegativeAmount = 0.0
    conversions: NonNegativeAmount = 0.0
    revenue: NonNegativeAmount = 0.0


TypeConfig = Annotated[
    Union[
        CPMConfig,
        CPCConfig,
        CPAConfig,
        CPLConfig,
        RevShareConfig,
        HybridConfig,
        FlatFeeConfig,
        RetainerConfig,
        UnitBasedConfig,
        ManualInputConfig,
    ],
    Field(discriminator="buying_model"),
]


# ---------------------------------------------------------------------------
# Name-based inference (used for records that arrive without family/model)
# ---------------------------------------------------------------------------

def _has_token(text: str, token: str) -> bool:
    return re.search(rf"\b{re.escape(token)}\b", text) is not None


def infer_channel_family(name: str) -> ChannelFamily:
    lower = (name or "").lower()

    if any(k in lower for k in ("seo", "content", "blog")):
        return ChannelFamily.SEO_CONTENT
    if any(k in lower for k in ("affiliate", "partner", "cpa")):
        return ChannelFamily.AFFILIATE
    if any(k in lower for k in ("influencer", "twitch", "tiktok")):
        return ChannelFamily.INFLUENCER
    if _has_token(lower, "pr") or "brand" in lower:
        return ChannelFamily.PR_BRAND
    if "email" in lower or "crm" in lower:
        return ChannelFamily.EMAIL_CRM

    return ChannelFamily.PAID_MEDIA


def infer_buying_model(name: str, family: ChannelFamily) -> BuyingModel:
    lower = (name or "").lower()

    if "revshare" in lower or _has_token(lower, "rs"):
        return BuyingModel.REV_SHARE
    if "hybrid" in lower:
        return BuyingModel.HYBRID
    if "fixed" in lower or "listing" in lower:
        return BuyingModel.FLAT_FEE
    if "retainer" in lower:
        return BuyingModel.RETAINER
    if "cpa" in lower:
        return BuyingModel.CPA
    if "cpc" in lower:
        return BuyingModel.CPC
    if "cpm" in lower:
        return BuyingModel.CPM

    return FAMILY_DEFAULT_MODEL[family]


def _tag(value: Any) -> str:
    return str(getattr(value, "value", value)).upper()


# ---------------------------------------------------------------------------
# Channel & multipliers
# ---------------------------------------------------------------------------

class Channel(_Record):
    """One budget line item."""

    id: str = Field(min_length=1)
    name: str = ""
    category: ChannelCategory = ChannelCategory.OTHER
    family: ChannelFamily
    tier: Tier
    type_config: TypeConfig
    allocation_pct: Amount = 0.0
    locked: bool = False
    is_active: bool = True

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = dict(data)
        name = data.get("name") or ""

        family = data.get("family") or infer_channel_family(name)
        family = ChannelFamily(getattr(family, "value", family))
        data["family"] = family

        raw_config = data.pop("typeConfig", None)
        raw_config = data.get("type_config", raw_config)
        top_level_model = data.pop("buying_model", None) or data.pop("buyingModel", None)

        if isinstance(raw_config, BaseModel):
            model = BuyingModel(raw_config.buying_model)
        else:
            config = dict(raw_config or {})
            tag = config.pop("buyingModel", None) or config.get("buying_model") or top_level_model
            model = BuyingModel(_tag(tag)) if tag else infer_buying_model(name, family)
            config["buying_model"] = model.value
            raw_config = config
        data["type_config"] = raw_config

        if not data.get("tier"):
            data["tier"] = Tier.FIXED if model in FIXED_FEE_MODELS else Tier.SCALABLE

        return data

    @field_validator("allocation_pct")
    @classmethod
    def _clamp_allocation(cls, v: float) -> float:
        return clamp_pct(v)

    @property
    def buying_model(self) -> BuyingModel:
        return BuyingModel(self.type_config.buying_model)

    @property
    def fixed_cost(self) -> float:
        return self.type_config.fixed_cost

    @property
    def is_fixed_tier(self) -> bool:
        return self.tier == Tier.FIXED

    @property
    def is_fixed_fee(self) -> bool:
        return self.buying_model in FIXED_FEE_MODELS

    def with_allocation(self, pct: float) -> "Channel":
        """Return a copy holding ``pct`` (clamped to [0, 100])."""
        return self.model_copy(update={"allocation_pct": clamp_pct(pct)})


class GlobalMultipliers(_Record):
    """Cross-cutting adjustments applied at metrics time."""

    spend_multiplier: NonNegativeAmount = 1.0
    # signed: a negative bump lowers every channel's CTR
    ctr_bump: Amount = 0.0
    cpm_override: OptionalNonNegativeAmount = Field(
        default=None,
        validation_alias=AliasChoices("cpm_override", "cpmOverride", "defaultCpmOverride"),
    )
    cpa_target: OptionalNonNegativeAmount = None
    roas_target: OptionalNonNegativeAmount = None
    player_value: NonNegativeAmount = Field(
        default_factory=lambda: get_config().metrics.default_player_value,
    )

    @property
    def has_targets(self) -> bool:
        return bool(self.cpa_target) or bool(self.roas_target)


# ---------------------------------------------------------------------------
# Derived output contracts
# ---------------------------------------------------------------------------

class Metrics(_Record):
    """Funnel metrics derived for one channel at one spend level."""

    spend: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    conversions: float = 0.0
    cpa: float | None = None
    revenue: float = 0.0
    roas: float = 0.0
    cpm: float = 0.0
    ctr: float = 0.0
    conversion_rate: float = 0.0


class ChannelWithMetrics(_Record):
    channel: Channel
    metrics: Metrics
    above_cpa_target: bool = False
    below_roas_target: bool = False
    warnings: list[str] = Field(default_factory=list)

    @property
    def id(self) -> str:
        return self.channel.id


class BlendedMetrics(_Record):
    """Plan-level totals aggregated from channel metrics."""

    total_spend: float = 0.0
    total_impressions: float = 0.0
    total_clicks: float = 0.0
    total_conversions: float = 0.0
    total_revenue: float = 0.0
    blended_cpa: float | None = None
    blended_roas: float = 0.0

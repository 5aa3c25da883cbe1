"""Shared fixtures for Budget-Genie tests."""

import pytest

from budget_genie.config import set_config
from budget_genie.contracts import Channel
from budget_genie.plan import MediaPlan


def make_channel(
    channel_id: str,
    pct: float = 0.0,
    model: str = "CPM",
    price: float = 10.0,
    locked: bool = False,
    active: bool = True,
    category: str = "Other",
    tier: str | None = None,
    name: str | None = None,
    **config,
) -> Channel:
    """Build a channel with an explicit buying model."""
    data = {
        "id": channel_id,
        "name": name or channel_id,
        "category": category,
        "allocation_pct": pct,
        "locked": locked,
        "is_active": active,
        "type_config": {"buying_model": model, "price": price, **config},
    }
    if tier is not None:
        data["tier"] = tier
    return Channel(**data)


@pytest.fixture(autouse=True)
def reset_config():
    """Every test starts from the default configuration."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def channel_factory():
    return make_channel


@pytest.fixture
def three_channels():
    return [
        make_channel("a", 50),
        make_channel("b", 30),
        make_channel("c", 20),
    ]


@pytest.fixture
def sample_plan():
    return MediaPlan(
        name="Q3 Launch",
        total_budget=100_000,
        channels=[
            make_channel("google-search", 40, model="CPC", price=2.0, category="Paid Search",
                         name="Google Search"),
            make_channel("meta-social", 30, model="CPM", price=8.0, category="Paid Social",
                         name="Meta Social"),
            make_channel("affiliate-cpa", 20, model="CPA", price=60.0, category="Affiliate",
                         name="Affiliate CPA"),
            make_channel("seo-retainer", 10, model="RETAINER", price=5000.0, category="SEO/Content",
                         name="SEO Retainer"),
        ],
    )

"""Tests for the static plan catalog."""
import json

import pytest

from quotarelay.core.config import Settings
from quotarelay.features.plans.catalog import (
    DEFAULT_PLANS,
    PlanCatalog,
    PlanDescriptor,
    load_catalog,
)


def test_lookup_returns_exact_descriptor_for_every_default_plan():
    catalog = PlanCatalog.from_entries(DEFAULT_PLANS)

    for entry in DEFAULT_PLANS:
        plan = catalog.lookup(entry["priceId"])
        assert plan is not None
        assert plan.name == entry["name"]
        assert plan.message_limit == entry["messageLimit"]


def test_default_catalog_tiers():
    catalog = load_catalog(Settings(_env_file=None))

    assert catalog.lookup("price_1RncU5ION331djj7xzUmC") == PlanDescriptor("price_1RncU5ION331djj7xzUmC", "Starter", 50)
    assert catalog.lookup("price_1RncUtION331djj7om5oiL").message_limit == 200
    premium = catalog.lookup("price_1RncVMION331djj7F3jbN")
    assert premium.name == "Premium"
    assert premium.unlimited is True


@pytest.mark.parametrize("price_id", ["price_unknown", "", None])
def test_lookup_unknown_price_returns_none(price_id):
    catalog = PlanCatalog.from_entries(DEFAULT_PLANS)
    assert catalog.lookup(price_id) is None


def test_duplicate_price_id_rejected():
    with pytest.raises(ValueError, match="Duplicate price_id"):
        PlanCatalog(
            [
                PlanDescriptor("price_a", "Starter", 50),
                PlanDescriptor("price_a", "Standard", 200),
            ]
        )


def test_legacy_minus_one_means_unlimited():
    catalog = PlanCatalog.from_entries([{"priceId": "price_x", "name": "Unlimited", "messageLimit": -1}])
    assert catalog.lookup("price_x").message_limit is None


@pytest.mark.parametrize("limit", [-5, "10", 2.5, True])
def test_invalid_limit_rejected(limit):
    with pytest.raises(ValueError):
        PlanCatalog.from_entries([{"priceId": "price_x", "name": "Bad", "messageLimit": limit}])


def test_catalog_from_settings_json():
    raw = json.dumps(
        [
            {"priceId": "price_basic", "name": "Basic", "messageLimit": 25},
            {"priceId": "price_max", "name": "Max", "messageLimit": None},
        ]
    )
    catalog = load_catalog(Settings(_env_file=None, PLAN_CATALOG_JSON=raw))

    assert len(catalog) == 2
    assert "price_basic" in catalog
    assert "price_1RncU5ION331djj7xzUmC" not in catalog
    assert [p.name for p in catalog] == ["Basic", "Max"]


def test_catalog_json_must_be_list():
    with pytest.raises(ValueError):
        PlanCatalog.from_json('{"priceId": "price_basic"}')

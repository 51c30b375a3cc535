from __future__ import annotations

from decimal import Decimal

import pytest

from app.verticals.wholesale.domain.models import PricingRules
from app.verticals.wholesale.engine.normalize import apply_bulk_update
from app.verticals.wholesale.errors import InvalidInput

D = Decimal


def test_store_upserts_documents(store, shop):
    assert store.get_settings(shop) is None

    store.put_settings(shop, {"customerTypes": []})
    store.put_settings(shop, {"customerTypes": [{"id": "a", "tag": "a"}]})

    assert store.get_settings(shop) == {"customerTypes": [{"id": "a", "tag": "a"}]}


def test_store_customer_pricing_is_per_shop(store):
    store.put_customer_pricing("a.myshopify.com", "c1", {"customerId": "c1"})
    store.put_customer_pricing("b.myshopify.com", "c2", {"customerId": "c2"})

    assert store.get_customer_pricing("a.myshopify.com", "c1") == {"customerId": "c1"}
    assert store.get_customer_pricing("b.myshopify.com", "c1") is None


def test_settings_roundtrip_keeps_order(repo, shop, customer_types):
    repo.save_settings(shop, list(reversed(customer_types)), guest_pricing_type_id="t_student")

    loaded = repo.load_settings(shop)

    assert [t.id for t in loaded.registry] == ["t_student", "t_esth", "t_salon"]
    assert loaded.guest_pricing_type_id == "t_student"


def test_settings_reject_unknown_guest_type(repo, shop, customer_types):
    with pytest.raises(InvalidInput) as e:
        repo.save_settings(shop, customer_types, guest_pricing_type_id="nope")
    assert e.value.code == "UNKNOWN_CUSTOMER_TYPE"


def test_missing_settings_is_empty_registry(repo):
    loaded = repo.load_settings("unknown.myshopify.com")

    assert len(loaded.registry) == 0
    assert loaded.guest_pricing_type_id is None


def test_rules_roundtrip(repo, registry, fixed_now, shop):
    rules, _ = apply_bulk_update(
        PricingRules(shop_domain=shop),
        [{"productId": "P", "typeDiscounts": {"salon": 35}, "moq": {"salon": 4}}],
        registry,
        now=fixed_now,
    )
    repo.save_rules(rules)

    back = repo.load_rules(shop, registry)

    assert back.override_for("P").per_type_discounts["t_salon"].value == D("35")
    assert back.override_for("P").per_type_moq == {"t_salon": 4}


def test_get_or_create_overlay(repo, shop):
    assert repo.load_overlay(shop, "c1") is None

    created = repo.get_or_create_overlay(shop, "c1")

    assert created.customer_id == "c1"
    assert created.is_empty
    assert repo.load_overlay(shop, "c1") == created

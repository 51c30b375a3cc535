from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from app.verticals.wholesale.cache import price_key, type_key
from app.verticals.wholesale.domain.models import ApprovalState
from app.verticals.wholesale.domain.values import utcnow
from app.verticals.wholesale.engine.context import AppliedRuleKind, PricingQuery, PricingSource
from app.verticals.wholesale.errors import InvalidInput, NotFound

D = Decimal


def _query(**kw) -> PricingQuery:
    kw.setdefault("product_id", "P")
    kw.setdefault("regular_price", D("100"))
    return PricingQuery(**kw)


def test_approved_customer_gets_type_pricing_with_tiers(service, shop):
    service.bulk_update(shop, [{"productId": "P", "typeTiers": {"salon": [{"qty": 10, "discount": 10}]}}])

    res = service.resolve(shop, _query(tags=["salon", "pro-pricing"], quantity=12))

    assert res.approval_state == ApprovalState.APPROVED
    assert res.customer_type_id == "t_salon"
    assert res.discount_percent == D("28")
    assert res.unit_price == D("72.00")


def test_pending_customer_gets_no_type_discount(service, shop):
    res = service.resolve(shop, _query(tags=["salon", "pending-approval"]))

    assert res.approval_state == ApprovalState.PENDING
    assert res.discount_percent == D("0")
    assert res.tier_applied is False


def test_guest_sees_guest_pricing_type_without_tiers(service, shop, customer_types):
    service.save_settings(shop, customer_types, guest_pricing_type_id="t_student")
    service.bulk_update(shop, [{"productId": "P", "tiers": [{"qty": 1, "discount": 50}]}])

    res = service.resolve(shop, _query(tags=[]))

    assert res.approval_state == ApprovalState.GUEST
    assert res.customer_type_id == "t_student"
    assert res.discount_percent == D("10")
    assert res.tier_applied is False


def test_explicit_customer_type(service, shop):
    res = service.resolve(shop, _query(customer_type_id="t_esth", quantity=1))

    assert res.customer_type_id == "t_esth"
    assert res.discount_percent == D("15")
    assert res.moq_required == 2
    assert res.moq_satisfied is False


def test_unknown_customer_type_is_zero(service, shop):
    res = service.resolve(shop, _query(customer_type_id="ghost"))

    assert res.discount_percent == D("0")
    assert res.applied_rule_kind == AppliedRuleKind.NONE


def test_fractional_quantity_is_rejected(service, shop):
    with pytest.raises(InvalidInput) as e:
        service.resolve(shop, _query(quantity="2.5"))
    assert e.value.code == "INVALID_QUANTITY"


def test_overlay_takes_precedence(service, fixed_now, shop):
    service.add_product_rule(shop, "c1", {"productId": "P", "ruleType": "fixed_price", "value": 42})

    res = service.resolve(shop, _query(customer_id="c1", tags=["salon", "pro-pricing"]), now=fixed_now)

    assert res.source == PricingSource.CUSTOMER_OVERLAY
    assert res.unit_price == D("42.00")
    assert res.discount_percent == D("58")
    assert res.applied_rule_kind == AppliedRuleKind.FIXED_PRICE


def test_expired_overlay_rule_falls_through_to_overlay_base(service, fixed_now, shop):
    service.update_customer_profile(shop, "c1", base_discount=30)
    service.add_product_rule(
        shop,
        "c1",
        {
            "productId": "P",
            "ruleType": "fixed_price",
            "value": 9.99,
            "expiresAt": (fixed_now - timedelta(days=1)).isoformat(),
        },
    )

    res = service.resolve(shop, _query(customer_id="c1", tags=["salon", "pro-pricing"]), now=fixed_now)

    assert res.applied_rule_kind == AppliedRuleKind.BASE_DISCOUNT
    assert res.unit_price == D("70.00")


def test_overlay_requires_regular_price(service, shop):
    service.add_product_rule(shop, "c1", {"productId": "P", "ruleType": "percentage", "value": 5})

    with pytest.raises(InvalidInput) as e:
        service.resolve(shop, _query(customer_id="c1", regular_price=None))
    assert e.value.code == "REGULAR_PRICE_REQUIRED"


def test_resolution_is_cached_per_customer_and_invalidated(service, fake_redis, shop):
    service.classify(shop, ["salon", "pro-pricing"], customer_id="c9")
    assert type_key(shop, "c9") in fake_redis.data

    first = service.resolve(shop, _query(customer_id="c9"))
    assert first.discount_percent == D("20")
    assert price_key(shop, "P", "c9", 1, None) in fake_redis.data

    service.bulk_update(shop, [{"productId": "P", "typeDiscounts": {"salon": 40}}])
    assert price_key(shop, "P", "c9", 1, None) not in fake_redis.data

    second = service.resolve(shop, _query(customer_id="c9"))
    assert second.discount_percent == D("40")


def test_cart_discount_not_logged_in(service, shop):
    out = service.cart_discount(shop, "P")

    assert out["discount"] == 0.0
    assert out["message"] == "Not logged in"


def test_cart_discount_requires_approval(service, shop):
    out = service.cart_discount(shop, "P", customer_id="c1", tags="salon, pending-approval")

    assert out["discount"] == 0.0
    assert out["message"] == "Customer not approved for wholesale pricing"


def test_cart_discount_tier_and_moq(service, shop):
    service.bulk_update(
        shop,
        [{"productId": "P", "typeTiers": {"salon": [{"qty": 10, "discount": 10}]}, "moq": {"salon": 5}}],
    )

    below = service.cart_discount(shop, "P", customer_id="c1", tags="salon, pro-pricing", quantity=3)
    assert below["meetsMinimum"] is False
    assert below["discount"] == 0.0
    assert below["message"] == "Below minimum order quantity"

    tier = service.cart_discount(shop, "P", customer_id="c1", tags="salon, pro-pricing", quantity="12")
    assert tier["type"] == "tier"
    assert tier["discount"] == 28.0
    assert tier["meetsMinimum"] is True


def test_product_pricing_for_approved_customer(service, shop):
    service.bulk_update(shop, [{"productId": "P", "typeTiers": {"salon": [{"qty": 10, "discount": 10}]}}])

    out = service.product_pricing(shop, "P", D("100"), tags=["salon", "pro-pricing"])

    assert out["customerStatus"] == "approved"
    assert out["displayPrice"]["unitPrice"] == "80.00"
    assert out["price"]["unitPrice"] == "80.00"
    assert out["tiers"] == [{"qty": 10, "discount": "10", "effectiveDiscount": "28.00", "price": "72.00"}]


def test_product_pricing_hides_tiers_from_guests(service, shop):
    service.bulk_update(shop, [{"productId": "P", "typeTiers": {"salon": [{"qty": 10, "discount": 10}]}}])

    out = service.product_pricing(shop, "P", D("100"))

    assert out["customerStatus"] == "guest"
    assert out["tiers"] == []


def test_reset_and_default(service, shop):
    service.bulk_update(shop, [{"productId": "A", "value": 10}, {"productId": "B", "value": 10}])

    assert service.reset(shop, ["A", "Z"]) == 1
    assert list(service.pricing_rules(shop).overrides) == ["B"]

    rules = service.set_default_discount(shop, 12)
    assert rules.default_discount_pct == D("12")


def test_review_and_assign_type(service, shop):
    tags, result = service.review(shop, "c1", ["salon", "pending-approval"], "approve")
    assert tags == ["salon", "pro-pricing"]
    assert result.state == ApprovalState.APPROVED

    tags, result = service.assign_type(shop, "c1", tags, "t_esth")
    assert tags == ["pro-pricing", "esthetician"]
    assert result.customer_type_id == "t_esth"


def test_calculate_customer_price_without_overlay(service, fixed_now, shop):
    out = service.calculate_customer_price(shop, "nobody", "P", D("10"), quantity=3, now=fixed_now)

    assert out.final_price == D("10.00")
    assert out.applied_rule is None


@pytest.mark.parametrize(
    "tags,state",
    [
        (["salon", "rejected"], ApprovalState.REJECTED),
        (["salon", "pending-approval"], ApprovalState.PENDING),
        ([], ApprovalState.GUEST),
    ],
)
def test_unapproved_customers_skip_global_override(service, shop, tags, state):
    service.bulk_update(shop, [{"productId": "P", "type": "percentage", "value": 40}])

    res = service.resolve(shop, _query(tags=tags))

    assert res.approval_state == state
    assert res.discount_percent == D("0")
    assert res.unit_price == D("100.00")
    assert res.applied_rule_kind == AppliedRuleKind.NONE


def test_pending_customer_sees_guest_pricing_type(service, shop, customer_types):
    service.save_settings(shop, customer_types, guest_pricing_type_id="t_student")

    res = service.resolve(shop, _query(tags=["salon", "pending-approval"], quantity=20))

    assert res.approval_state == ApprovalState.PENDING
    assert res.customer_type_id == "t_student"
    assert res.discount_percent == D("10")
    assert res.tier_applied is False


def test_cached_overlay_price_expires_with_its_rule(service, fake_redis, shop):
    expires = utcnow() + timedelta(seconds=60)
    service.add_product_rule(
        shop, "c5", {"productId": "P", "ruleType": "fixed_price", "value": 9.99, "expiresAt": expires.isoformat()}
    )

    res = service.resolve(shop, _query(customer_id="c5"))

    assert res.unit_price == D("9.99")
    assert 0 < fake_redis.ttls[price_key(shop, "P", "c5", 1, None)] <= 60


def test_explicit_now_bypasses_price_cache(service, fake_redis, fixed_now, shop):
    expires = fixed_now + timedelta(minutes=1)
    service.add_product_rule(
        shop, "c6", {"productId": "P", "ruleType": "fixed_price", "value": 9.99, "expiresAt": expires.isoformat()}
    )

    before = service.resolve(shop, _query(customer_id="c6"), now=fixed_now)
    after = service.resolve(shop, _query(customer_id="c6"), now=fixed_now + timedelta(minutes=2))

    assert before.unit_price == D("9.99")
    assert after.unit_price == D("100.00")
    assert after.applied_rule_kind == AppliedRuleKind.NONE
    assert price_key(shop, "P", "c6", 1, None) not in fake_redis.data


def test_new_classification_drops_cached_prices(service, fake_redis, shop):
    first = service.resolve(shop, _query(customer_id="c7"))
    assert first.approval_state == ApprovalState.GUEST
    assert first.discount_percent == D("0")
    assert price_key(shop, "P", "c7", 1, None) in fake_redis.data

    tagged = service.resolve(shop, _query(customer_id="c7", tags="salon,pro-pricing"))
    assert tagged.discount_percent == D("20")
    assert price_key(shop, "P", "c7", 1, None) not in fake_redis.data

    again = service.resolve(shop, _query(customer_id="c7"))
    assert again.approval_state == ApprovalState.APPROVED
    assert again.discount_percent == D("20")


def test_review_batch_collects_errors(service, shop):
    out = service.review_batch(
        shop,
        [
            {"customerId": "c1", "tags": ["salon", "pending-approval"]},
            {"customerId": "", "tags": ["salon"]},
        ],
        "Approve",
    )

    assert len(out.updated) == 1
    cid, tags, classification = out.updated[0]
    assert (cid, tags) == ("c1", ["salon", "pro-pricing"])
    assert classification.state == ApprovalState.APPROVED
    assert len(out.errors) == 1
    assert out.errors[0]["customerId"] is None
    assert out.errors[0]["error"]["code"] == "REQUIRED"


def test_review_batch_rejects_unknown_action(service, shop):
    with pytest.raises(InvalidInput) as e:
        service.review_batch(shop, [{"customerId": "c1", "tags": []}], "promote")
    assert e.value.code == "UNKNOWN_ACTION"


def test_assign_type_batch(service, shop):
    out = service.assign_type_batch(
        shop,
        [{"customerId": "c1", "tags": ["salon", "pro-pricing"]}, {"customerId": "c2", "tags": "newsletter"}],
        "t_esth",
    )

    assert [cid for cid, _, _ in out.updated] == ["c1", "c2"]
    assert all(c.customer_type_id == "t_esth" for _, _, c in out.updated)
    assert out.errors == []

    with pytest.raises(NotFound) as e:
        service.assign_type_batch(shop, [{"customerId": "c1", "tags": []}], "missing")
    assert e.value.code == "CUSTOMER_TYPE_NOT_FOUND"

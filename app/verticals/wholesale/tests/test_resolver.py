from __future__ import annotations

from decimal import Decimal

import pytest

from app.verticals.wholesale.domain.models import (
    MAX_TAG_LENGTH,
    ApprovalState,
    CustomerType,
    Discount,
    DiscountKind,
    ProductOverride,
    Tier,
)
from app.verticals.wholesale.engine.context import AppliedRuleKind
from app.verticals.wholesale.engine.resolver import (
    base_discount,
    resolve_moq,
    resolve_price,
    select_tier,
    stack_discounts,
)
from app.verticals.wholesale.errors import InvalidInput

D = Decimal


def _pct(value) -> Discount:
    return Discount(kind=DiscountKind.PERCENTAGE, value=D(str(value)))


def test_registry_default_without_override(salon, regular_price):
    res = resolve_price(None, salon, 1, regular_price=regular_price)

    assert res.unit_price == D("80.00")
    assert res.discount_percent == D("20")
    assert res.applied_rule_kind == AppliedRuleKind.REGISTRY_DEFAULT
    assert res.tier_applied is False
    assert res.moq_satisfied is True


def test_per_type_tier_stacks_on_base(salon, regular_price):
    override = ProductOverride(
        product_id="P",
        per_type_tiers={"t_salon": (Tier(qty=10, discount=D("10")), Tier(qty=50, discount=D("20")))},
    )

    res = resolve_price(override, salon, 12, regular_price=regular_price)

    assert res.tier_applied is True
    assert res.tier_qty == 10
    assert res.discount_percent == D("28")
    assert res.unit_price == D("72.00")
    assert any(s.startswith("Tier per_type qty>=10") for s in res.steps)


def test_legacy_moq_by_tag_not_met_still_computes_discount(salon, regular_price):
    override = ProductOverride(product_id="P", legacy_moq={"salon": 5})

    res = resolve_price(override, salon, 3, regular_price=regular_price)

    assert res.moq_required == 5
    assert res.moq_satisfied is False
    assert res.discount_percent == D("20")
    assert res.granted_discount_percent == D("0")
    assert any(s.startswith("FAIL: Minimum order quantity 5") for s in res.steps)


def test_empty_per_type_map_falls_back_to_legacy(salon, regular_price):
    override = ProductOverride(product_id="P", legacy=_pct(15), per_type_discounts={})

    res = resolve_price(override, salon, 1, regular_price=regular_price)

    assert res.discount_percent == D("15")
    assert res.applied_rule_kind == AppliedRuleKind.OVERRIDE_PERCENTAGE
    assert res.unit_price == D("85.00")


@pytest.mark.parametrize("qty", [0, -3])
def test_non_positive_quantity_behaves_as_one(salon, regular_price, qty):
    override = ProductOverride(
        product_id="P",
        legacy_tiers=(Tier(qty=1, discount=D("5")),),
        per_type_moq={"t_salon": 1},
    )

    res = resolve_price(override, salon, qty, regular_price=regular_price)
    ref = resolve_price(override, salon, 1, regular_price=regular_price)

    assert res.quantity == 1
    assert res.unit_price == ref.unit_price
    assert res.tier_qty == 1
    assert res.moq_satisfied is True


def test_per_type_discount_wins_over_legacy(salon, regular_price):
    override = ProductOverride(
        product_id="P",
        legacy=_pct(50),
        per_type_discounts={"t_salon": _pct(30)},
    )

    d, kind = base_discount(override, salon)

    assert d.value == D("30")
    assert kind == AppliedRuleKind.PER_TYPE_PERCENTAGE


def test_legacy_ignored_for_other_type_when_per_type_data_exists(registry, regular_price):
    # per-type data is the operative mode: the esthetician falls back to the registry default
    override = ProductOverride(
        product_id="P",
        legacy=_pct(50),
        per_type_discounts={"t_salon": _pct(30)},
    )

    res = resolve_price(override, registry.get("t_esth"), 1, regular_price=regular_price)

    assert res.applied_rule_kind == AppliedRuleKind.REGISTRY_DEFAULT
    assert res.discount_percent == D("15")


def test_unknown_type_resolves_to_zero(regular_price):
    res = resolve_price(None, None, 5, regular_price=regular_price)

    assert res.discount_percent == D("0")
    assert res.unit_price == D("100.00")
    assert res.applied_rule_kind == AppliedRuleKind.NONE
    assert res.moq_required == 0


def test_fixed_base_returns_fixed_price_and_ignores_tiers(salon, regular_price):
    override = ProductOverride(
        product_id="P",
        per_type_discounts={"t_salon": Discount(kind=DiscountKind.FIXED, value=D("60"))},
        per_type_tiers={"t_salon": (Tier(qty=2, discount=D("10")),)},
    )

    res = resolve_price(override, salon, 10, regular_price=regular_price)

    assert res.unit_price == D("60.00")
    assert res.tier_applied is False
    assert res.discount_percent == D("40")
    assert res.applied_rule_kind == AppliedRuleKind.PER_TYPE_FIXED
    assert "META: Quantity tiers do not combine with a fixed override price" in res.steps


def test_fixed_above_regular_reports_zero_discount(salon):
    override = ProductOverride(
        product_id="P",
        legacy=Discount(kind=DiscountKind.FIXED, value=D("120")),
    )

    res = resolve_price(override, salon, 1, regular_price=D("100"))

    assert res.unit_price == D("120.00")
    assert res.discount_percent == D("0")


def test_tiers_skipped_when_not_applied(salon, regular_price):
    override = ProductOverride(product_id="P", legacy_tiers=(Tier(qty=1, discount=D("50")),))

    res = resolve_price(
        override,
        salon,
        10,
        regular_price=regular_price,
        apply_tiers=False,
        approval_state=ApprovalState.PENDING,
    )

    assert res.tier_applied is False
    assert res.discount_percent == D("20")
    assert res.approval_state == ApprovalState.PENDING


def test_per_type_tiers_preferred_over_legacy_tiers(salon, regular_price):
    override = ProductOverride(
        product_id="P",
        per_type_tiers={"t_salon": (Tier(qty=5, discount=D("10")),)},
        legacy_tiers=(Tier(qty=5, discount=D("50")),),
    )

    res = resolve_price(override, salon, 5, regular_price=regular_price)

    assert res.tier_discount == D("10")


def test_unit_price_never_negative():
    ct = CustomerType(id="x", tag="x", name="X", default_discount_pct=D("100"))
    override = ProductOverride(product_id="P", legacy_tiers=(Tier(qty=1, discount=D("100")),))

    res = resolve_price(override, ct, 1, regular_price=D("19.99"))

    assert res.unit_price == D("0.00")


# -----------------------------
# building blocks
# -----------------------------


def test_select_tier_picks_greatest_qualifying_qty():
    tiers = [Tier(qty=50, discount=D("20")), Tier(qty=10, discount=D("10")), Tier(qty=25, discount=D("15"))]

    assert select_tier(tiers, 30).qty == 25
    assert select_tier(tiers, 50).qty == 50
    assert select_tier(tiers, 9) is None


@pytest.mark.parametrize("base,tier", [("0", "10"), ("20", "10"), ("27", "10"), ("99", "1")])
def test_stacking_is_multiplicative_and_above_base(base, tier):
    b, t = D(base), D(tier)
    effective = stack_discounts(b, t)

    assert effective == (1 - (1 - b / 100) * (1 - t / 100)) * 100
    assert effective > b


def test_moq_lookup_order(registry):
    salon = registry.get("t_salon")
    esth = registry.get("t_esth")

    override = ProductOverride(product_id="P", per_type_moq={"t_salon": 12}, legacy_moq={"salon": 5})
    assert resolve_moq(override, salon) == 12

    override = ProductOverride(product_id="P", legacy_moq={"salon": 5})
    assert resolve_moq(override, salon) == 5

    # falls through to the type's moqDefault
    assert resolve_moq(override, esth) == 2
    assert resolve_moq(None, None) == 0


def test_moq_zero_is_always_satisfied(salon, regular_price):
    override = ProductOverride(product_id="P", per_type_moq={"t_salon": 0})

    res = resolve_price(override, salon, 1, regular_price=regular_price)

    assert res.moq_required == 0
    assert res.moq_satisfied is True


def test_longest_allowed_tag_resolves(regular_price):
    long_tag = "t" * MAX_TAG_LENGTH
    ct = CustomerType(id="t_long", tag=long_tag, name="Long", default_discount_pct=D("12.5"))
    override = ProductOverride(product_id="P", per_type_discounts={"t_long": Discount(DiscountKind.FIXED, D("70"))})

    fixed = resolve_price(override, ct, 1, regular_price=regular_price)
    pct = resolve_price(None, ct, 1, regular_price=regular_price)

    assert fixed.unit_price == D("70.00")
    assert pct.unit_price == D("87.50")
    assert long_tag in pct.steps[0]


def test_tag_over_limit_is_invalid_input():
    with pytest.raises(InvalidInput) as e:
        CustomerType(id="t_long", tag="t" * (MAX_TAG_LENGTH + 1), name="Long")
    assert e.value.code == "TAG_TOO_LONG"

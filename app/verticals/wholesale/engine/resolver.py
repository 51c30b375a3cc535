from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Tuple

from ..domain.models import (
    ApprovalState,
    CustomerType,
    Discount,
    DiscountKind,
    ProductOverride,
    Tier,
)
from ..domain.values import HUNDRED, ZERO, clamp_price, effective_quantity, money
from ..explain.breakdown import Breakdown, CheckStatus
from .context import AppliedRuleKind, PriceResolution

D = Decimal

TIER_SOURCE_PER_TYPE = "per_type"
TIER_SOURCE_LEGACY = "legacy"
TIER_SOURCE_NONE = "none"


def select_tier(tiers: Iterable[Tier], quantity: int) -> Optional[Tier]:
    """
    Highest qualifying threshold wins: the tier with the largest qty <= quantity.
    Not first-match, not cumulative.
    """
    best: Optional[Tier] = None
    for t in tiers:
        if t.qty > quantity:
            continue
        if best is None or t.qty > best.qty:
            best = t
    return best


def stack_discounts(base_pct: D, tier_pct: D) -> D:
    """
    Tier discount is an extra % off the already discounted price:
    1 - (1 - base/100) * (1 - tier/100), expressed as percent.
    """
    multiplier = (1 - base_pct / HUNDRED) * (1 - tier_pct / HUNDRED)
    return (1 - multiplier) * HUNDRED


def apply_percentage(regular_price: D, pct: D) -> D:
    return money(clamp_price(regular_price * (1 - pct / HUNDRED)))


def base_discount(
    override: Optional[ProductOverride],
    customer_type: Optional[CustomerType],
) -> Tuple[Discount, AppliedRuleKind]:
    """
    Priority (first match wins):
      1. per-type discount for this type
      2. legacy/global override, only when the product has no per-type discount data
      3. registry default of the type (percentage)
    Unknown / missing type -> zero discount.
    """
    type_id = customer_type.id if customer_type is not None else None

    if override is not None:
        if type_id is not None and type_id in override.per_type_discounts:
            d = override.per_type_discounts[type_id]
            kind = AppliedRuleKind.PER_TYPE_FIXED if d.is_fixed else AppliedRuleKind.PER_TYPE_PERCENTAGE
            return d, kind

        if not override.has_per_type_discounts and override.legacy is not None:
            d = override.legacy
            kind = AppliedRuleKind.OVERRIDE_FIXED if d.is_fixed else AppliedRuleKind.OVERRIDE_PERCENTAGE
            return d, kind

    if customer_type is not None:
        return (
            Discount(kind=DiscountKind.PERCENTAGE, value=customer_type.default_discount_pct),
            AppliedRuleKind.REGISTRY_DEFAULT,
        )

    return Discount.neutral(), AppliedRuleKind.NONE


def tier_source(
    override: Optional[ProductOverride],
    customer_type: Optional[CustomerType],
) -> Tuple[str, Tuple[Tier, ...]]:
    if override is None:
        return TIER_SOURCE_NONE, ()

    if customer_type is not None:
        per_type = override.per_type_tiers.get(customer_type.id)
        if per_type:
            return TIER_SOURCE_PER_TYPE, tuple(per_type)

    if override.legacy_tiers:
        return TIER_SOURCE_LEGACY, tuple(override.legacy_tiers)

    return TIER_SOURCE_NONE, ()


def resolve_moq(
    override: Optional[ProductOverride],
    customer_type: Optional[CustomerType],
) -> int:
    """perTypeMOQ[typeId] -> legacyMOQ[typeTag] -> type moqDefault. 0 = no minimum."""
    if customer_type is None:
        return 0

    if override is not None:
        if customer_type.id in override.per_type_moq:
            return max(0, int(override.per_type_moq[customer_type.id]))
        if customer_type.tag in override.legacy_moq:
            return max(0, int(override.legacy_moq[customer_type.tag]))

    return max(0, int(customer_type.moq_default))


def implied_discount_pct(regular_price: Optional[D], unit_price: D) -> D:
    if regular_price is None or regular_price <= ZERO:
        return ZERO
    pct = (1 - unit_price / regular_price) * HUNDRED
    if pct < ZERO:
        return ZERO
    if pct > HUNDRED:
        return HUNDRED
    return pct


def resolve_price(
    override: Optional[ProductOverride],
    customer_type: Optional[CustomerType],
    quantity: int,
    *,
    regular_price: Optional[D] = None,
    apply_tiers: bool = True,
    approval_state: ApprovalState = ApprovalState.APPROVED,
    product_id: Optional[str] = None,
    breakdown: Optional[Breakdown] = None,
) -> PriceResolution:
    """
    Price for (product override, customer type, quantity).

    - quantity < 1 behaves as 1
    - tier steps stack multiplicatively on a percentage base
    - a fixed base price is final: tiers never combine with it
    - the MOQ gate is reported, not enforced (discount is always computed)
    """
    bd = breakdown if breakdown is not None else Breakdown()
    qty = effective_quantity(int(quantity))
    pid = product_id if product_id is not None else (override.product_id if override else "")

    base, kind = base_discount(override, customer_type)
    type_label = customer_type.tag if customer_type is not None else "guest"

    tier: Optional[Tier] = None

    if base.is_fixed:
        unit_price: Optional[D] = money(clamp_price(base.value))
        discount_pct = implied_discount_pct(regular_price, unit_price)
        bd.add_step("BASE_FIXED_PRICE", f"Fixed override price ({type_label}): {unit_price}")

        _, configured = tier_source(override, customer_type)
        if apply_tiers and configured:
            bd.add_meta("TIERS_IGNORED", "Quantity tiers do not combine with a fixed override price")
    else:
        discount_pct = base.value
        bd.add_step("BASE_DISCOUNT", f"Base discount ({type_label}, {kind.value}): {base.value}%")

        if apply_tiers:
            src, tiers = tier_source(override, customer_type)
            tier = select_tier(tiers, qty)
            if tier is not None:
                discount_pct = stack_discounts(base.value, tier.discount)
                bd.add_step(
                    "TIER_STEP",
                    f"Tier {src} qty>={tier.qty}: extra {tier.discount}% (effective {money(discount_pct)}%)",
                )
            elif tiers:
                bd.add_meta("NO_TIER", f"No tier reached at qty={qty}")

        unit_price = apply_percentage(regular_price, discount_pct) if regular_price is not None else None

    moq = resolve_moq(override, customer_type)
    moq_ok = moq <= 0 or qty >= moq
    if moq > 0:
        bd.add_check(
            "MOQ",
            f"Minimum order quantity {moq} (qty={qty})",
            status=CheckStatus.OK if moq_ok else CheckStatus.FAIL,
        )

    return PriceResolution(
        product_id=str(pid),
        quantity=qty,
        unit_price=unit_price,
        regular_price=regular_price,
        discount_percent=discount_pct,
        applied_rule_kind=kind,
        tier_applied=tier is not None,
        tier_qty=tier.qty if tier is not None else None,
        tier_discount=tier.discount if tier is not None else None,
        moq_required=moq,
        moq_satisfied=moq_ok,
        customer_type_id=customer_type.id if customer_type is not None else None,
        approval_state=approval_state,
        steps=bd.as_strings(),
    )

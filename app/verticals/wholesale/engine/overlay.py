from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Tuple

from ..domain.models import (
    CustomerPricingOverlay,
    OverlayTier,
    ProductRule,
    RuleType,
    TierDiscountType,
    TierRule,
    TierScope,
)
from ..domain.values import HUNDRED, ZERO, clamp_price, effective_quantity, money, utcnow
from ..errors import NotFound
from ..explain.breakdown import Breakdown
from .context import AppliedRuleKind
from .normalize import product_rule_from_payload, product_rule_to_document

D = Decimal


@dataclass(frozen=True)
class OverlayPrice:
    final_price: D
    applied_rule: Optional[AppliedRuleKind]
    rule: Optional[ProductRule] = None
    tier: Optional[OverlayTier] = None
    quantity: int = 1
    steps: List[str] = field(default_factory=list)

    @property
    def tier_applied(self) -> bool:
        return self.tier is not None


def _candidates(
    overlay: CustomerPricingOverlay,
    product_id: str,
    variant_id: Optional[str],
    now: datetime,
) -> List[ProductRule]:
    """Live rules for this product/variant; variant-specific rules sort before product-wide ones."""
    live = [
        r
        for r in overlay.product_rules
        if r.matches(product_id, variant_id) and not r.is_expired(now)
    ]
    return sorted(live, key=lambda r: 0 if r.variant_id is not None else 1)


def next_expiry(
    overlay: CustomerPricingOverlay,
    product_id: str,
    variant_id: Optional[str],
    now: datetime,
) -> Optional[datetime]:
    """Earliest future expiry among the rules that can price this product/variant."""
    upcoming = [
        r.expires_at
        for r in overlay.product_rules
        if r.expires_at is not None and r.expires_at > now and r.matches(product_id, variant_id)
    ]
    return min(upcoming) if upcoming else None


def select_overlay_tier(
    tier_rules: Tuple[TierRule, ...],
    product_id: str,
    quantity: int,
) -> Optional[OverlayTier]:
    """
    Among tier rules covering the product, the tier with the greatest quantity <= requested.
    Ties go to a specific_product rule, then to the earlier rule.
    """
    best: Optional[OverlayTier] = None
    best_rank: Optional[Tuple[int, int]] = None

    for r in tier_rules:
        if not r.covers(product_id):
            continue
        specific = 1 if r.applies_to == TierScope.SPECIFIC_PRODUCT else 0
        for t in r.tiers:
            if t.quantity > quantity:
                continue
            rank = (t.quantity, specific)
            if best_rank is None or rank > best_rank:
                best, best_rank = t, rank
    return best


def _apply_tier(price: D, tier: OverlayTier) -> D:
    if tier.discount_type == TierDiscountType.PERCENTAGE:
        return price * (1 - tier.discount / HUNDRED)
    return clamp_price(price - tier.discount)


def calculate_price(
    overlay: CustomerPricingOverlay,
    product_id: str,
    variant_id: Optional[str],
    regular_price: D,
    quantity: int = 1,
    *,
    now: Optional[datetime] = None,
) -> OverlayPrice:
    """
    Customer-specific price:
      1. live fixed_price rule -> its value, final
      2. live percentage / fixed_amount rule on regular_price
      3. overlay base discount on regular_price
      4. best qualifying tier on top of 2/3
    Expired rules do not exist for resolution. Price floors at 0.
    """
    ts = now or utcnow()
    qty = effective_quantity(int(quantity))
    pid = str(product_id)
    bd = Breakdown()

    live = _candidates(overlay, pid, variant_id, ts)

    fixed = next((r for r in live if r.rule_type == RuleType.FIXED_PRICE), None)
    if fixed is not None:
        price = money(clamp_price(fixed.value))
        bd.add_step("CUSTOMER_FIXED_PRICE", f"Customer fixed price: {price}")
        return OverlayPrice(
            final_price=price,
            applied_rule=AppliedRuleKind.FIXED_PRICE,
            rule=fixed,
            quantity=qty,
            steps=bd.as_strings(),
        )

    price = regular_price
    applied: Optional[AppliedRuleKind] = None
    rule = next((r for r in live if r.rule_type != RuleType.FIXED_PRICE), None)

    if rule is not None and rule.rule_type == RuleType.PERCENTAGE:
        price = regular_price * (1 - rule.value / HUNDRED)
        applied = AppliedRuleKind.PERCENTAGE
        bd.add_step("CUSTOMER_PERCENTAGE", f"Customer rule: -{rule.value}%")
    elif rule is not None and rule.rule_type == RuleType.FIXED_AMOUNT:
        price = clamp_price(regular_price - rule.value)
        applied = AppliedRuleKind.FIXED_AMOUNT
        bd.add_step("CUSTOMER_FIXED_AMOUNT", f"Customer rule: -{rule.value} off")
    elif overlay.base_discount_pct > ZERO:
        price = regular_price * (1 - overlay.base_discount_pct / HUNDRED)
        applied = AppliedRuleKind.BASE_DISCOUNT
        bd.add_step("CUSTOMER_BASE_DISCOUNT", f"Customer base discount: -{overlay.base_discount_pct}%")

    tier = select_overlay_tier(overlay.tier_rules, pid, qty)
    if tier is not None:
        price = _apply_tier(price, tier)
        unit = "%" if tier.discount_type == TierDiscountType.PERCENTAGE else " off"
        bd.add_step("CUSTOMER_TIER", f"Customer tier qty>={tier.quantity}: -{tier.discount}{unit}")

    return OverlayPrice(
        final_price=money(clamp_price(price)),
        applied_rule=applied,
        rule=rule,
        tier=tier,
        quantity=qty,
        steps=bd.as_strings(),
    )


# -----------------------------
# Rule maintenance (pure: return a new overlay)
# -----------------------------


def add_product_rule(overlay: CustomerPricingOverlay, rule: ProductRule) -> CustomerPricingOverlay:
    """One rule per product/variant: an existing rule for the same pair is replaced."""
    kept = tuple(
        r
        for r in overlay.product_rules
        if not (r.product_id == rule.product_id and r.variant_id == rule.variant_id)
    )
    return replace(overlay, product_rules=kept + (rule,))


def remove_product_rule(overlay: CustomerPricingOverlay, rule_id: str) -> CustomerPricingOverlay:
    kept = tuple(r for r in overlay.product_rules if r.id != rule_id)
    if len(kept) == len(overlay.product_rules):
        raise NotFound("RULE_NOT_FOUND", f"Product rule not found: {rule_id}", {"ruleId": rule_id})
    return replace(overlay, product_rules=kept)


def update_product_rule(
    overlay: CustomerPricingOverlay,
    rule_id: str,
    updates: Mapping[str, Any],
) -> CustomerPricingOverlay:
    """Patch a rule; the merged payload is re-validated like a new rule."""
    for idx, r in enumerate(overlay.product_rules):
        if r.id != rule_id:
            continue
        merged = {**product_rule_to_document(r), **dict(updates), "id": r.id}
        updated = product_rule_from_payload(merged, source=f"productRules[{rule_id}]")
        rules = list(overlay.product_rules)
        rules[idx] = updated
        return replace(overlay, product_rules=tuple(rules))
    raise NotFound("RULE_NOT_FOUND", f"Product rule not found: {rule_id}", {"ruleId": rule_id})


def add_tier_rule(overlay: CustomerPricingOverlay, rule: TierRule) -> CustomerPricingOverlay:
    return replace(overlay, tier_rules=overlay.tier_rules + (rule,))


def remove_tier_rule(overlay: CustomerPricingOverlay, rule_id: str) -> CustomerPricingOverlay:
    kept = tuple(r for r in overlay.tier_rules if r.id != rule_id)
    if len(kept) == len(overlay.tier_rules):
        raise NotFound("RULE_NOT_FOUND", f"Tier rule not found: {rule_id}", {"ruleId": rule_id})
    return replace(overlay, tier_rules=kept)

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..domain.models import ApprovalState, CustomerType, PricingRules, ProductOverride
from ..domain.registry import CustomerTypeRegistry
from ..domain.values import ZERO, money
from ..explain.breakdown import Breakdown
from .context import AppliedRuleKind, PriceResolution
from .resolver import apply_percentage, base_discount, resolve_price, stack_discounts, tier_source

D = Decimal


def display_price(
    override: Optional[ProductOverride],
    registry: CustomerTypeRegistry,
    regular_price: D,
    *,
    shop_default_pct: D = ZERO,
    product_id: Optional[str] = None,
) -> PriceResolution:
    """
    Catalog/listing price without a customer: priced as the FIRST customer type
    in registry order (not the cheapest, not an average). No tiers, qty 1.

    Without any registry entry the shop-wide default discount stands in for step 3.
    """
    representative = registry.first()
    bd = Breakdown()
    if representative is not None:
        bd.add_meta("DISPLAY_TYPE", f"Display pricing as first customer type: {representative.tag}")

    res = resolve_price(
        override,
        representative,
        1,
        regular_price=regular_price,
        apply_tiers=False,
        approval_state=ApprovalState.GUEST,
        product_id=product_id,
        breakdown=bd,
    )

    if representative is None and res.applied_rule_kind == AppliedRuleKind.NONE and shop_default_pct > ZERO:
        bd.add_step("SHOP_DEFAULT", f"Shop default discount: {shop_default_pct}%")
        return PriceResolution(
            product_id=res.product_id,
            quantity=res.quantity,
            unit_price=apply_percentage(regular_price, shop_default_pct),
            regular_price=regular_price,
            discount_percent=shop_default_pct,
            applied_rule_kind=AppliedRuleKind.SHOP_DEFAULT,
            approval_state=ApprovalState.GUEST,
            steps=bd.as_strings(),
        )
    return res


def catalog_prices(
    rules: PricingRules,
    registry: CustomerTypeRegistry,
    products: List[Dict[str, Any]],
) -> List[PriceResolution]:
    """products: [{productId, regularPrice}] -> one display resolution each, input order kept."""
    out: List[PriceResolution] = []
    for p in products:
        pid = str(p["productId"])
        out.append(
            display_price(
                rules.override_for(pid),
                registry,
                p["regularPrice"],
                shop_default_pct=rules.default_discount_pct,
                product_id=pid,
            )
        )
    return out


def tier_table(
    override: Optional[ProductOverride],
    customer_type: Optional[CustomerType],
    regular_price: D,
) -> List[Dict[str, Any]]:
    """
    Volume price table shown to approved customers: every tier of the
    applicable tier source, sorted by qty, with the stacked effective discount.
    Empty for a fixed base price.
    """
    base, _ = base_discount(override, customer_type)
    if base.is_fixed:
        return []

    _, tiers = tier_source(override, customer_type)
    rows: List[Dict[str, Any]] = []
    for t in sorted(tiers, key=lambda x: x.qty):
        effective = stack_discounts(base.value, t.discount)
        rows.append(
            {
                "qty": t.qty,
                "discount": t.discount,
                "effectiveDiscount": money(effective),
                "price": apply_percentage(regular_price, effective),
            }
        )
    return rows

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..domain.models import (
    CustomerPricingOverlay,
    Discount,
    DiscountKind,
    OverlayTier,
    PricingRules,
    ProductOverride,
    ProductRule,
    RuleType,
    Tier,
    TierDiscountType,
    TierRule,
    TierScope,
)
from ..domain.registry import CustomerTypeRegistry
from ..domain.values import (
    ZERO,
    parse_datetime,
    parse_decimal,
    parse_moq,
    parse_non_negative,
    parse_percentage,
    parse_quantity,
    to_str,
    utcnow,
)
from ..errors import InvalidInput

D = Decimal

# Document keys (dynamic shape, keyed by customer type id)
K_DISCOUNTS = "customerDiscounts"
K_MOQ = "customerMOQ"
K_TIERS = "quantityTiers"

# Accepted aliases per concern: dynamic (id keyed) first, flat legacy (tag keyed) last
_DISCOUNT_KEYS = (K_DISCOUNTS, "perTypeDiscounts", "typeDiscounts")
_MOQ_KEYS = (K_MOQ, "perTypeMOQ", "typeMOQ")
_TIER_KEYS = (K_TIERS, "perTypeTiers", "typeTiers")

PLACEHOLDER_FLAG = "legacyPlaceholder"


# -----------------------------
# helpers
# -----------------------------


def _type_key(key: Any, registry: Optional[CustomerTypeRegistry]) -> str:
    """Map a type id or tag to the type id. Unknown keys are kept verbatim (never dropped)."""
    k = to_str(key)
    if registry is None:
        return k
    if registry.get(k) is not None:
        return k
    by_tag = registry.by_tag(k)
    if by_tag is not None:
        return by_tag.id
    return k


def _discount_kind(raw: Any, *, source: str) -> DiscountKind:
    s = to_str(raw).lower() or DiscountKind.PERCENTAGE.value
    try:
        return DiscountKind(s)
    except ValueError:
        raise InvalidInput(
            "UNKNOWN_DISCOUNT_TYPE",
            f"{source}: unknown discount type {raw!r} (expected fixed|percentage)",
            {"field": source},
        ) from None


def _parse_discount(raw: Any, *, source: str) -> Optional[Discount]:
    """Number (percentage) or {value, type}. null -> no discount configured."""
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        if raw.get("value") is None:
            return None
        kind = _discount_kind(raw.get("type"), source=f"{source}.type")
        value = parse_non_negative(raw.get("value"), source=f"{source}.value")
    else:
        kind = DiscountKind.PERCENTAGE
        value = parse_non_negative(raw, source=source)
    if kind == DiscountKind.PERCENTAGE:
        value = parse_percentage(value, source=source)
    return Discount(kind=kind, value=value)


def parse_tiers(raw: Any, *, source: str) -> Tuple[Tier, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise InvalidInput("INVALID_TIERS", f"{source}: tiers must be a list", {"field": source})

    out: List[Tier] = []
    for idx, t in enumerate(raw):
        if not isinstance(t, Mapping):
            raise InvalidInput("INVALID_TIERS", f"{source}[{idx}]: tier must be an object", {"field": source})
        qty_raw = t.get("qty", t.get("quantity"))
        qty = parse_quantity(qty_raw, source=f"{source}[{idx}].qty")
        if qty < 1:
            raise InvalidInput("OUT_OF_RANGE", f"{source}[{idx}].qty must be >= 1", {"field": source})
        out.append(Tier(qty=qty, discount=parse_percentage(t.get("discount"), source=f"{source}[{idx}].discount")))
    out.sort(key=lambda x: x.qty)
    return tuple(out)


def _first_mapping(raw: Mapping[str, Any], keys: Iterable[str]) -> List[Tuple[str, Mapping[str, Any]]]:
    found = []
    for k in keys:
        v = raw.get(k)
        if v is None:
            continue
        if not isinstance(v, Mapping):
            raise InvalidInput("INVALID_SHAPE", f"{k} must be an object keyed by customer type", {"field": k})
        found.append((k, v))
    return found


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


def _num(v: Optional[D]) -> Optional[float]:
    return None if v is None else float(v)


# -----------------------------
# Product overrides
# -----------------------------


def normalize(raw: Mapping[str, Any], registry: Optional[CustomerTypeRegistry] = None) -> ProductOverride:
    """
    Any historical override shape -> canonical ProductOverride.

    Shapes:
      - legacy:  {type, value, moq: {tag: qty}, tiers: [...]}
      - flat:    {typeDiscounts: {tag: pct}, typeTiers: {tag: [...]}, moq: {tag: qty}}
      - dynamic: {customerDiscounts: {id: {type, value}}, customerMOQ: {id: qty}, quantityTiers: {id: [...]}}

    With a registry, tag-keyed data is re-keyed to type ids; keys the registry does
    not know are kept as-is.
    """
    if not isinstance(raw, Mapping):
        raise InvalidInput("INVALID_SHAPE", "product override must be an object")
    product_id = to_str(raw.get("productId"))
    if not product_id:
        raise InvalidInput("REQUIRED", "productId is required", {"field": "productId"})
    src = f"override[{product_id}]"

    # per-type discounts (dynamic keys win over flat legacy keys for the same type)
    per_type_discounts: Dict[str, Discount] = {}
    for key, mapping in _first_mapping(raw, _DISCOUNT_KEYS):
        for type_key, val in mapping.items():
            tid = _type_key(type_key, registry)
            if tid in per_type_discounts:
                continue
            d = _parse_discount(val, source=f"{src}.{key}.{type_key}")
            if d is not None:
                per_type_discounts[tid] = d

    # per-type MOQ (explicit 0 is kept: "no minimum" for that type)
    per_type_moq: Dict[str, int] = {}
    for key, mapping in _first_mapping(raw, _MOQ_KEYS):
        for type_key, val in mapping.items():
            if val is None:
                continue
            tid = _type_key(type_key, registry)
            per_type_moq.setdefault(tid, parse_moq(val, source=f"{src}.{key}.{type_key}"))

    # legacy moq {tag: qty}: known tags move to per-type, unknown stay tag-keyed
    legacy_moq: Dict[str, int] = {}
    legacy_moq_raw = raw.get("moq") or {}
    if not isinstance(legacy_moq_raw, Mapping):
        raise InvalidInput("INVALID_SHAPE", f"{src}.moq must be an object", {"field": "moq"})
    for tag, val in legacy_moq_raw.items():
        qty = parse_moq(val, source=f"{src}.moq.{tag}")
        if qty <= 0:
            continue
        ct = registry.by_tag(to_str(tag)) if registry is not None else None
        if ct is not None:
            per_type_moq.setdefault(ct.id, qty)
        else:
            legacy_moq[to_str(tag)] = qty

    # per-type tiers
    per_type_tiers: Dict[str, Tuple[Tier, ...]] = {}
    for key, mapping in _first_mapping(raw, _TIER_KEYS):
        for type_key, val in mapping.items():
            tid = _type_key(type_key, registry)
            if tid in per_type_tiers:
                continue
            tiers = parse_tiers(val, source=f"{src}.{key}.{type_key}")
            if tiers:
                per_type_tiers[tid] = tiers

    legacy_tiers = parse_tiers(raw.get("tiers"), source=f"{src}.tiers")

    # legacy / global discount, minus the neutral placeholder written for old readers
    legacy: Optional[Discount] = None
    if raw.get("value") is not None and not raw.get(PLACEHOLDER_FLAG):
        legacy = _parse_discount({"type": raw.get("type"), "value": raw.get("value")}, source=src)
        if (
            legacy is not None
            and per_type_discounts
            and legacy.kind == DiscountKind.PERCENTAGE
            and legacy.value == ZERO
        ):
            # pre-flag documents: 0% next to per-type data is the placeholder
            legacy = None

    return ProductOverride(
        product_id=product_id,
        legacy=legacy,
        per_type_discounts=per_type_discounts,
        per_type_moq=per_type_moq,
        per_type_tiers=per_type_tiers,
        legacy_moq=legacy_moq,
        legacy_tiers=legacy_tiers,
        updated_at=parse_datetime(raw.get("updatedAt"), source=f"{src}.updatedAt"),
    )


def _tiers_doc(tiers: Iterable[Tier]) -> List[Dict[str, Any]]:
    return [{"qty": t.qty, "discount": float(t.discount)} for t in tiers]


def to_document(override: ProductOverride) -> Dict[str, Any]:
    """
    Canonical ProductOverride -> stored document (dynamic shape).
    When per-type discounts are operative and there is no real global override,
    type/value get a neutral percentage/0 so older readers never see undefined.
    """
    doc: Dict[str, Any] = {"productId": override.product_id}

    if override.legacy is not None:
        doc["type"] = override.legacy.kind.value
        doc["value"] = float(override.legacy.value)
    elif override.has_per_type_discounts or override.per_type_moq or override.per_type_tiers:
        doc["type"] = DiscountKind.PERCENTAGE.value
        doc["value"] = 0.0
        doc[PLACEHOLDER_FLAG] = True

    doc[K_DISCOUNTS] = {
        tid: {"type": d.kind.value, "value": float(d.value)} for tid, d in override.per_type_discounts.items()
    }
    doc[K_MOQ] = dict(override.per_type_moq)
    doc[K_TIERS] = {tid: _tiers_doc(tiers) for tid, tiers in override.per_type_tiers.items()}
    doc["enabledTypes"] = sorted(
        set(override.per_type_discounts) | set(override.per_type_moq) | set(override.per_type_tiers)
    )
    doc["moq"] = dict(override.legacy_moq)
    doc["tiers"] = _tiers_doc(override.legacy_tiers)
    doc["updatedAt"] = _iso(override.updated_at)
    return doc


# -----------------------------
# Per-shop pricing rules document
# -----------------------------


def pricing_rules_from_document(
    doc: Optional[Mapping[str, Any]],
    shop_domain: str,
    registry: Optional[CustomerTypeRegistry] = None,
) -> PricingRules:
    if not doc:
        return PricingRules(shop_domain=shop_domain)

    overrides: Dict[str, ProductOverride] = {}
    for raw in doc.get("productOverrides") or []:
        ov = normalize(raw, registry)
        overrides[ov.product_id] = ov

    return PricingRules(
        shop_domain=to_str(doc.get("shopDomain")) or shop_domain,
        default_discount_pct=parse_percentage(doc.get("defaultDiscount") or 0, source="defaultDiscount"),
        overrides=overrides,
        updated_at=parse_datetime(doc.get("updatedAt"), source="updatedAt"),
    )


def pricing_rules_to_document(rules: PricingRules) -> Dict[str, Any]:
    return {
        "shopDomain": rules.shop_domain,
        "defaultDiscount": float(rules.default_discount_pct),
        "productOverrides": [to_document(ov) for ov in rules.overrides.values()],
        "updatedAt": _iso(rules.updated_at),
    }


def apply_bulk_update(
    rules: PricingRules,
    payloads: Iterable[Mapping[str, Any]],
    registry: Optional[CustomerTypeRegistry] = None,
    *,
    now: Optional[datetime] = None,
) -> Tuple[PricingRules, int]:
    """
    Whole-entry replace per product (last writer wins). All payloads are
    validated before anything is applied.
    """
    ts = now or utcnow()
    incoming = [replace(normalize(p, registry), updated_at=ts) for p in payloads]

    overrides = dict(rules.overrides)
    for ov in incoming:
        overrides[ov.product_id] = ov

    return replace(rules, overrides=overrides, updated_at=ts), len(incoming)


def reset_products(
    rules: PricingRules,
    product_ids: Iterable[Any],
    *,
    now: Optional[datetime] = None,
) -> Tuple[PricingRules, int]:
    """Reset to default: drop the overrides of the given products."""
    drop = {to_str(p) for p in product_ids}
    kept = {pid: ov for pid, ov in rules.overrides.items() if pid not in drop}
    removed = len(rules.overrides) - len(kept)
    return replace(rules, overrides=kept, updated_at=now or utcnow()), removed


def set_default_discount(rules: PricingRules, discount: Any, *, now: Optional[datetime] = None) -> PricingRules:
    pct = parse_percentage(discount, source="discount")
    return replace(rules, default_discount_pct=pct, updated_at=now or utcnow())


# -----------------------------
# Customer pricing overlay document
# -----------------------------


def _rule_type(raw: Any, *, source: str) -> RuleType:
    try:
        return RuleType(to_str(raw).lower())
    except ValueError:
        raise InvalidInput(
            "UNKNOWN_RULE_TYPE",
            f"{source}: unknown ruleType {raw!r} (expected percentage|fixed_amount|fixed_price)",
            {"field": source, "ruleType": raw},
        ) from None


def product_rule_from_payload(raw: Mapping[str, Any], *, source: str = "productRule") -> ProductRule:
    product_id = to_str(raw.get("productId"))
    if not product_id:
        raise InvalidInput("REQUIRED", f"{source}.productId is required", {"field": "productId"})

    rule_type = _rule_type(raw.get("ruleType"), source=f"{source}.ruleType")
    if rule_type == RuleType.PERCENTAGE:
        value = parse_percentage(raw.get("value"), source=f"{source}.value")
    else:
        value = parse_non_negative(raw.get("value"), source=f"{source}.value")

    kwargs: Dict[str, Any] = {}
    if raw.get("id") or raw.get("_id"):
        kwargs["id"] = to_str(raw.get("id") or raw.get("_id"))

    retail = raw.get("retailPrice", raw.get("originalPrice"))
    return ProductRule(
        product_id=product_id,
        rule_type=rule_type,
        value=value,
        variant_id=to_str(raw.get("variantId")) or None,
        retail_price=parse_non_negative(retail, source=f"{source}.retailPrice") if retail is not None else None,
        product_title=to_str(raw.get("productTitle")) or None,
        note=to_str(raw.get("note")),
        expires_at=parse_datetime(raw.get("expiresAt"), source=f"{source}.expiresAt"),
        updated_by=to_str(raw.get("updatedBy")) or None,
        **kwargs,
    )


def tier_rule_from_payload(raw: Mapping[str, Any], *, source: str = "tierRule") -> TierRule:
    scope_raw = to_str(raw.get("appliesTo")).lower() or TierScope.ALL_PRODUCTS.value
    try:
        scope = TierScope(scope_raw)
    except ValueError:
        raise InvalidInput(
            "UNKNOWN_SCOPE",
            f"{source}.appliesTo must be all_products|specific_product, got {raw.get('appliesTo')!r}",
            {"field": "appliesTo"},
        ) from None

    tiers_raw = raw.get("tiers") or []
    if not isinstance(tiers_raw, (list, tuple)) or not tiers_raw:
        raise InvalidInput("INVALID_TIERS", f"{source}.tiers must be a non-empty list", {"field": "tiers"})

    tiers: List[OverlayTier] = []
    for idx, t in enumerate(tiers_raw):
        tsrc = f"{source}.tiers[{idx}]"
        dtype_raw = to_str(t.get("discountType")).lower() or TierDiscountType.PERCENTAGE.value
        try:
            dtype = TierDiscountType(dtype_raw)
        except ValueError:
            raise InvalidInput(
                "UNKNOWN_DISCOUNT_TYPE", f"{tsrc}.discountType unknown: {t.get('discountType')!r}", {"field": tsrc}
            ) from None
        qty = parse_quantity(t.get("quantity", t.get("qty")), source=f"{tsrc}.quantity")
        if qty < 1:
            raise InvalidInput("OUT_OF_RANGE", f"{tsrc}.quantity must be >= 1", {"field": tsrc})
        if dtype == TierDiscountType.PERCENTAGE:
            disc = parse_percentage(t.get("discount"), source=f"{tsrc}.discount")
        else:
            disc = parse_non_negative(t.get("discount"), source=f"{tsrc}.discount")
        tiers.append(OverlayTier(quantity=qty, discount=disc, discount_type=dtype))

    kwargs: Dict[str, Any] = {}
    if raw.get("id") or raw.get("_id"):
        kwargs["id"] = to_str(raw.get("id") or raw.get("_id"))

    return TierRule(
        tiers=tuple(tiers),
        applies_to=scope,
        product_id=to_str(raw.get("productId")) or None,
        product_title=to_str(raw.get("productTitle")) or None,
        updated_by=to_str(raw.get("updatedBy")) or None,
        **kwargs,
    )


def overlay_from_document(doc: Mapping[str, Any]) -> CustomerPricingOverlay:
    customer_id = to_str(doc.get("customerId"))
    if not customer_id:
        raise InvalidInput("REQUIRED", "customerId is required", {"field": "customerId"})
    return CustomerPricingOverlay(
        customer_id=customer_id,
        shop_domain=to_str(doc.get("shopDomain")),
        customer_email=to_str(doc.get("customerEmail")).lower(),
        customer_type=to_str(doc.get("customerType")) or None,
        base_discount_pct=parse_percentage(doc.get("baseDiscount") or 0, source="baseDiscount"),
        product_rules=tuple(
            product_rule_from_payload(r, source=f"productRules[{i}]") for i, r in enumerate(doc.get("productRules") or [])
        ),
        tier_rules=tuple(
            tier_rule_from_payload(r, source=f"tierRules[{i}]") for i, r in enumerate(doc.get("tierRules") or [])
        ),
    )


def product_rule_to_document(rule: ProductRule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "productId": rule.product_id,
        "variantId": rule.variant_id,
        "productTitle": rule.product_title,
        "ruleType": rule.rule_type.value,
        "value": float(rule.value),
        "retailPrice": _num(rule.retail_price),
        "note": rule.note,
        "expiresAt": _iso(rule.expires_at),
        "updatedBy": rule.updated_by,
    }


def tier_rule_to_document(rule: TierRule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "appliesTo": rule.applies_to.value,
        "productId": rule.product_id,
        "productTitle": rule.product_title,
        "tiers": [
            {"quantity": t.quantity, "discount": float(t.discount), "discountType": t.discount_type.value}
            for t in rule.tiers
        ],
        "updatedBy": rule.updated_by,
    }


def overlay_to_document(overlay: CustomerPricingOverlay) -> Dict[str, Any]:
    return {
        "customerId": overlay.customer_id,
        "shopDomain": overlay.shop_domain,
        "customerEmail": overlay.customer_email,
        "customerType": overlay.customer_type,
        "baseDiscount": float(overlay.base_discount_pct),
        "productRules": [product_rule_to_document(r) for r in overlay.product_rules],
        "tierRules": [tier_rule_to_document(r) for r in overlay.tier_rules],
    }

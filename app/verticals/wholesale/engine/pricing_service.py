from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from app.core.logging_config import logger

from ..cache import PriceCache
from ..domain.models import ApprovalState, CustomerPricingOverlay, CustomerType, PricingRules, ProductOverride
from ..domain.registry import CustomerTypeRegistry
from ..domain.values import effective_quantity, money, parse_percentage, parse_quantity, to_str, utcnow
from ..errors import InvalidInput, NotFound, PricingError
from ..storage.repository import PricingRepository, ShopSettings
from . import overlay as overlay_ops
from . import tags as tag_ops
from .classifier import Classification, classify, parse_tags
from .context import AppliedRuleKind, PriceResolution, PricingQuery, PricingSource
from .display import catalog_prices, display_price, tier_table
from .normalize import (
    apply_bulk_update,
    product_rule_from_payload,
    reset_products,
    set_default_discount,
    tier_rule_from_payload,
)
from .resolver import implied_discount_pct, resolve_moq, resolve_price

D = Decimal

TagsInput = Union[str, Iterable[str], None]

# cart "type" labels, same vocabulary the storefront script reads
_CART_TYPES = {
    AppliedRuleKind.PER_TYPE_PERCENTAGE: "override",
    AppliedRuleKind.PER_TYPE_FIXED: "override",
    AppliedRuleKind.OVERRIDE_PERCENTAGE: "override",
    AppliedRuleKind.OVERRIDE_FIXED: "override",
    AppliedRuleKind.REGISTRY_DEFAULT: "default",
    AppliedRuleKind.SHOP_DEFAULT: "default",
    AppliedRuleKind.FIXED_PRICE: "customer",
    AppliedRuleKind.PERCENTAGE: "customer",
    AppliedRuleKind.FIXED_AMOUNT: "customer",
    AppliedRuleKind.BASE_DISCOUNT: "customer",
}


@dataclass
class BatchResult:
    updated: List[Tuple[str, List[str], Classification]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)


def _classification_doc(c: Classification) -> Dict[str, Any]:
    return {
        "approvalState": c.state.value,
        "customerTypeId": c.customer_type_id,
        "pricingTypeId": c.pricing_type_id,
    }


def _classification_from_doc(doc: Mapping[str, Any]) -> Optional[Classification]:
    try:
        return Classification(
            state=ApprovalState(doc.get("approvalState")),
            customer_type_id=doc.get("customerTypeId"),
            pricing_type_id=doc.get("pricingTypeId"),
        )
    except ValueError:
        return None


class PricingService:
    """
    Pricing facade: loads the shop's registry, rules and overlays, runs the
    pure engine functions and keeps the optional cache honest on every write.
    """

    def __init__(self, repository: PricingRepository, cache: Optional[PriceCache] = None):
        self.repo = repository
        self.cache = cache or PriceCache()

    # -----------------------------
    # classification
    # -----------------------------

    def classify(self, shop_id: str, tags: TagsInput, customer_id: Optional[str] = None) -> Classification:
        settings = self.repo.load_settings(shop_id)
        result = classify(tags, settings.registry, settings.guest_pricing_type_id)
        if customer_id:
            self._remember_classification(shop_id, str(customer_id), result)
        return result

    def _remember_classification(self, shop_id: str, customer_id: str, result: Classification) -> None:
        doc = _classification_doc(result)
        if self.cache.get_customer_type(shop_id, customer_id) != doc:
            # prices cached under the previous classification are stale
            self.cache.invalidate_customer(shop_id, customer_id)
        self.cache.set_customer_type(shop_id, customer_id, doc)

    def _classification_for(self, settings: ShopSettings, query: PricingQuery) -> Classification:
        registry = settings.registry

        if query.customer_type_id is not None:
            # explicit type: the caller has already established the customer
            ct = registry.get(query.customer_type_id)
            if ct is None:
                return Classification(state=ApprovalState.APPROVED)
            return Classification(state=ApprovalState.APPROVED, customer_type_id=ct.id, pricing_type_id=ct.id)

        if query.tags is not None:
            result = classify(query.tags, registry, settings.guest_pricing_type_id)
            if query.customer_id:
                self._remember_classification(settings.shop_domain, query.customer_id, result)
            return result

        if query.customer_id:
            cached = self.cache.get_customer_type(settings.shop_domain, query.customer_id)
            if cached is not None:
                known = _classification_from_doc(cached)
                if known is not None:
                    return known

        guest = registry.get(settings.guest_pricing_type_id)
        return Classification.guest(guest.id if guest is not None else None)

    @staticmethod
    def _pricing_type(registry: CustomerTypeRegistry, c: Classification) -> Optional[CustomerType]:
        """Approved customers price as their type; everyone else sees the guest pricing type, if any."""
        return registry.get(c.pricing_type_id)

    # -----------------------------
    # resolution
    # -----------------------------

    def resolve(self, shop_id: str, query: PricingQuery, *, now: Optional[datetime] = None) -> PriceResolution:
        log = logger.bind(shop=shop_id, product_id=query.product_id, customer_id=query.customer_id)

        quantity = effective_quantity(parse_quantity(query.quantity))
        # an explicit `now` prices a point in time: never served from or written to the cache
        cacheable = (
            now is None and bool(query.customer_id) and query.tags is None and query.customer_type_id is None
        )
        ts = now or utcnow()

        if cacheable:
            hit = self.cache.get_price(shop_id, query.product_id, query.customer_id, quantity, query.variant_id)
            if hit is not None and hit.regular_price == query.regular_price:
                log.bind(cache="hit").debug("price_resolved")
                return hit

        settings = self.repo.load_settings(shop_id)
        classification = self._classification_for(settings, query)
        customer_type = self._pricing_type(settings.registry, classification)

        rules = self.repo.load_rules(shop_id, settings.registry)
        override = rules.override_for(query.product_id)

        cache_ttl: Optional[int] = None
        overlay = self.repo.load_overlay(shop_id, query.customer_id) if query.customer_id else None
        if overlay is not None and not overlay.is_empty:
            res = self._resolve_overlay(overlay, override, customer_type, classification, query, quantity, ts)
            expiry = overlay_ops.next_expiry(overlay, query.product_id, query.variant_id, ts)
            if expiry is not None:
                cache_ttl = int((expiry - ts).total_seconds())
        else:
            if customer_type is None and not classification.is_approved:
                # unapproved without a guest pricing type: no product override applies
                override = None
            res = resolve_price(
                override,
                customer_type,
                quantity,
                regular_price=query.regular_price,
                apply_tiers=classification.is_approved,
                approval_state=classification.state,
                product_id=query.product_id,
            )

        if cacheable and (cache_ttl is None or cache_ttl > 0):
            self.cache.set_price(shop_id, res, query.customer_id, query.variant_id, ttl=cache_ttl)

        log.bind(
            approval_state=res.approval_state.value,
            customer_type_id=res.customer_type_id,
            applied_rule=res.applied_rule_kind.value,
            source=res.source.value,
            tier_applied=res.tier_applied,
            moq_satisfied=res.moq_satisfied,
        ).info("price_resolved")
        return res

    def _resolve_overlay(
        self,
        overlay: CustomerPricingOverlay,
        override: Optional[ProductOverride],
        customer_type: Optional[CustomerType],
        classification: Classification,
        query: PricingQuery,
        quantity: int,
        now: datetime,
    ) -> PriceResolution:
        if query.regular_price is None:
            raise InvalidInput(
                "REGULAR_PRICE_REQUIRED",
                "regularPrice is required for customer-specific pricing",
                {"customerId": query.customer_id, "productId": query.product_id},
            )

        op = overlay_ops.calculate_price(
            overlay,
            query.product_id,
            query.variant_id,
            query.regular_price,
            quantity,
            now=now,
        )
        moq = resolve_moq(override, customer_type)
        return PriceResolution(
            product_id=query.product_id,
            quantity=op.quantity,
            unit_price=op.final_price,
            regular_price=query.regular_price,
            discount_percent=implied_discount_pct(query.regular_price, op.final_price),
            applied_rule_kind=op.applied_rule or AppliedRuleKind.NONE,
            tier_applied=op.tier_applied,
            tier_qty=op.tier.quantity if op.tier is not None else None,
            tier_discount=op.tier.discount if op.tier is not None else None,
            moq_required=moq,
            moq_satisfied=moq <= 0 or op.quantity >= moq,
            customer_type_id=customer_type.id if customer_type is not None else None,
            approval_state=classification.state,
            source=PricingSource.CUSTOMER_OVERLAY,
            steps=list(op.steps),
        )

    def cart_discount(
        self,
        shop_id: str,
        product_id: str,
        *,
        customer_id: Optional[str] = None,
        tags: TagsInput = None,
        quantity: Any = 1,
        regular_price: Optional[D] = None,
        variant_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Discount the checkout should grant for one cart line.
        Only approved customers get anything, and nothing below the MOQ.
        """
        qty = effective_quantity(parse_quantity(quantity))
        out: Dict[str, Any] = {"discount": 0.0, "type": "none", "quantity": qty}

        if not customer_id and tags is None:
            return {**out, "message": "Not logged in"}

        query = PricingQuery(
            product_id=product_id,
            regular_price=regular_price,
            quantity=qty,
            customer_id=str(customer_id) if customer_id else None,
            tags=PricingQuery.tag_set(parse_tags(tags)) if tags is not None else None,
            variant_id=variant_id,
        )
        res = self.resolve(shop_id, query)

        if res.approval_state != ApprovalState.APPROVED:
            return {**out, "message": "Customer not approved for wholesale pricing"}

        pct = money(res.discount_percent)
        if res.tier_applied:
            kind = "tier"
        else:
            kind = _CART_TYPES.get(res.applied_rule_kind, "none")

        return {
            "discount": float(money(res.granted_discount_percent)),
            "type": kind,
            "customerTypeId": res.customer_type_id,
            "quantity": res.quantity,
            "meetsMinimum": res.moq_satisfied,
            "moqRequired": res.moq_required,
            "message": f"{pct}% discount applied" if res.moq_satisfied else "Below minimum order quantity",
        }

    def product_pricing(
        self,
        shop_id: str,
        product_id: str,
        regular_price: D,
        *,
        customer_id: Optional[str] = None,
        tags: TagsInput = None,
    ) -> Dict[str, Any]:
        """Product page payload: customer status, display price, customer price, tier table, MOQ."""
        settings = self.repo.load_settings(shop_id)
        rules = self.repo.load_rules(shop_id, settings.registry)
        override = rules.override_for(product_id)

        display = display_price(
            override,
            settings.registry,
            regular_price,
            shop_default_pct=rules.default_discount_pct,
            product_id=str(product_id),
        )
        query = PricingQuery(
            product_id=product_id,
            regular_price=regular_price,
            customer_id=str(customer_id) if customer_id else None,
            tags=PricingQuery.tag_set(parse_tags(tags)) if tags is not None else None,
        )
        price = self.resolve(shop_id, query)

        approved = price.approval_state == ApprovalState.APPROVED
        customer_type = settings.registry.get(price.customer_type_id) if approved else None
        tiers = tier_table(override, customer_type, regular_price) if customer_type is not None else []

        return {
            "productId": str(product_id),
            "customerStatus": price.approval_state.value,
            "customerTypeId": price.customer_type_id,
            "regularPrice": str(regular_price),
            "displayPrice": display.as_dict(),
            "price": price.as_dict(),
            "tiers": [
                {
                    "qty": row["qty"],
                    "discount": str(row["discount"]),
                    "effectiveDiscount": str(row["effectiveDiscount"]),
                    "price": str(row["price"]),
                }
                for row in tiers
            ],
            "moq": price.moq_required,
        }

    def catalog(self, shop_id: str, products: List[Dict[str, Any]]) -> List[PriceResolution]:
        settings = self.repo.load_settings(shop_id)
        rules = self.repo.load_rules(shop_id, settings.registry)
        return catalog_prices(rules, settings.registry, products)

    # -----------------------------
    # pricing rules (writes)
    # -----------------------------

    def pricing_rules(self, shop_id: str) -> PricingRules:
        return self.repo.load_rules(shop_id, self.repo.registry(shop_id))

    def bulk_update(self, shop_id: str, payloads: List[Mapping[str, Any]], *, now: Optional[datetime] = None) -> int:
        registry = self.repo.registry(shop_id)
        rules = self.repo.load_rules(shop_id, registry)
        updated, count = apply_bulk_update(rules, payloads, registry, now=now)
        self.repo.save_rules(updated)

        for p in payloads:
            self.cache.invalidate_product(shop_id, str(p.get("productId")))
        logger.bind(shop=shop_id, count=count).info("pricing_bulk_updated")
        return count

    def reset(self, shop_id: str, product_ids: List[Any], *, now: Optional[datetime] = None) -> int:
        rules = self.repo.load_rules(shop_id, self.repo.registry(shop_id))
        updated, removed = reset_products(rules, product_ids, now=now)
        self.repo.save_rules(updated)

        for pid in product_ids:
            self.cache.invalidate_product(shop_id, str(pid))
        logger.bind(shop=shop_id, requested=len(product_ids), removed=removed).info("pricing_reset")
        return removed

    def set_default_discount(self, shop_id: str, discount: Any) -> PricingRules:
        rules = self.repo.load_rules(shop_id, self.repo.registry(shop_id))
        updated = set_default_discount(rules, discount)
        self.repo.save_rules(updated)
        self.cache.invalidate_shop(shop_id)
        logger.bind(shop=shop_id, discount=str(updated.default_discount_pct)).info("default_discount_set")
        return updated

    # -----------------------------
    # settings
    # -----------------------------

    def settings(self, shop_id: str) -> ShopSettings:
        return self.repo.load_settings(shop_id)

    def save_settings(
        self,
        shop_id: str,
        customer_types: List[Dict[str, Any]],
        *,
        guest_pricing_type_id: Optional[str] = None,
        app_name: Optional[str] = None,
    ) -> ShopSettings:
        saved = self.repo.save_settings(
            shop_id,
            customer_types,
            guest_pricing_type_id=guest_pricing_type_id,
            app_name=app_name,
        )
        self.cache.invalidate_shop(shop_id)
        logger.bind(shop=shop_id, customer_types=len(saved.registry)).info("settings_saved")
        return saved

    # -----------------------------
    # customer-specific overlay
    # -----------------------------

    def customer_pricing(self, shop_id: str, customer_id: str) -> CustomerPricingOverlay:
        return self.repo.get_or_create_overlay(shop_id, customer_id)

    def _save_overlay(self, overlay: CustomerPricingOverlay, event: str, **kw: Any) -> CustomerPricingOverlay:
        self.repo.save_overlay(overlay)
        self.cache.invalidate_customer(overlay.shop_domain, overlay.customer_id)
        logger.bind(shop=overlay.shop_domain, customer_id=overlay.customer_id, **kw).info(event)
        return overlay

    def update_customer_profile(
        self,
        shop_id: str,
        customer_id: str,
        *,
        customer_email: Optional[str] = None,
        customer_type: Optional[str] = None,
        base_discount: Any = None,
    ) -> CustomerPricingOverlay:
        overlay = self.repo.get_or_create_overlay(shop_id, customer_id)
        changes: Dict[str, Any] = {}
        if customer_email is not None:
            changes["customer_email"] = customer_email
        if customer_type is not None:
            changes["customer_type"] = customer_type
        if base_discount is not None:
            changes["base_discount_pct"] = parse_percentage(base_discount, source="baseDiscount")
        return self._save_overlay(replace(overlay, **changes), "customer_profile_updated")

    def add_product_rule(self, shop_id: str, customer_id: str, payload: Mapping[str, Any]) -> CustomerPricingOverlay:
        rule = product_rule_from_payload(payload)
        overlay = overlay_ops.add_product_rule(self.repo.get_or_create_overlay(shop_id, customer_id), rule)
        return self._save_overlay(overlay, "product_rule_added", rule_id=rule.id, product_id=rule.product_id)

    def remove_product_rule(self, shop_id: str, customer_id: str, rule_id: str) -> CustomerPricingOverlay:
        overlay = overlay_ops.remove_product_rule(self.repo.get_or_create_overlay(shop_id, customer_id), rule_id)
        return self._save_overlay(overlay, "product_rule_removed", rule_id=rule_id)

    def update_product_rule(
        self,
        shop_id: str,
        customer_id: str,
        rule_id: str,
        updates: Mapping[str, Any],
    ) -> CustomerPricingOverlay:
        overlay = overlay_ops.update_product_rule(
            self.repo.get_or_create_overlay(shop_id, customer_id), rule_id, updates
        )
        return self._save_overlay(overlay, "product_rule_updated", rule_id=rule_id)

    def add_tier_rule(self, shop_id: str, customer_id: str, payload: Mapping[str, Any]) -> CustomerPricingOverlay:
        rule = tier_rule_from_payload(payload)
        overlay = overlay_ops.add_tier_rule(self.repo.get_or_create_overlay(shop_id, customer_id), rule)
        return self._save_overlay(overlay, "tier_rule_added", rule_id=rule.id)

    def remove_tier_rule(self, shop_id: str, customer_id: str, rule_id: str) -> CustomerPricingOverlay:
        overlay = overlay_ops.remove_tier_rule(self.repo.get_or_create_overlay(shop_id, customer_id), rule_id)
        return self._save_overlay(overlay, "tier_rule_removed", rule_id=rule_id)

    def calculate_customer_price(
        self,
        shop_id: str,
        customer_id: str,
        product_id: str,
        regular_price: D,
        *,
        variant_id: Optional[str] = None,
        quantity: Any = 1,
        now: Optional[datetime] = None,
    ) -> overlay_ops.OverlayPrice:
        overlay = self.repo.load_overlay(shop_id, customer_id)
        if overlay is None:
            overlay = CustomerPricingOverlay(customer_id=str(customer_id), shop_domain=shop_id)
        qty = parse_quantity(quantity)
        return overlay_ops.calculate_price(overlay, str(product_id), variant_id, regular_price, qty, now=now or utcnow())

    # -----------------------------
    # tag transitions
    # -----------------------------

    def registration_tags(self, shop_id: str, customer_type_id: Optional[str]) -> List[str]:
        ct = self.repo.registry(shop_id).get(customer_type_id) if customer_type_id else None
        return tag_ops.registration_tags(ct)

    def review(self, shop_id: str, customer_id: str, tags: TagsInput, action: str) -> Tuple[List[str], Classification]:
        new_tags = tag_ops.review_tags(tags, action)
        self.cache.invalidate_customer(shop_id, str(customer_id))
        result = self.classify(shop_id, new_tags, customer_id)
        logger.bind(shop=shop_id, customer_id=customer_id, action=action, state=result.state.value).info(
            "customer_reviewed"
        )
        return new_tags, result

    def assign_type(
        self,
        shop_id: str,
        customer_id: str,
        tags: TagsInput,
        customer_type_id: str,
    ) -> Tuple[List[str], Classification]:
        settings = self.repo.load_settings(shop_id)
        new_tags = tag_ops.assign_type_tags(tags, settings.registry, customer_type_id)
        self.cache.invalidate_customer(shop_id, str(customer_id))
        result = self.classify(shop_id, new_tags, customer_id)
        logger.bind(shop=shop_id, customer_id=customer_id, customer_type_id=customer_type_id).info(
            "customer_type_assigned"
        )
        return new_tags, result

    def _batch(self, shop_id: str, customers: Iterable[Mapping[str, Any]], apply) -> BatchResult:
        result = BatchResult()
        for c in customers:
            cid = to_str(c.get("customerId"))
            try:
                if not cid:
                    raise InvalidInput("REQUIRED", "customerId is required", {"field": "customerId"})
                tags, classification = apply(cid, c.get("tags"))
            except PricingError as e:
                result.errors.append({"customerId": cid or None, "error": e.as_dict()})
                continue
            result.updated.append((cid, tags, classification))
        return result

    def review_batch(self, shop_id: str, customers: Iterable[Mapping[str, Any]], action: str) -> BatchResult:
        """Apply one review action to many customers; one bad entry does not stop the batch."""
        act = tag_ops.review_action(action)
        out = self._batch(shop_id, customers, lambda cid, tags: self.review(shop_id, cid, tags, act))
        logger.bind(shop=shop_id, action=act, updated=len(out.updated), failed=len(out.errors)).info(
            "customers_batch_reviewed"
        )
        return out

    def assign_type_batch(
        self,
        shop_id: str,
        customers: Iterable[Mapping[str, Any]],
        customer_type_id: str,
    ) -> BatchResult:
        if self.repo.registry(shop_id).get(customer_type_id) is None:
            raise NotFound(
                "CUSTOMER_TYPE_NOT_FOUND",
                f"Customer type not found: {customer_type_id}",
                {"customerTypeId": customer_type_id},
            )
        out = self._batch(
            shop_id, customers, lambda cid, tags: self.assign_type(shop_id, cid, tags, customer_type_id)
        )
        logger.bind(
            shop=shop_id, customer_type_id=customer_type_id, updated=len(out.updated), failed=len(out.errors)
        ).info("customers_batch_assigned")
        return out

    @staticmethod
    def login_status(tags: TagsInput) -> tag_ops.LoginStatus:
        return tag_ops.login_status(tags)

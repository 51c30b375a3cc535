from __future__ import annotations

from fastapi import APIRouter, Depends

from app.verticals.wholesale.api.deps import get_pricing_service, get_shop_domain
from app.verticals.wholesale.domain.values import parse_decimal
from app.verticals.wholesale.engine.normalize import overlay_to_document
from app.verticals.wholesale.engine.pricing_service import PricingService
from app.verticals.wholesale.schemas.customer_input_v1 import (
    CalculateInputV1,
    CustomerProfileInputV1,
    ProductRuleInputV1,
    ProductRulePatchV1,
    TierRuleInputV1,
)
from app.verticals.wholesale.schemas.pricing_output_v1 import DocumentV1, OverlayPriceV1

router = APIRouter(prefix="/api/wholesale/customer-pricing", tags=["wholesale", "customer-pricing"])


def _doc(shop: str, overlay) -> DocumentV1:
    return DocumentV1(shop_domain=shop, document=overlay_to_document(overlay))


@router.get("/{customer_id}", response_model=DocumentV1)
def get_customer_pricing(
    customer_id: str,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    return _doc(shop, svc.customer_pricing(shop, customer_id))


@router.patch("/{customer_id}", response_model=DocumentV1)
def update_customer_profile(
    customer_id: str,
    payload: CustomerProfileInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    overlay = svc.update_customer_profile(
        shop,
        customer_id,
        customer_email=payload.customer_email,
        customer_type=payload.customer_type,
        base_discount=payload.base_discount,
    )
    return _doc(shop, overlay)


@router.post("/{customer_id}/product-rules", response_model=DocumentV1)
def add_product_rule(
    customer_id: str,
    payload: ProductRuleInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    overlay = svc.add_product_rule(shop, customer_id, payload.model_dump(by_alias=True, exclude_none=True))
    return _doc(shop, overlay)


@router.patch("/{customer_id}/product-rules/{rule_id}", response_model=DocumentV1)
def update_product_rule(
    customer_id: str,
    rule_id: str,
    payload: ProductRulePatchV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    updates = payload.model_dump(by_alias=True, exclude_unset=True)
    return _doc(shop, svc.update_product_rule(shop, customer_id, rule_id, updates))


@router.delete("/{customer_id}/product-rules/{rule_id}", response_model=DocumentV1)
def remove_product_rule(
    customer_id: str,
    rule_id: str,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    return _doc(shop, svc.remove_product_rule(shop, customer_id, rule_id))


@router.post("/{customer_id}/tier-rules", response_model=DocumentV1)
def add_tier_rule(
    customer_id: str,
    payload: TierRuleInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    overlay = svc.add_tier_rule(shop, customer_id, payload.model_dump(by_alias=True, exclude_none=True))
    return _doc(shop, overlay)


@router.delete("/{customer_id}/tier-rules/{rule_id}", response_model=DocumentV1)
def remove_tier_rule(
    customer_id: str,
    rule_id: str,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    return _doc(shop, svc.remove_tier_rule(shop, customer_id, rule_id))


@router.post("/{customer_id}/calculate", response_model=OverlayPriceV1)
def calculate(
    customer_id: str,
    payload: CalculateInputV1,
    shop: str = Depends(get_shop_domain),
    svc: PricingService = Depends(get_pricing_service),
):
    regular = parse_decimal(payload.regular_price, source="regularPrice")
    op = svc.calculate_customer_price(
        shop,
        customer_id,
        payload.product_id,
        regular,
        variant_id=payload.variant_id,
        quantity=payload.quantity,
    )
    return OverlayPriceV1(
        product_id=payload.product_id,
        variant_id=payload.variant_id,
        quantity=op.quantity,
        regular_price=str(regular),
        final_price=str(op.final_price),
        applied_rule=op.applied_rule.value if op.applied_rule is not None else None,
        tier_applied=op.tier_applied,
        steps=list(op.steps),
    )
